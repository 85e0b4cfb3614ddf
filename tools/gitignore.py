""".gitignore-aware filtering helpers for directory walks."""

import os
import logging
from typing import Dict, Optional, Set

import pathspec

logger = logging.getLogger(__name__)

# Build output and caches never worth listing to the model
ALWAYS_SKIP_DIRS: Set[str] = {
    "__pycache__", ".venv", "venv",
    ".mypy_cache", ".pytest_cache", ".tox", ".eggs",
    "dist", "build", ".next", ".nuxt", ".cache",
    "coverage", "htmlcov",
}

ALWAYS_SKIP_EXTENSIONS: Set[str] = {
    ".pyc", ".pyo", ".so", ".dylib", ".o", ".a", ".class",
}

_gitignore_cache: Dict[str, Optional[pathspec.PathSpec]] = {}


def load_gitignore(root_path: str) -> Optional[pathspec.PathSpec]:
    """Load and cache the root .gitignore of a project. Returns None when absent."""
    if root_path in _gitignore_cache:
        return _gitignore_cache[root_path]

    spec = None
    gitignore_path = os.path.join(root_path, ".gitignore")
    if os.path.isfile(gitignore_path):
        try:
            with open(gitignore_path, "r", encoding="utf-8", errors="replace") as f:
                spec = pathspec.PathSpec.from_lines("gitwildmatch", f)
        except OSError as e:
            logger.debug(f"Failed to read .gitignore: {e}")

    _gitignore_cache[root_path] = spec
    return spec


def is_ignored(rel_path: str, name: str, is_dir: bool,
               gitignore_spec: Optional[pathspec.PathSpec]) -> bool:
    """Check if a path should be skipped based on .gitignore + hardcoded skips."""
    if is_dir and name in ALWAYS_SKIP_DIRS:
        return True
    if not is_dir:
        _, ext = os.path.splitext(name)
        if ext in ALWAYS_SKIP_EXTENSIONS:
            return True
    if gitignore_spec:
        check_path = rel_path + "/" if is_dir else rel_path
        if gitignore_spec.match_file(check_path):
            return True
    return False


def invalidate_gitignore_cache(root_path: Optional[str] = None) -> None:
    """Clear cached .gitignore specs. Call when .gitignore changes."""
    if root_path:
        _gitignore_cache.pop(root_path, None)
    else:
        _gitignore_cache.clear()
