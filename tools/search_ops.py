"""Search and discovery tools: list_files, search_code."""

import os
import logging
import subprocess
from typing import Any, List, Optional

from backend import Backend, LocalBackend
from config import app_config
from tools._common import ProjectContext, ToolResult, _fail
from tools.gitignore import load_gitignore, is_ignored, ALWAYS_SKIP_DIRS
from tools.guard import SandboxGuard, guard_for

logger = logging.getLogger(__name__)

_SEARCH_EXCLUDE_DIRS: List[str] = sorted({".git", "node_modules", "secrets", ".ssh"} | ALWAYS_SKIP_DIRS)


def walk_project(
    guard: SandboxGuard,
    backend: Backend,
    start: str = ".",
    max_entries: int = 200,
) -> List[str]:
    """Recursive listing below `start`, relative to it, directories suffixed with '/'.

    Denied segments, escaping symlinks, always-skipped build dirs and
    .gitignore matches are left out. Never returns more than max_entries.
    """
    gi = load_gitignore(guard.root)
    entries: List[str] = []

    def _walk(abs_dir: str, prefix: str) -> None:
        try:
            children = backend.list_dir(abs_dir)
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {abs_dir}: {e}")
            return
        for child in children:
            if len(entries) >= max_entries:
                return
            name = child["name"]
            is_dir = child["type"] == "directory"
            child_abs = os.path.join(abs_dir, name)
            if not guard.check_path(child_abs):
                continue
            if is_ignored(guard.relative(child_abs), name, is_dir, gi):
                continue
            rel = f"{prefix}/{name}" if prefix else name
            if is_dir:
                entries.append(rel + "/")
                _walk(child_abs, rel)
            else:
                entries.append(rel)

    _walk(guard.resolve(start), "")
    return entries


def list_files(path: str = ".", *, context: ProjectContext,
               guard: Optional[SandboxGuard] = None, backend: Optional[Backend] = None,
               max_entries: Optional[int] = None, **kw: Any) -> ToolResult:
    """List files below a directory, recursively, newline-delimited."""
    path = path if isinstance(path, str) and path.strip() else "."
    g = guard or guard_for(context.root_path)
    if not g.check_path(path):
        return _fail("Access denied: path not allowed")
    b = backend or LocalBackend(context.root_path)
    if not b.is_dir(g.resolve(path)):
        return _fail(f"Not a directory: {path}")

    cap = app_config.list_files_max_entries if max_entries is None else max_entries
    entries = walk_project(g, b, path, max_entries=cap)
    if not entries:
        return ToolResult(success=True, output="(empty directory)")
    return ToolResult(success=True, output="\n".join(entries))


def search_code(query: str, *, context: ProjectContext,
                guard: Optional[SandboxGuard] = None, backend: Optional[Backend] = None,
                max_results: Optional[int] = None, **kw: Any) -> ToolResult:
    """Search source files for a regex using ripgrep (or grep fallback)."""
    if not isinstance(query, str) or not query.strip():
        return _fail("query is required")
    g = guard or guard_for(context.root_path)
    b = backend or LocalBackend(context.root_path)
    cap = app_config.search_max_results if max_results is None else max_results

    try:
        out, rc = b.search(
            query,
            ".",
            include=app_config.search_extensions,
            exclude_dirs=_SEARCH_EXCLUDE_DIRS,
            timeout=app_config.search_timeout,
        )
    except subprocess.TimeoutExpired:
        return _fail("Search timed out")
    except OSError as e:
        logger.warning(f"search_code could not run the search utility: {e}")
        return _fail(f"Search failed: {e}")

    if rc > 1:
        return _fail(f"Search failed: {out or f'exit code {rc}'}")

    lines = [ln for ln in out.splitlines() if ln.strip() and not g.is_denied(ln.split(":", 1)[0])]
    if not lines:
        return ToolResult(success=True, output="No matches found")

    output = "\n".join(lines[:cap])
    if len(lines) > cap:
        output += f"\n... [{len(lines) - cap} more matches truncated]"
    return ToolResult(success=True, output=output)
