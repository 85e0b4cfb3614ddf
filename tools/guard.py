"""Sandbox guard: path and command policy checked before every tool runs.

The command check is a conservative textual filter over the command string.
It is not a sandbox: anything it does not recognise runs with the server's
privileges, inside the project root as working directory.
"""

import os
import re
import logging
from functools import lru_cache
from typing import Iterable, List, Optional, Pattern

import pathspec

from config import app_config

logger = logging.getLogger(__name__)

# gitwildmatch patterns; a bare name matches that segment at any depth and everything below it
DEFAULT_DENIED_PATHS: List[str] = [
    ".git",
    "node_modules",
    ".env",
    ".env.*",
    "secrets",
    ".ssh",
    "*.pem",
    "*.key",
    "id_rsa*",
]

# Matched case-insensitively as substrings
DEFAULT_BLOCKED_COMMANDS: List[str] = [
    "rm -rf",
    "rm -fr",
    "rm -r",
    "rm --recursive",
    "sudo",
    "doas",
    "chmod",
    "chown",
    "chgrp",
    "mv /",
    "cp /",
    "> /",
    "mkfs",
    "dd if=",
    ":(){",
    "eval",
    "exec",
    "curl | bash",
    "wget | bash",
    "drop table",
    "drop database",
    "delete from",
    "truncate",
]

DEFAULT_BLOCKED_COMMAND_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\brm\s+(?:-[a-z]+\s+)*-[a-z]*r", re.IGNORECASE),
    re.compile(r"(?:^|[;&|(]\s*)su(?:\s|$)", re.IGNORECASE),
    re.compile(r"\b(?:curl|wget|fetch)\b[^|;&]*\|\s*(?:sudo\s+)?(?:ba|z|da|k)?sh\b", re.IGNORECASE),
]


class SandboxGuard:
    """Allow/deny policy for one project root. All checks are pure predicates."""

    def __init__(
        self,
        root_path: str,
        denied_paths: Optional[Iterable[str]] = None,
        blocked_commands: Optional[Iterable[str]] = None,
        blocked_command_patterns: Optional[Iterable[Pattern[str]]] = None,
        write_extensions: Optional[Iterable[str]] = None,
    ):
        self.root = os.path.realpath(root_path)
        self._denied = pathspec.PathSpec.from_lines(
            "gitwildmatch", list(denied_paths if denied_paths is not None else DEFAULT_DENIED_PATHS)
        )
        self._blocked = [c.lower() for c in (blocked_commands if blocked_commands is not None else DEFAULT_BLOCKED_COMMANDS)]
        self._blocked_patterns = list(
            blocked_command_patterns if blocked_command_patterns is not None else DEFAULT_BLOCKED_COMMAND_PATTERNS
        )
        exts = write_extensions if write_extensions is not None else app_config.write_extensions
        self._write_extensions = {e.lower() if e.startswith(".") else f".{e.lower()}" for e in exts}

    def resolve(self, path: str) -> str:
        """Absolute, symlink-resolved location of path under the root."""
        candidate = path if os.path.isabs(path) else os.path.join(self.root, path)
        return os.path.realpath(candidate)

    def relative(self, path: str) -> str:
        return os.path.relpath(self.resolve(path), self.root)

    def is_denied(self, rel_path: str) -> bool:
        """True if a root-relative path contains a denied segment."""
        rel = rel_path.replace(os.sep, "/").strip("/")
        if not rel or rel == ".":
            return False
        return self._denied.match_file(rel)

    def check_path(self, path: str) -> bool:
        if not (path or "").strip() or "\x00" in path:
            return False
        resolved = self.resolve(path)
        if resolved != self.root and not resolved.startswith(self.root + os.sep):
            logger.info(f"Path escapes project root: {path!r}")
            return False
        # Check the requested spelling too, so a symlink cannot launder a denied name
        requested = os.path.normpath(path if not os.path.isabs(path) else os.path.relpath(path, self.root))
        if self.is_denied(os.path.relpath(resolved, self.root)) or self.is_denied(requested):
            logger.info(f"Path denied by policy: {path!r}")
            return False
        return True

    def check_write_extension(self, path: str) -> bool:
        _, ext = os.path.splitext(path)
        return not ext or ext.lower() in self._write_extensions

    def check_command(self, command: str) -> bool:
        if not (command or "").strip():
            return False
        lowered = command.lower()
        if any(blocked in lowered for blocked in self._blocked):
            logger.info(f"Command blocked by deny-list: {command[:200]!r}")
            return False
        if any(p.search(command) for p in self._blocked_patterns):
            logger.info(f"Command blocked by pattern: {command[:200]!r}")
            return False
        return True


@lru_cache(maxsize=32)
def guard_for(root_path: str) -> SandboxGuard:
    """Default-policy guard for a project root."""
    return SandboxGuard(root_path)
