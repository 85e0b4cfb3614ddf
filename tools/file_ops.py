"""File operation tools: read, write, edit."""

import logging
import os
from typing import Any, Optional

from backend import Backend, LocalBackend
from config import app_config
from tools._common import ProjectContext, ToolResult, _fail
from tools.gitignore import invalidate_gitignore_cache
from tools.guard import SandboxGuard, guard_for

logger = logging.getLogger(__name__)

ACCESS_DENIED = "Access denied: path not allowed"


def _require(value: Any, name: str) -> Optional[ToolResult]:
    """Return an error ToolResult if a required string argument is missing; else None."""
    if not isinstance(value, str) or (name == "path" and not value.strip()):
        return _fail(f"{name} is required")
    return None


def _line_count(text: str) -> int:
    return len(text.split("\n"))


def _touched(guard: SandboxGuard, path: str) -> None:
    if os.path.basename(path.rstrip("/")) == ".gitignore":
        invalidate_gitignore_cache(guard.root)


def read_file(path: str, *, context: ProjectContext,
              guard: Optional[SandboxGuard] = None, backend: Optional[Backend] = None,
              **kw: Any) -> ToolResult:
    """Read the full text of a file."""
    err = _require(path, "path")
    if err:
        return err
    g = guard or guard_for(context.root_path)
    if not g.check_path(path):
        return _fail(ACCESS_DENIED)
    b = backend or LocalBackend(context.root_path)
    try:
        return ToolResult(success=True, output=b.read_file(g.resolve(path)))
    except (OSError, UnicodeError):
        return _fail(f"File not found: {path}")


def write_file(path: str, content: str, *, context: ProjectContext,
               guard: Optional[SandboxGuard] = None, backend: Optional[Backend] = None,
               **kw: Any) -> ToolResult:
    """Create a new file or completely overwrite an existing one."""
    err = _require(path, "path") or _require(content, "content")
    if err:
        return err
    g = guard or guard_for(context.root_path)
    if not g.check_path(path):
        return _fail(ACCESS_DENIED)
    if not g.check_write_extension(path):
        _, ext = os.path.splitext(path)
        return _fail(f"File type not allowed: {ext}")
    b = backend or LocalBackend(context.root_path)
    target = g.resolve(path)
    if b.is_dir(target):
        return _fail(f"Path is a directory: {path}")
    try:
        b.write_file(target, content)
    except OSError as e:
        logger.warning(f"write_file failed for {path}: {e}")
        return _fail(f"Failed to write file: {path}")
    _touched(g, path)
    return ToolResult(success=True, output=f"File written: {path} ({_line_count(content)} lines)")


def edit_file(path: str, search: str, replace: str, *, context: ProjectContext,
              guard: Optional[SandboxGuard] = None, backend: Optional[Backend] = None,
              max_delete_lines: Optional[int] = None, require_unique: Optional[bool] = None,
              **kw: Any) -> ToolResult:
    """Replace one exact occurrence of `search` with `replace`.

    Refuses edits whose search text is missing, ambiguous (when uniqueness is
    required), or that would delete more than `max_delete_lines` lines net.
    The file is only written when every check passes. Files that do not decode
    as UTF-8 are refused rather than rewritten with replacement characters.
    """
    err = _require(path, "path") or _require(search, "search") or _require(replace, "replace")
    if err:
        return err
    if not search:
        return _fail("search must not be empty")
    limit = app_config.max_delete_lines if max_delete_lines is None else max_delete_lines
    unique = app_config.edit_require_unique_match if require_unique is None else require_unique

    g = guard or guard_for(context.root_path)
    if not g.check_path(path):
        return _fail(ACCESS_DENIED)
    b = backend or LocalBackend(context.root_path)
    target = g.resolve(path)
    try:
        content = b.read_file(target, errors="strict")
    except UnicodeDecodeError:
        return _fail(f"Cannot edit {path}: file is not valid UTF-8")
    except OSError:
        return _fail(f"File not found: {path}")

    count = content.count(search)
    if count == 0:
        return _fail("Search string not found in file")

    deleted = _line_count(search) - _line_count(replace)
    if deleted > limit:
        return _fail(f"Cannot delete more than {limit} lines at once (trying to delete {deleted})")

    if count > 1 and unique:
        return _fail(
            f"Search string matches {count} locations in {path}. "
            "Include more surrounding context so it matches exactly one."
        )

    try:
        b.write_file(target, content.replace(search, replace, 1))
    except OSError as e:
        logger.warning(f"edit_file write failed for {path}: {e}")
        return _fail(f"Failed to apply edit: {path}")
    _touched(g, path)
    return ToolResult(success=True, output=f"Edit applied to: {path}")
