"""Shell tool: run_command."""

import logging
import threading
from typing import Any, Optional

from backend import Backend, LocalBackend, CommandTimeout, CommandCancelled
from config import app_config
from tools._common import ProjectContext, ToolResult, _fail
from tools.gitignore import invalidate_gitignore_cache
from tools.guard import SandboxGuard, guard_for

logger = logging.getLogger(__name__)

COMMAND_BLOCKED = "Command blocked for security reasons"


def _combine(stdout: str, stderr: str) -> str:
    parts = []
    if stdout:
        parts.append(stdout)
    if stderr:
        parts.append(f"[stderr]\n{stderr}")
    return "\n".join(parts)


def run_command(command: str, *, context: ProjectContext,
                guard: Optional[SandboxGuard] = None, backend: Optional[Backend] = None,
                cancel: Optional[threading.Event] = None,
                timeout: Optional[float] = None, max_output_bytes: Optional[int] = None,
                **kw: Any) -> ToolResult:
    """Execute a shell command with the project root as working directory.

    The command string is checked against the guard's deny-list before anything
    is spawned. Output of each stream is capped; the process group is killed on
    timeout or when `cancel` is set.
    """
    if not isinstance(command, str) or not command.strip():
        return _fail("command is required")
    g = guard or guard_for(context.root_path)
    if not g.check_command(command):
        return _fail(COMMAND_BLOCKED)

    b = backend or LocalBackend(context.root_path)
    limit = app_config.command_timeout if timeout is None else timeout
    cap = app_config.command_max_output_bytes if max_output_bytes is None else max_output_bytes
    try:
        stdout, stderr, rc = b.run_command(command, timeout=limit, max_output_bytes=cap, cancel=cancel)
    except CommandTimeout as e:
        detail = f"\n{e.stderr}" if e.stderr else ""
        return _fail(f"Command timed out after {limit}s{detail}")
    except CommandCancelled:
        return _fail("Command cancelled")
    except OSError as e:
        logger.warning(f"run_command could not start {command[:200]!r}: {e}")
        return _fail(str(e))
    finally:
        # the command may have rewritten .gitignore
        invalidate_gitignore_cache(g.root)

    if rc != 0:
        detail = stderr or stdout
        return ToolResult(
            success=False,
            output=_combine(stdout, stderr),
            error=f"[exit code: {rc}]\n{detail}" if detail else f"Command exited with code {rc}",
        )
    return ToolResult(success=True, output=_combine(stdout, stderr))
