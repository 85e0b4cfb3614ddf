"""
Tool definitions and implementations for the coding agent.
Each tool has an Anthropic-compatible schema and an implementation function.
Every execution is checked by the sandbox guard for its project root.
"""

from tools._common import ToolName, ToolCall, ToolResult, ProjectContext  # noqa: F401
from tools.guard import SandboxGuard, guard_for  # noqa: F401
from tools.gitignore import invalidate_gitignore_cache  # noqa: F401
from tools.file_ops import read_file, write_file, edit_file  # noqa: F401
from tools.search_ops import list_files, search_code, walk_project  # noqa: F401
from tools.external_ops import run_command  # noqa: F401
from tools.schemas import TOOL_DEFINITIONS  # noqa: F401
from tools.dispatch import execute_tool  # noqa: F401
