"""Tool execution dispatch."""

import logging
import threading
from typing import Any, Callable, Dict, Optional

from tools._common import ProjectContext, ToolCall, ToolName, ToolResult, _fail
from tools.schemas import MUTATING_TOOLS
from tools.file_ops import read_file, write_file, edit_file
from tools.search_ops import list_files, search_code
from tools.external_ops import run_command

logger = logging.getLogger(__name__)

_HANDLERS: Dict[ToolName, Callable[..., ToolResult]] = {
    ToolName.READ_FILE: read_file,
    ToolName.WRITE_FILE: write_file,
    ToolName.EDIT_FILE: edit_file,
    ToolName.LIST_FILES: list_files,
    ToolName.SEARCH_CODE: search_code,
    ToolName.RUN_COMMAND: run_command,
}

_RESERVED_ARGS = (
    "context", "guard", "backend", "cancel",
    "timeout", "max_output_bytes", "max_entries", "max_results",
    "max_delete_lines", "require_unique",
)

_missing = set(ToolName) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"No handler registered for tools: {sorted(t.value for t in _missing)}")


def execute_tool(
    call: ToolCall,
    context: ProjectContext,
    cancel: Optional[threading.Event] = None,
) -> ToolResult:
    """Execute one tool call against the given project. Never raises."""
    try:
        name = ToolName(call.name)
    except ValueError:
        return _fail(f"Unknown tool: {call.name}")

    inputs: Dict[str, Any] = dict(call.input or {})
    # Control arguments are supplied by the caller, never by the model
    for reserved in _RESERVED_ARGS:
        inputs.pop(reserved, None)
    if name == ToolName.RUN_COMMAND:
        inputs["cancel"] = cancel

    if name in MUTATING_TOOLS:
        logger.info(f"Executing {name.value} in {context.root_path}")
    else:
        logger.debug(f"Executing {name.value} in {context.root_path}")

    try:
        return _HANDLERS[name](context=context, **inputs)
    except TypeError as e:
        return _fail(f"Invalid arguments for {name.value}: {e}")
    except Exception as e:
        logger.exception(f"Tool execution error: {name.value}")
        return _fail(f"Tool error: {e}")
