"""Shared types for the tools package."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


class ToolName(str, Enum):
    """Every tool the model may call. Dispatch is keyed on this enum."""
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    EDIT_FILE = "edit_file"
    LIST_FILES = "list_files"
    SEARCH_CODE = "search_code"
    RUN_COMMAND = "run_command"


@dataclass(frozen=True)
class ProjectContext:
    """The project a tool call operates on. Passed explicitly into every execution."""
    root_path: str


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model"""
    name: str
    input: Mapping[str, Any] = field(default_factory=dict)
    id: str = ""


@dataclass
class ToolResult:
    """Result from executing a tool"""
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None

    def model_text(self) -> str:
        """Untruncated text fed back into the model's context."""
        if self.success:
            return self.output or "Success"
        return f"Error: {self.error or 'Unknown error'}"


def _fail(error: str) -> ToolResult:
    return ToolResult(success=False, error=error)
