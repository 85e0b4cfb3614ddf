"""Tool schema definitions (Bedrock/Anthropic Messages API)."""

from typing import Any, Dict, List

from tools._common import ToolName


TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": ToolName.READ_FILE.value,
        "description": "Read the contents of a file at the specified path. Use this to understand existing code before making changes.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to read, relative to project root"},
            },
            "required": ["path"],
        },
    },
    {
        "name": ToolName.WRITE_FILE.value,
        "description": "Create a new file or completely overwrite an existing file with new content. Parent directories are created as needed.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to write to, relative to project root"},
                "content": {"type": "string", "description": "The complete content to write to the file"},
            },
            "required": ["path", "content"],
        },
    },
    {
        "name": ToolName.EDIT_FILE.value,
        "description": "Make a targeted edit to a file by replacing specific text. Use this for small changes instead of rewriting the entire file. The search text must match exactly one location; include surrounding lines to make it unique.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to edit"},
                "search": {"type": "string", "description": "The exact text to find and replace (must be unique in the file)"},
                "replace": {"type": "string", "description": "The text to replace it with"},
            },
            "required": ["path", "search", "replace"],
        },
    },
    {
        "name": ToolName.LIST_FILES.value,
        "description": "List all files in a directory, recursively. Use this to understand project structure. Directories end with '/'. Respects .gitignore; results are capped.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The directory path to list, relative to project root. Use '.' for root."},
            },
            "required": ["path"],
        },
    },
    {
        "name": ToolName.SEARCH_CODE.value,
        "description": "Search for text or regex patterns across source files in the project. Returns matching lines as path:line:text.",
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The text or regex pattern to search for"},
            },
            "required": ["query"],
        },
    },
    {
        "name": ToolName.RUN_COMMAND.value,
        "description": "Execute a shell command in the project root. Use for running tests, installing packages, or other CLI operations. Destructive or privileged commands are refused.",
        "input_schema": {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "The shell command to execute"},
            },
            "required": ["command"],
        },
    },
]

# Tools that change the project on disk or run arbitrary processes
MUTATING_TOOLS = frozenset({ToolName.WRITE_FILE, ToolName.EDIT_FILE, ToolName.RUN_COMMAND})
