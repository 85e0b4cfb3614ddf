"""
Prompt architecture and system prompt composition.
Fixed directive modules are joined with the project context injected last.
"""

import os
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from config import app_config
from tools import TOOL_DEFINITIONS


AVAILABLE_TOOL_NAMES = ", ".join(t["name"] for t in TOOL_DEFINITIONS)

TRUNCATION_MARKER = "\n\n... [truncated] ...\n\n"

# Path fragments and extensions listed first when the file tree has to be cut
_PRIORITY_DIRS = ("src/", "server/", "client/", "app/", "lib/")
_PRIORITY_EXTENSIONS = (".ts", ".tsx", ".py", ".json")


@dataclass(frozen=True)
class CurrentFile:
    name: str
    language: str = ""
    content: str = ""


@dataclass(frozen=True)
class PromptContext:
    """Project context injected into the system prompt."""
    file_tree: Sequence[str] = field(default_factory=tuple)
    current_file: Optional[CurrentFile] = None
    root_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]], root_path: Optional[str] = None) -> "PromptContext":
        data = data or {}
        current = data.get("current_file")
        return cls(
            file_tree=tuple(data.get("file_tree") or ()),
            current_file=CurrentFile(
                name=current.get("name", ""),
                language=current.get("language", ""),
                content=current.get("content", ""),
            ) if current else None,
            root_path=root_path,
        )


# --- Core Modules (always included) ---

_MOD_ROLE = """<role>
You are Agent, an autonomous software engineer working inside a web IDE. Use the tools to assist the user.
</role>"""

_MOD_ENVIRONMENT = """<environment>
- Linux shell, commands run with the project root as working directory
- Use the provided tools to control the machine
- Never use Docker or create virtual machines
</environment>"""

_MOD_AUTONOMY = """<autonomy>
- Work autonomously, reduce the user's cognitive load
- Only return when the task is complete or you need user input
- Continue working until fully done
</autonomy>"""

_MOD_COMMUNICATION = """<communication>
- NEVER use emoji
- Be concise and direct
- Use the same language as the user
- Don't explain code unless asked
</communication>"""

_MOD_WORKFLOW = """<workflow>
1. Understand the request
2. Use list_files to explore structure
3. Use read_file to understand existing code
4. Make minimal changes with write_file or edit_file
5. Verify and report completion
</workflow>"""

_MOD_CODE_RULES = """<code_rules>
- Understand file conventions first, then mimic them
- Check if libraries exist before using them
- Look at existing components before creating new ones
- Prefer editing over rewriting
- Follow security best practices
</code_rules>"""

_MOD_TOOL_USAGE = """<tool_usage>
CRITICAL: Use the provided tools for ALL actions:
- read_file: Read file contents
- write_file: Create or overwrite files
- edit_file: Make targeted edits (search/replace, the search text must be unique)
- list_files: List directory contents
- search_code: Search across files
- run_command: Execute shell commands

Paths are relative to the project root. Some paths (.git, node_modules, .env, keys) and destructive commands are refused.
NEVER output XML tags. NEVER write <write_to_file> or similar. Always call the tools directly.
</tool_usage>"""

_MOD_TOOL_MANDATE = (
    "You MUST use the provided tools to read, create and modify files and to run commands. "
    "NEVER describe file changes in prose or emit XML-style tool markup instead of calling a tool."
)

_CORE_MODULES = (
    _MOD_ROLE,
    _MOD_ENVIRONMENT,
    _MOD_AUTONOMY,
    _MOD_COMMUNICATION,
    _MOD_WORKFLOW,
    _MOD_CODE_RULES,
    _MOD_TOOL_USAGE,
)


def _detect_project_language(root_path: str) -> Optional[str]:
    """Detect the primary language of a project from manifest files."""
    checks = [
        ("pyproject.toml", "python"),
        ("requirements.txt", "python"),
        ("setup.py", "python"),
        ("tsconfig.json", "typescript"),
        ("package.json", "javascript"),
        ("pom.xml", "java"),
        ("build.gradle", "java"),
        ("Cargo.toml", "rust"),
        ("go.mod", "go"),
    ]
    for filename, lang in checks:
        if os.path.exists(os.path.join(root_path, filename)):
            return lang
    return None


def truncate_content(content: str, max_chars: Optional[int] = None) -> str:
    """Cut the middle out of long text, keeping equal-sized head and tail."""
    limit = app_config.prompt_max_file_chars if max_chars is None else max_chars
    if len(content) <= limit:
        return content
    half = limit // 2
    tail = content[-half:] if half else ""
    return content[:half] + TRUNCATION_MARKER + tail


def compress_file_tree(files: Sequence[str], max_files: Optional[int] = None) -> List[str]:
    """At most max_files paths, source-looking paths first, original order otherwise kept."""
    limit = app_config.prompt_max_tree_files if max_files is None else max_files
    files = list(files)
    if len(files) <= limit:
        return files

    def _is_priority(f: str) -> bool:
        return any(d in f for d in _PRIORITY_DIRS) or f.endswith(_PRIORITY_EXTENSIONS)

    priority = [f for f in files if _is_priority(f)]
    rest = [f for f in files if not _is_priority(f)]
    return (priority + rest)[:limit]


def build_system_prompt(context: Optional[PromptContext] = None) -> str:
    """Assemble the system prompt from the directive modules and the project context."""
    context = context or PromptContext()
    parts = list(_CORE_MODULES)

    if context.root_path:
        language = _detect_project_language(context.root_path)
        project = f"<project>\nRoot: {context.root_path}"
        if language:
            project += f"\nPrimary language: {language}"
        parts.append(project + "\n</project>")

    if context.file_tree:
        parts.append(f"<files>{', '.join(compress_file_tree(context.file_tree))}</files>")

    if context.current_file:
        cf = context.current_file
        parts.append(
            f'<current file="{cf.name}" lang="{cf.language}">\n'
            f"{truncate_content(cf.content)}\n</current>"
        )

    parts.append(f"<tools_available>{AVAILABLE_TOOL_NAMES}</tools_available>")
    parts.append(_MOD_TOOL_MANDATE)
    return "\n\n".join(parts)
