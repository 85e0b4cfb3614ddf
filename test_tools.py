"""Tool implementations and dispatch, against a temporary project root."""

import shutil
import threading
import time

import pytest

from config import app_config
from tools import (
    TOOL_DEFINITIONS, ProjectContext, ToolCall, ToolName,
    edit_file, execute_tool, list_files, read_file, run_command, search_code, write_file,
)
from tools.dispatch import _HANDLERS
from tools.file_ops import ACCESS_DENIED
from tools.external_ops import COMMAND_BLOCKED


@pytest.fixture
def ctx(tmp_path):
    return ProjectContext(str(tmp_path))


# ----------------------------------------------------------------------
# read / write
# ----------------------------------------------------------------------

def test_write_then_read_preserves_bytes(ctx, tmp_path):
    content = "line one\r\nline two\n\ttabbed\r\n"
    result = write_file("src/deep/file.ts", content, context=ctx)
    assert result.success
    assert result.output == "File written: src/deep/file.ts (4 lines)"
    assert (tmp_path / "src" / "deep" / "file.ts").read_bytes() == content.encode("utf-8")

    read = read_file("src/deep/file.ts", context=ctx)
    assert read.success
    assert read.output == content


def test_write_overwrites_and_leaves_no_temp_files(ctx, tmp_path):
    write_file("a.ts", "first", context=ctx)
    write_file("a.ts", "second", context=ctx)
    assert (tmp_path / "a.ts").read_text() == "second"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["a.ts"]


def test_write_rejects_disallowed_extension(ctx, tmp_path):
    result = write_file("payload.exe", "MZ", context=ctx)
    assert not result.success
    assert result.error == "File type not allowed: .exe"
    assert not (tmp_path / "payload.exe").exists()


def test_write_rejects_denied_path(ctx, tmp_path):
    result = write_file(".env", "KEY=1", context=ctx)
    assert not result.success
    assert result.error == ACCESS_DENIED
    assert not (tmp_path / ".env").exists()


def test_write_to_directory_fails(ctx, tmp_path):
    (tmp_path / "src").mkdir()
    result = write_file("src", "x", context=ctx)
    assert not result.success


def test_read_missing_file(ctx):
    result = read_file("nope.ts", context=ctx)
    assert not result.success
    assert result.error == "File not found: nope.ts"


def test_read_outside_root_is_denied(ctx):
    result = read_file("../../etc/passwd", context=ctx)
    assert not result.success
    assert result.error == ACCESS_DENIED


# ----------------------------------------------------------------------
# edit
# ----------------------------------------------------------------------

def test_edit_replaces_unique_match(ctx, tmp_path):
    (tmp_path / "a.ts").write_text("const a = 1;\nconst b = 2;\n")
    result = edit_file("a.ts", "const b = 2;", "const b = 3;", context=ctx)
    assert result.success
    assert result.output == "Edit applied to: a.ts"
    assert (tmp_path / "a.ts").read_text() == "const a = 1;\nconst b = 3;\n"


def test_edit_missing_search_leaves_file_untouched(ctx, tmp_path):
    (tmp_path / "a.ts").write_text("const a = 1;\n")
    result = edit_file("a.ts", "const z = 0;", "const z = 1;", context=ctx)
    assert not result.success
    assert result.error == "Search string not found in file"
    assert (tmp_path / "a.ts").read_text() == "const a = 1;\n"


def _numbered(start, stop):
    return "\n".join(f"line{i:03d}" for i in range(start, stop))


def test_edit_delete_boundary_succeeds(ctx, tmp_path):
    (tmp_path / "big.txt").write_text(_numbered(0, 100))
    # 51 lines replaced by 1 line deletes exactly 50
    result = edit_file("big.txt", _numbered(10, 61), "gone", context=ctx, max_delete_lines=50)
    assert result.success
    assert len((tmp_path / "big.txt").read_text().split("\n")) == 50


def test_edit_delete_over_limit_fails(ctx, tmp_path):
    original = _numbered(0, 100)
    (tmp_path / "big.txt").write_text(original)
    result = edit_file("big.txt", _numbered(10, 62), "gone", context=ctx, max_delete_lines=50)
    assert not result.success
    assert result.error == "Cannot delete more than 50 lines at once (trying to delete 51)"
    assert (tmp_path / "big.txt").read_text() == original


def test_edit_ambiguous_match_fails_when_uniqueness_required(ctx, tmp_path):
    (tmp_path / "a.ts").write_text("x = 1\nx = 1\n")
    result = edit_file("a.ts", "x = 1", "x = 2", context=ctx, require_unique=True)
    assert not result.success
    assert "matches 2 locations" in result.error
    assert (tmp_path / "a.ts").read_text() == "x = 1\nx = 1\n"


def test_edit_ambiguous_match_replaces_first_when_allowed(ctx, tmp_path):
    (tmp_path / "a.ts").write_text("x = 1\nx = 1\n")
    result = edit_file("a.ts", "x = 1", "x = 2", context=ctx, require_unique=False)
    assert result.success
    assert (tmp_path / "a.ts").read_text() == "x = 2\nx = 1\n"


def test_edit_empty_search_fails(ctx, tmp_path):
    (tmp_path / "a.ts").write_text("abc")
    result = edit_file("a.ts", "", "x", context=ctx)
    assert not result.success


def test_edit_refuses_non_utf8_file(ctx, tmp_path):
    raw = b"\xff\xfe header\nconst a = 1;\n"
    (tmp_path / "legacy.ts").write_bytes(raw)
    result = edit_file("legacy.ts", "const a = 1;", "const a = 2;", context=ctx)
    assert not result.success
    assert result.error == "Cannot edit legacy.ts: file is not valid UTF-8"
    assert (tmp_path / "legacy.ts").read_bytes() == raw


# ----------------------------------------------------------------------
# list / search
# ----------------------------------------------------------------------

def test_list_files_recursive(project):
    (project / ".git").mkdir()
    (project / ".git" / "HEAD").write_text("ref")
    (project / "node_modules").mkdir()
    (project / "node_modules" / "x.js").write_text("")
    (project / ".env").write_text("KEY=1")

    result = list_files(".", context=ProjectContext(str(project)))
    assert result.success
    assert result.output.split("\n") == ["a.ts", "lib/", "lib/b.ts"]


def test_list_files_respects_gitignore(project):
    (project / ".gitignore").write_text("generated/\n*.log\n")
    (project / "generated").mkdir()
    (project / "generated" / "out.ts").write_text("")
    (project / "debug.log").write_text("")

    lines = list_files(".", context=ProjectContext(str(project))).output.split("\n")
    assert "a.ts" in lines and "lib/b.ts" in lines and ".gitignore" in lines
    assert not any(line.startswith("generated") for line in lines)
    assert "debug.log" not in lines


def test_list_files_sees_gitignore_edits(project):
    ctx = ProjectContext(str(project))
    (project / ".gitignore").write_text("*.log\n")
    (project / "gen").mkdir()
    (project / "gen" / "x.ts").write_text("")
    assert "gen/x.ts" in list_files(".", context=ctx).output.split("\n")

    assert edit_file(".gitignore", "*.log", "*.log\ngen/", context=ctx).success
    lines = list_files(".", context=ctx).output.split("\n")
    assert not any(line.startswith("gen") for line in lines)


def test_list_files_sees_gitignore_changed_by_command(project):
    ctx = ProjectContext(str(project))
    (project / "gen").mkdir()
    (project / "gen" / "x.ts").write_text("")
    assert "gen/x.ts" in list_files(".", context=ctx).output.split("\n")

    assert run_command("echo gen/ >> .gitignore", context=ctx).success
    lines = list_files(".", context=ctx).output.split("\n")
    assert not any(line.startswith("gen") for line in lines)


def test_list_files_subdirectory_is_relative_to_it(project):
    result = list_files("lib", context=ProjectContext(str(project)))
    assert result.output == "b.ts"


def test_list_files_cap(ctx, tmp_path, monkeypatch):
    monkeypatch.setattr(app_config, "list_files_max_entries", 200)
    for i in range(250):
        (tmp_path / f"f{i:03d}.txt").write_text("")
    result = list_files(".", context=ctx)
    assert result.success
    assert len(result.output.split("\n")) == 200


def test_list_files_not_a_directory(project):
    result = list_files("a.ts", context=ProjectContext(str(project)))
    assert not result.success
    assert result.error == "Not a directory: a.ts"


needs_search_tool = pytest.mark.skipif(
    not (shutil.which("rg") or shutil.which("grep")), reason="no search utility available"
)


@needs_search_tool
def test_search_code_finds_matches(project):
    (project / "node_modules").mkdir()
    (project / "node_modules" / "dep.ts").write_text("export const b = 2;\n")
    result = search_code("const b", context=ProjectContext(str(project)))
    assert result.success
    assert result.output.strip() == "lib/b.ts:1:export const b = 2;"


@needs_search_tool
def test_search_code_no_matches(project):
    result = search_code("definitelyNotPresent", context=ProjectContext(str(project)))
    assert result.success
    assert result.output == "No matches found"


@needs_search_tool
def test_search_code_caps_results(ctx, tmp_path):
    (tmp_path / "many.ts").write_text("\n".join("hit();" for _ in range(80)))
    result = search_code("hit", context=ctx, max_results=50)
    lines = result.output.split("\n")
    assert len(lines) == 51
    assert lines[-1] == "... [30 more matches truncated]"


# ----------------------------------------------------------------------
# run_command
# ----------------------------------------------------------------------

def test_run_command_success(ctx):
    result = run_command("echo hello", context=ctx)
    assert result.success
    assert result.output == "hello\n"


def test_run_command_runs_in_project_root(ctx, tmp_path):
    (tmp_path / "marker.txt").write_text("")
    result = run_command("ls", context=ctx)
    assert "marker.txt" in result.output


def test_run_command_blocked(ctx, tmp_path):
    result = run_command("sudo rm -rf /", context=ctx)
    assert not result.success
    assert result.error == COMMAND_BLOCKED


def test_run_command_nonzero_exit_carries_stderr(ctx):
    result = run_command("echo oops 1>&2; exit 3", context=ctx)
    assert not result.success
    assert "exit code: 3" in result.error
    assert "oops" in result.error


def test_run_command_timeout(ctx):
    result = run_command("sleep 5", context=ctx, timeout=0.5)
    assert not result.success
    assert result.error.startswith("Command timed out after 0.5s")


def test_run_command_does_not_wait_for_background_children(ctx):
    started = time.monotonic()
    result = run_command("sleep 8 & echo started", context=ctx, timeout=2)
    assert time.monotonic() - started < 4
    assert result.success
    assert result.output == "started\n"


def test_run_command_timeout_kills_background_children(ctx):
    started = time.monotonic()
    result = run_command("sleep 8 & sleep 8", context=ctx, timeout=0.5)
    assert time.monotonic() - started < 4
    assert not result.success
    assert result.error.startswith("Command timed out after 0.5s")


def test_run_command_cancelled(ctx):
    cancel = threading.Event()
    cancel.set()
    result = run_command("sleep 5", context=ctx, cancel=cancel)
    assert not result.success
    assert result.error == "Command cancelled"


def test_run_command_output_cap(ctx):
    result = run_command("head -c 5000 /dev/zero | tr '\\0' a", context=ctx, max_output_bytes=100)
    assert result.success
    assert result.output.startswith("a" * 100)
    assert "output truncated at 100 bytes" in result.output


# ----------------------------------------------------------------------
# dispatch
# ----------------------------------------------------------------------

def test_every_tool_has_a_handler_and_schema():
    assert set(_HANDLERS) == set(ToolName)
    assert {t["name"] for t in TOOL_DEFINITIONS} == {t.value for t in ToolName}


def test_execute_tool_unknown_name(ctx):
    result = execute_tool(ToolCall(name="delete_everything", input={}), ctx)
    assert not result.success
    assert result.error == "Unknown tool: delete_everything"


def test_execute_tool_missing_argument(ctx):
    result = execute_tool(ToolCall(name="read_file", input={}), ctx)
    assert not result.success
    assert result.error.startswith("Invalid arguments for read_file")


def test_execute_tool_ignores_model_supplied_control_args(ctx, tmp_path):
    (tmp_path / "a.ts").write_text("ok")
    result = execute_tool(
        ToolCall(name="read_file", input={"path": "a.ts", "context": "/etc", "backend": None}), ctx
    )
    assert result.success
    assert result.output == "ok"


def test_execute_tool_list_files(project):
    result = execute_tool(ToolCall(name="list_files", input={"path": "."}), ProjectContext(str(project)))
    assert result.success
    assert "a.ts" in result.output.split("\n")
    assert "lib/b.ts" in result.output.split("\n")


def test_model_text_for_results(ctx):
    ok = execute_tool(ToolCall(name="run_command", input={"command": "true"}), ctx)
    assert ok.success and ok.model_text() == "Success"
    blocked = execute_tool(ToolCall(name="run_command", input={"command": "sudo ls"}), ctx)
    assert blocked.model_text() == f"Error: {COMMAND_BLOCKED}"
