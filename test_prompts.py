"""System prompt composition and context compression."""

from agent.prompts import (
    TRUNCATION_MARKER, CurrentFile, PromptContext, build_system_prompt, compress_file_tree, truncate_content,
)


def test_truncate_short_content_unchanged():
    assert truncate_content("abc", max_chars=10) == "abc"


def test_truncate_keeps_head_and_tail():
    content = "H" * 60 + "M" * 100 + "T" * 60
    out = truncate_content(content, max_chars=100)
    assert out == "H" * 50 + TRUNCATION_MARKER + "T" * 50


def test_compress_small_tree_unchanged():
    files = ["b.md", "a.ts"]
    assert compress_file_tree(files, max_files=5) == files


def test_compress_prefers_source_paths():
    files = [f"docs/page{i}.md" for i in range(10)] + ["src/app.tsx", "package.json", "server/main.py"]
    out = compress_file_tree(files, max_files=5)
    assert len(out) == 5
    assert out[:3] == ["src/app.tsx", "package.json", "server/main.py"]
    assert out[3:] == ["docs/page0.md", "docs/page1.md"]


def test_compress_never_exceeds_limit():
    files = [f"src/f{i}.ts" for i in range(300)]
    assert len(compress_file_tree(files, max_files=100)) == 100


def test_prompt_contains_directives_and_mandate():
    prompt = build_system_prompt()
    for tag in ("<role>", "<environment>", "<autonomy>", "<communication>", "<workflow>",
                "<code_rules>", "<tool_usage>"):
        assert tag in prompt
    assert prompt.rstrip().endswith("instead of calling a tool.")
    assert "You MUST use the provided tools" in prompt


def test_prompt_injects_project_context(tmp_path):
    (tmp_path / "package.json").write_text("{}")
    context = PromptContext(
        file_tree=("a.ts", "lib/b.ts"),
        current_file=CurrentFile(name="a.ts", language="typescript", content="export const a = 1;"),
        root_path=str(tmp_path),
    )
    prompt = build_system_prompt(context)
    assert "<files>a.ts, lib/b.ts</files>" in prompt
    assert '<current file="a.ts" lang="typescript">\nexport const a = 1;\n</current>' in prompt
    assert "Primary language: javascript" in prompt


def test_prompt_context_from_request_body():
    context = PromptContext.from_dict({
        "file_tree": ["x.py"],
        "current_file": {"name": "x.py", "language": "python", "content": "print(1)"},
    })
    assert context.file_tree == ("x.py",)
    assert context.current_file == CurrentFile("x.py", "python", "print(1)")
    assert PromptContext.from_dict(None).current_file is None
