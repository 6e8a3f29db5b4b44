from pathlib import Path

from sprig.context import (
    collect_context_files,
    dedupe_keep_order,
    estimate_tokens,
    filter_paths,
    reload_context_files,
    resolve_paths_and_globs,
)
from sprig.prompts import DONE_MARKER, build_codegen_prompt, clean_commit_message


def make_tree(root: Path) -> None:
    (root / "src" / "pkg").mkdir(parents=True)
    (root / "src" / "a.py").write_text("a = 1\n", encoding="utf-8")
    (root / "src" / "pkg" / "b.py").write_text("b = 2\n", encoding="utf-8")
    (root / "src" / "logo.png").write_bytes(b"\x89PNG\r\n\x00\x00")
    (root / "node_modules").mkdir()
    (root / "node_modules" / "dep.js").write_text("x", encoding="utf-8")
    (root / "README.md").write_text("# readme\n", encoding="utf-8")


def test_dedupe_keep_order():
    assert dedupe_keep_order(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_resolve_directories_files_and_globs(tmp_path: Path):
    make_tree(tmp_path)

    resolved = resolve_paths_and_globs(["src", "README.md", "**/*.py", "missing.txt"], base_dir=tmp_path)

    assert resolved == [
        str(Path("src/a.py")),
        str(Path("src/logo.png")),
        str(Path("src/pkg/b.py")),
        "README.md",
    ]


def test_absolute_globs_resolve_from_their_anchor(tmp_path: Path):
    make_tree(tmp_path)
    pattern = str(tmp_path / "src" / "*.py")

    assert resolve_paths_and_globs([pattern], base_dir=tmp_path) == [str(Path("src/a.py"))]
    assert resolve_paths_and_globs([pattern], base_dir=tmp_path / "src" / "pkg") == [str(tmp_path / "src" / "a.py")]
    assert resolve_paths_and_globs(["/no-such-sprig-dir/*.py"], base_dir=tmp_path) == []


def test_collect_skips_binary_files_and_vendor_dirs(tmp_path: Path):
    make_tree(tmp_path)

    files = collect_context_files(["."], tmp_path)

    assert files == {
        "README.md": "# readme\n",
        str(Path("src/a.py")): "a = 1\n",
        str(Path("src/pkg/b.py")): "b = 2\n",
    }


def test_reload_picks_up_edits_and_keeps_deleted(tmp_path: Path):
    make_tree(tmp_path)
    files = collect_context_files(["src/a.py", "README.md"], tmp_path)

    (tmp_path / "src" / "a.py").write_text("a = 42\n", encoding="utf-8")
    (tmp_path / "README.md").unlink()

    assert reload_context_files(files, tmp_path) == {str(Path("src/a.py")): "a = 42\n", "README.md": "# readme\n"}


def test_filter_paths_uses_shell_patterns():
    paths = ["src/a.py", "src/b.ts", "README.md"]
    assert filter_paths(paths, "*.py") == ["src/a.py"]
    assert filter_paths(paths, "*") == paths


def test_codegen_prompt_lists_context_files():
    prompt = build_codegen_prompt({"src/a.py": "a = 1"})

    assert "### Contents of **src/a.py**" in prompt
    assert "```\na = 1\n```" in prompt
    assert DONE_MARKER in prompt


def test_clean_commit_message_strips_fences():
    assert clean_commit_message("```\nFix parser\n\n- handle CRLF\n```") == "Fix parser\n\n- handle CRLF"
    assert clean_commit_message("  Plain message  ") == "Plain message"
