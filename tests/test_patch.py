from pathlib import Path

import pytest

from sprig.blocks import extract_diff_blocks
from sprig.models import DiffBlock
from sprig.patch import (
    AMBIGUOUS,
    CREATED,
    ERROR,
    NOT_FOUND,
    UNCHANGED,
    UPDATED,
    apply_diff_blocks,
    changed_paths,
    check_blocks_applicability,
    search_replace,
)


def block(path: str, current: str, new: str) -> DiffBlock:
    return DiffBlock("", path, current, new)


def test_exact_match_replaces_only_that_occurrence(tmp_path: Path):
    original = "alpha = 1\nbeta = 2\ngamma = 3\n\n# trailing   \n"
    (tmp_path / "vars.py").write_text(original, encoding="utf-8")

    outcomes = apply_diff_blocks([block("vars.py", "beta = 2", "beta = 20")], tmp_path)

    assert [o.status for o in outcomes] == [UPDATED]
    assert (tmp_path / "vars.py").read_text(encoding="utf-8") == original.replace("beta = 2", "beta = 20")


def test_ambiguous_match_writes_nothing(tmp_path: Path):
    original = "foo()\nbar()\nfoo()\n"
    (tmp_path / "calls.py").write_text(original, encoding="utf-8")

    outcomes = apply_diff_blocks([block("calls.py", "foo()", "baz()")], tmp_path)

    assert [o.status for o in outcomes] == [AMBIGUOUS]
    assert (tmp_path / "calls.py").read_text(encoding="utf-8") == original


def test_ambiguous_whitespace_match_writes_nothing(tmp_path: Path):
    original = "class A:\n    def run(self):\n        return 1\n\n\nclass B:\n    def run(self):\n        return 1\n"
    (tmp_path / "runs.py").write_text(original, encoding="utf-8")

    edit = block("runs.py", "def run(self):\n    return 1", "def run(self):\n    return 2")
    outcomes = apply_diff_blocks([edit], tmp_path)

    assert [o.status for o in outcomes] == [AMBIGUOUS]
    assert (tmp_path / "runs.py").read_text(encoding="utf-8") == original


def test_missing_file_is_created_with_new_content(tmp_path: Path):
    outcomes = apply_diff_blocks([block("pkg/sub/new.py", "", "print('new')\n")], tmp_path)

    assert [o.status for o in outcomes] == [CREATED]
    assert (tmp_path / "pkg" / "sub" / "new.py").read_text(encoding="utf-8") == "print('new')\n"


def test_empty_file_is_overwritten(tmp_path: Path):
    (tmp_path / "empty.txt").write_text("", encoding="utf-8")

    outcomes = apply_diff_blocks([block("empty.txt", "anything", "content")], tmp_path)

    assert outcomes[0].status == CREATED
    assert (tmp_path / "empty.txt").read_text(encoding="utf-8") == "content"


def test_failed_block_does_not_stop_the_batch(tmp_path: Path):
    (tmp_path / "a.txt").write_text("one\ntwo\n", encoding="utf-8")
    (tmp_path / "b.txt").write_text("three\n", encoding="utf-8")

    outcomes = apply_diff_blocks(
        [
            block("a.txt", "missing", "x"),
            block("b.txt", "three", "THREE"),
            block("../escape.txt", "", "nope"),
        ],
        tmp_path,
    )

    assert [o.status for o in outcomes] == [NOT_FOUND, UPDATED, ERROR]
    assert (tmp_path / "b.txt").read_text(encoding="utf-8") == "THREE\n"
    assert not (tmp_path.parent / "escape.txt").exists()
    assert changed_paths(outcomes, tmp_path) == [(tmp_path / "b.txt").resolve()]


def test_later_blocks_see_earlier_writes(tmp_path: Path):
    (tmp_path / "f.txt").write_text("a\nb\n", encoding="utf-8")

    outcomes = apply_diff_blocks([block("f.txt", "a", "a2"), block("f.txt", "a2\nb", "a3\nb3")], tmp_path)

    assert [o.status for o in outcomes] == [UPDATED, UPDATED]
    assert (tmp_path / "f.txt").read_text(encoding="utf-8") == "a3\nb3\n"


def test_preview_callback_receives_before_and_after(tmp_path: Path):
    (tmp_path / "f.txt").write_text("old\n", encoding="utf-8")
    seen = []

    apply_diff_blocks([block("f.txt", "old", "new")], tmp_path, preview=lambda *args: seen.append(args))

    assert seen == [("f.txt", "old\n", "new\n")]


def test_identical_replacement_is_unchanged(tmp_path: Path):
    (tmp_path / "f.txt").write_text("same\n", encoding="utf-8")

    outcomes = apply_diff_blocks([block("f.txt", "same", "same")], tmp_path)

    assert outcomes[0].status == UNCHANGED
    assert outcomes[0].ok


def test_applicability_check_is_read_only(tmp_path: Path):
    (tmp_path / "f.txt").write_text("x = 1\n", encoding="utf-8")

    ok, summary = check_blocks_applicability(
        [block("f.txt", "x = 1", "x = 2"), block("f.txt", "x = 2", "x = 3"), block("g.txt", "", "new")],
        tmp_path,
    )

    assert ok
    assert "f.txt: updated" in summary
    assert "g.txt: created" in summary
    assert (tmp_path / "f.txt").read_text(encoding="utf-8") == "x = 1\n"
    assert not (tmp_path / "g.txt").exists()


def test_applicability_summary_lists_failures(tmp_path: Path):
    (tmp_path / "f.txt").write_text("x = 1\n", encoding="utf-8")

    ok, summary = check_blocks_applicability([block("f.txt", "y = 1", "y = 2")], tmp_path)

    assert not ok
    assert "f.txt: not found" in summary
    assert "```\ny = 1\n```" in summary


def test_missing_text_leaves_content_alone():
    original = "\n        function example() {\n          console.log('Old content')\n        }\n        "

    updated, status = search_replace(original, "console.log('Non-existent content')", "console.log('New content')")

    assert updated is None
    assert status == NOT_FOUND


def test_empty_current_against_empty_file_creates():
    assert search_replace("", "", "console.log('New content')") == ("console.log('New content')", CREATED)


def test_empty_current_against_non_empty_file_is_ambiguous():
    assert search_replace("existing\n", "", "new") == (None, AMBIGUOUS)


@pytest.mark.parametrize(
    "original, current, new, expected",
    [
        (
            "function example() {\n  console.log('Old content')\n}",
            "console.log('Old content')",
            "console.log('New content')",
            "function example() {\n  console.log('New content')\n}",
        ),
        (
            "function example() {\n  console.log('Old content')\n}",
            "  console.log('Old content')",
            "  console.log('New content')",
            "function example() {\n  console.log('New content')\n}",
        ),
        (
            "  function example() {\n    console.log('Old content')\n  }",
            "    console.log('Old content')",
            "    console.log('New content')",
            "  function example() {\n    console.log('New content')\n  }",
        ),
        (
            "  function example() {\n    console.log('Old content')\n  }",
            "  function example() {\n    console.log('Old content')\n  }",
            "  # This is a comment\n  function example() {\n    # here is a new comment\n    console.log('Old content')\n  }",
            "  # This is a comment\n  function example() {\n    # here is a new comment\n    console.log('Old content')\n  }",
        ),
    ],
)
def test_search_replace_keeps_indentation(original, current, new, expected):
    updated, status = search_replace(original, current, new)
    assert status == UPDATED
    assert updated == expected


def test_indentation_is_recovered_from_first_matching_line():
    original = "class A:\n    def f(self):\n        return 1\n"

    updated, status = search_replace(original, "def f(self):\n    return 1", "def f(self):\n    return 2")

    assert status == UPDATED
    assert updated == "class A:\n    def f(self):\n        return 2\n"


def test_extracted_block_applies_with_reindentation():
    response = """Here is some text
```typescript
<<<<<<< CURRENT src/managers/ShellManager.ts
constructor(private options: ClovingGPTOptions) {
  options.silent = getConfig(options).globalSilent || false
  this.gpt = new ClovingGPT(options)
}
=======
constructor(private options: ClovingGPTOptions) {
  options.silent = getConfig(options).globalSilent || false
  options.exec = options.exec || false
  this.gpt = new ClovingGPT(options)
}
>>>>>>> NEW
```

That is the current content of the file."""
    existing = """class ShellManager {
  private gpt: ClovingGPT

  constructor(private options: ClovingGPTOptions) {
    options.silent = getConfig(options).globalSilent || false
    this.gpt = new ClovingGPT(options)
  }
}"""

    [parsed] = extract_diff_blocks(response)
    updated, status = search_replace(existing, parsed.current_content, parsed.new_content)

    assert parsed.language == "typescript"
    assert status == UPDATED
    assert updated == """class ShellManager {
  private gpt: ClovingGPT

  constructor(private options: ClovingGPTOptions) {
    options.silent = getConfig(options).globalSilent || false
    options.exec = options.exec || false
    this.gpt = new ClovingGPT(options)
  }
}"""
