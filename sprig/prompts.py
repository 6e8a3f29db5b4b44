from __future__ import annotations

DONE_MARKER = "======= DONE ======="

CODEGEN_INSTRUCTIONS = """## Instructions

Act as an expert software developer. Always use best practices when coding and respect the
conventions already used in the code base.

1. Decide if you need to propose *CURRENT/NEW* Block edits to any files not already added to
   the chat. You can create new files without asking, but ask for any existing file you need
   to edit that is not in the context.
2. Think step-by-step and explain the needed changes in a few short sentences.
3. Describe each change with a *CURRENT/NEW* Block per the example below.
   ONLY EVER RETURN CODE IN A *CURRENT/NEW* BLOCK!
4. When you have finished, print the line: """ + DONE_MARKER + """

## *CURRENT/NEW* Block Rules

1. Start with three backticks and the language name, eg: ```python
2. On the next line: seven < chars, the word CURRENT, and the file path: <<<<<<< CURRENT path/to/file.py
3. Then a contiguous chunk of lines to search for in the existing source code
4. Then the dividing line: =======
5. Then the lines that replace them
6. Then seven > chars and the word NEW: >>>>>>> NEW
7. Close the block with three backticks on their own line: ```
8. Every *CURRENT* area must *EXACTLY MATCH* the existing source code, character for
   character, including comments and docstrings, and must be unique within the file.
9. To create a new file leave the *CURRENT* area empty and give the full path of the file.
10. To move code, use one block to remove it and another block to add it.
"""

CODEGEN_EXAMPLE = """## Example of a *CURRENT/NEW* Block

```python
<<<<<<< CURRENT path/to/file.py
def greet():
    print("hello")
=======
def greet(name):
    print(f"hello {name}")
>>>>>>> NEW
```
"""

CODEGEN_COULDNT_APPLY = """Some of the *CURRENT/NEW* Blocks in your last response could not be applied.
For each failed block below, the *CURRENT* area either did not match the file exactly or matched
more than one place. Resend the complete set of changes, copying the *CURRENT* lines verbatim
from the file contents in the context and including enough surrounding lines to make them unique."""

CONTINUE_PROMPT = f"If there is more, continue, otherwise print the string '{DONE_MARKER}'."

DOCS_INSTRUCTIONS = """## Documentation Instructions

Write or improve the documentation of the files listed below. Add module, class and function
documentation in the idiom of each file's language and update any markdown files that describe
them. Only change documentation: never change how the code behaves. Describe every change with a
*CURRENT/NEW* Block."""

UNIT_TESTS_INSTRUCTIONS = """## Unit Test Instructions

Create unit tests for the files listed below. Use the test framework, naming and directory layout
the project already uses. Put new test files in a *CURRENT/NEW* Block with an empty *CURRENT* area
and extend existing test files with ordinary *CURRENT/NEW* Blocks. Always show filenames for the
generated code."""

REVIEW_INSTRUCTIONS = """## Code Review Instructions

Review the code diff below as a senior engineer would. Structure the review with these sections:

# Code Review: <short title>
## Changes Overview
## Reason for Changes
## Detailed Description
## Potential Bugs and Recommended Fixes

Quote the relevant lines for each problem you find. Do not use *CURRENT/NEW* Blocks in a review.
When you have finished, print the line: """ + DONE_MARKER


def file_section(name: str, content: str) -> str:
    return f"### Contents of **{name}**\n\n```\n{content}\n```\n"


def build_codegen_prompt(context_files: dict[str, str]) -> str:
    sections = "\n".join(map(lambda kv: file_section(*kv), context_files.items()))
    listing = "\n".join(context_files.keys())
    return (
        f"{CODEGEN_INSTRUCTIONS}\n"
        f"## Context Files\n\n{sections or 'No context files provided.'}\n\n"
        f"## Directory structure\n\n{listing}\n\n"
        f"{CODEGEN_INSTRUCTIONS}\n{CODEGEN_EXAMPLE}"
    )


def build_request_prompt(prompt: str) -> str:
    return (
        f"### Request\n\n{prompt}\n\n"
        "### Note\n\n"
        "Whenever possible, break up the changes into pieces and make sure every change is in its own "
        "CURRENT / NEW block."
    )


def build_docs_request(files: list[str], extra: str = "") -> str:
    listing = "\n".join(files)
    request = f"{DOCS_INSTRUCTIONS}\n\n### Files to document\n\n{listing}"
    return build_request_prompt(f"{request}\n\n{extra.strip()}" if extra.strip() else request)


def build_unit_tests_request(files: list[str], diff: str = "") -> str:
    listing = "\n".join(files)
    request = f"{UNIT_TESTS_INSTRUCTIONS}\n\n### Files to test\n\n{listing}"
    if diff.strip():
        request += f"\n\n### Code Diff\n\n```diff\n{diff}\n```"
    return build_request_prompt(request)


def build_review_prompt(diff: str) -> str:
    return f"{REVIEW_INSTRUCTIONS}\n\n### Code Diff\n\n```diff\n{diff}\n```"


def build_couldnt_apply_prompt(summary: str) -> str:
    return f"{CODEGEN_COULDNT_APPLY}\n\n{summary}"


def build_commit_message_prompt(diff: str) -> str:
    return (
        "Generate a concise and meaningful git commit message for the changes below. "
        "Use a short summary line under 72 characters, a blank line, then a few bullet points "
        "if needed. Do not add any commentary other than the commit message itself.\n\n"
        f"```diff\n{diff}\n```"
    )


def clean_commit_message(text: str) -> str:
    s = (text or "").strip()
    start = s.find("```")
    if start < 0:
        return s
    body_start = s.find("\n", start)
    end = s.find("```", body_start + 1) if body_start >= 0 else -1
    if body_start < 0 or end < 0:
        return s.replace("```", "").strip()
    return s[body_start + 1 : end].strip()
