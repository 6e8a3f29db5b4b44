from __future__ import annotations

import difflib
from pathlib import Path

from rich.console import Console
from rich.status import Status
from rich.syntax import Syntax
from rich.text import Text

from .blocks import render_diff_block
from .models import DiffBlock
from .scanner import CodeEnded, CodeStarted, DiffBlockFound, PlainText, RawCode, ScanEvent

# soft_wrap keeps long model lines intact while streaming
console = Console(soft_wrap=True, highlight=False)

LEXER_BY_SUFFIX = {
    ".py": "python",
    ".json": "json",
    ".json5": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".md": "markdown",
    ".toml": "toml",
    ".sh": "bash",
    ".js": "javascript",
    ".jsx": "jsx",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".html": "html",
    ".css": "css",
    ".sql": "sql",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
}


def lexer_for(file_path: str | None, language: str | None = None) -> str:
    if language and language.strip():
        return language.strip()
    return LEXER_BY_SUFFIX.get(Path(file_path or "").suffix.lower(), "text")


def highlight(body: str, lexer: str) -> Text:
    t = Syntax(body, lexer, theme="ansi_dark", word_wrap=False).highlight(body)
    return t[:-1] if t.plain.endswith("\n") else t


def numbered_diff_lines(original: str, updated: str, *, lexer: str, context_lines: int = 2) -> list[Text]:
    old_lines = original.splitlines()
    new_lines = updated.splitlines()
    matcher = difflib.SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)

    def row(ln: int, mark: str, body: str, style: str | None) -> Text:
        return Text(f"{ln:>4}", style=style or "dim") + Text(f" {mark} ") + highlight(body, lexer)

    out: list[Text] = []
    for group in matcher.get_grouped_opcodes(context_lines):
        out.append(Text("...", style="dim"))
        for tag, i1, i2, j1, j2 in group:
            if tag == "equal":
                out.extend(row(j + 1, " ", new_lines[j], None) for j in range(j1, j2))
                continue
            out.extend(row(i + 1, "-", old_lines[i], "bright_red on dark_red") for i in range(i1, i2))
            out.extend(row(j + 1, "+", new_lines[j], "bright_green on dark_green") for j in range(j1, j2))
    return out


class Renderer:
    def __init__(self, out: Console | None = None, silent: bool = False):
        self.console = out or console
        self.silent = silent
        self._status: Status | None = None

    def plain(self, text: str) -> None:
        self.console.print(text, end="", markup=False)

    def start_code(self) -> None:
        if self.silent or self._status is not None:
            return
        self._status = self.console.status("Generating code...", spinner="dots")
        self._status.start()

    def end_code(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None

    def diff_block(self, block: DiffBlock) -> None:
        self.console.print(Text(block.file_path, style="bold cyan"))
        self.console.print(Syntax(render_diff_block(block), lexer_for(block.file_path, block.language), theme="ansi_dark"))

    def raw_code(self, text: str) -> None:
        self.console.print(text, markup=False)

    def dispatch(self, event: ScanEvent) -> None:
        if isinstance(event, PlainText):
            self.plain(event.text)
        elif isinstance(event, CodeStarted):
            self.start_code()
        elif isinstance(event, CodeEnded):
            self.end_code()
        elif isinstance(event, DiffBlockFound):
            self.diff_block(event.block)
        elif isinstance(event, RawCode):
            self.raw_code(event.text)

    def info(self, message: str) -> None:
        self.console.print(message, markup=False)

    def success(self, message: str) -> None:
        self.console.print(Text(message, style="green"))

    def warning(self, message: str) -> None:
        self.console.print(Text(message, style="yellow"))

    def error(self, message: str) -> None:
        self.end_code()
        self.console.print(Text(message, style="bold red"))

    def change_preview(self, file_path: str, original: str, updated: str) -> None:
        if self.silent:
            return
        self.console.print(Text(f"\n{file_path}", style="bold"))
        lines = numbered_diff_lines(original, updated, lexer=lexer_for(file_path))
        if not lines:
            self.warning("(no diff; content is identical)")
            return
        for line in lines:
            self.console.print(line)
