from __future__ import annotations

from .models import DiffBlock

FENCE = "```"
CURRENT_MARKER = "<<<<<<< CURRENT"
DIVIDER = "\n=======\n"
NEW_MARKER = "\n>>>>>>> NEW"
CLOSING_FENCE = "\n```"


def render_diff_block(block: DiffBlock) -> str:
    current = f"{block.current_content}\n" if block.current_content else ""
    new = f"{block.new_content}\n" if block.new_content else ""
    return (
        f"{FENCE}{block.language}\n"
        f"{CURRENT_MARKER} {block.file_path}\n"
        f"{current}=======\n"
        f"{new}>>>>>>> NEW\n"
        f"{FENCE}"
    )


def _parse_halves(text: str, marker_at: int) -> tuple[str, str, str, int] | None:
    path_end = text.find("\n", marker_at)
    if path_end < 0:
        return None
    file_path = text[marker_at + len(CURRENT_MARKER) : path_end].strip()
    if not file_path:
        return None

    divider_at = text.find(DIVIDER, path_end)
    if divider_at < 0:
        return None
    current = text[path_end + 1 : divider_at]

    # the divider's trailing newline doubles as the NEW marker's leading one when NEW is empty
    new_from = divider_at + len(DIVIDER) - 1
    new_at = text.find(NEW_MARKER, new_from)
    if new_at < 0:
        return None
    new = text[new_from + 1 : new_at]

    return (file_path, current, new, new_at + len(NEW_MARKER))


def parse_diff_block(text: str) -> DiffBlock | None:
    fence_at = text.find(FENCE)
    if fence_at < 0:
        return None
    language_end = text.find("\n", fence_at)
    if language_end < 0:
        return None
    language = text[fence_at + len(FENCE) : language_end].strip()

    marker_at = text.find(CURRENT_MARKER, language_end)
    if marker_at < 0:
        return None

    halves = _parse_halves(text, marker_at)
    if halves is None:
        return None
    file_path, current, new, end = halves

    if text.find(CLOSING_FENCE, end) < 0:
        return None

    return DiffBlock(language, file_path, current, new)


def _language_before(text: str, marker_at: int) -> str:
    if marker_at == 0:
        return ""
    line_start = text.rfind("\n", 0, marker_at - 1) + 1
    line = text[line_start:marker_at].strip()
    return line[len(FENCE) :].strip() if line.startswith(FENCE) else ""


def extract_diff_blocks(text: str) -> list[DiffBlock]:
    blocks: list[DiffBlock] = []
    pos = 0
    while True:
        marker_at = text.find(CURRENT_MARKER, pos)
        if marker_at < 0:
            return blocks

        at_line_start = marker_at == 0 or text[marker_at - 1] == "\n"
        halves = _parse_halves(text, marker_at) if at_line_start else None
        if halves is None:
            pos = marker_at + len(CURRENT_MARKER)
            continue

        file_path, current, new, end = halves
        blocks.append(DiffBlock(_language_before(text, marker_at), file_path, current, new))
        pos = end
