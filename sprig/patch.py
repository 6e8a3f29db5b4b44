"""
[FILE SUMMARY]
context:
  INTENT:
    purpose: >
      Applies CURRENT/NEW diff blocks to the working tree as best-effort patches, and offers
      a read-only applicability check used to decide whether to re-prompt the model before
      anything is written.

  STRUCTURAL:
    responsibility: >
      Locates each block's CURRENT text in its target file (exact match first, then a
      whitespace-normalized match with indentation recovered from the first matching line),
      refuses ambiguous matches, creates missing files, and reports one outcome per block
      without aborting the batch.
    boundaries:
      owns:
        - Search/replace semantics for a single block (search_replace)
        - Dry-run planning with an in-memory overlay so later blocks see earlier edits
        - Writing results to disk, creating parent directories
        - Human-readable outcome summaries fed back to the model on retry
      does_not_own:
        - Extracting blocks from model output (owned by blocks.py)
        - Rendering previews (callers pass a preview callback)
    entrypoints:
      - search_replace
      - plan_block
      - check_blocks_applicability
      - apply_diff_blocks
[/FILE SUMMARY]
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .models import DiffBlock

log = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
NOT_FOUND = "not found"
AMBIGUOUS = "ambiguous"
ERROR = "error"

OK_STATUSES = (CREATED, UPDATED, UNCHANGED)

PreviewCallback = Callable[[str, str, str], None]


@dataclass(frozen=True)
class PatchOutcome:
    block: DiffBlock
    status: str
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status in OK_STATUSES


def replace_exactly_once(original: str, current: str, new: str) -> tuple[str | None, str]:
    matches = original.count(current) if current else 0
    if matches == 1:
        return (original.replace(current, new, 1), UPDATED)
    return (None, NOT_FOUND if matches == 0 else AMBIGUOUS)


def normalize_lines(text: str) -> str:
    return "\n".join(map(str.strip, text.split("\n")))


def leading_whitespace(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def reindent(text: str, old_prefix: str, new_prefix: str) -> str:
    def one(line: str) -> str:
        if not line.strip():
            return line
        body = line[len(old_prefix) :] if old_prefix and line.startswith(old_prefix) else line
        return f"{new_prefix}{body}"

    return "\n".join(map(one, text.split("\n")))


def search_replace(original: str, current: str, new: str) -> tuple[str | None, str]:
    if not current.strip():
        if original.strip():
            return (None, AMBIGUOUS)
        return (new, CREATED)

    updated, status = replace_exactly_once(original, current, new)
    if updated is not None or status == AMBIGUOUS:
        return (updated, status)

    normalized_file = normalize_lines(original)
    normalized_current = normalize_lines(current).strip("\n")
    matches = normalized_file.count(normalized_current) if normalized_current else 0
    if matches != 1:
        return (None, NOT_FOUND if matches == 0 else AMBIGUOUS)

    # only the first matching line's indentation is recovered
    line_no = normalized_file.count("\n", 0, normalized_file.find(normalized_current))
    file_indent = leading_whitespace(original.split("\n")[line_no])

    trimmed_current = current.strip("\n")
    first_line = next(filter(str.strip, trimmed_current.split("\n")), "")
    block_indent = leading_whitespace(first_line)

    return replace_exactly_once(
        original,
        reindent(trimmed_current, block_indent, file_indent),
        reindent(new, block_indent, file_indent),
    )


def resolve_target(base_dir: Path, file_path: str) -> Path | None:
    base = base_dir.resolve()
    target = (base / file_path).resolve()
    if target != base and base not in target.parents:
        return None
    return target


def read_existing(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8") if path.is_file() else None
    except (OSError, UnicodeDecodeError) as e:
        log.warning("Cannot read %s: %s", path, e)
        return None


def plan_block(
    block: DiffBlock,
    base_dir: Path,
    overlay: dict[Path, str] | None = None,
) -> tuple[PatchOutcome, Path | None, str | None]:
    target = resolve_target(base_dir, block.file_path)
    if target is None:
        return (PatchOutcome(block, ERROR, "path is outside the working tree"), None, None)

    original = overlay.get(target) if overlay and target in overlay else read_existing(target)
    if not original:
        return (PatchOutcome(block, CREATED), target, block.new_content)

    updated, status = search_replace(original, block.current_content, block.new_content)
    if updated is None:
        detail = (
            "CURRENT content matches more than one place in the file"
            if status == AMBIGUOUS
            else "CURRENT content was not found in the file"
        )
        return (PatchOutcome(block, status, detail), target, None)

    if updated == original:
        return (PatchOutcome(block, UNCHANGED, "replacement produced identical content"), target, None)

    return (PatchOutcome(block, UPDATED), target, updated)


def check_blocks_applicability(blocks: list[DiffBlock], base_dir: Path) -> tuple[bool, str]:
    overlay: dict[Path, str] = {}

    def one(block: DiffBlock) -> PatchOutcome:
        outcome, target, updated = plan_block(block, base_dir, overlay)
        if target is not None and updated is not None:
            overlay[target] = updated
        return outcome

    outcomes = list(map(one, blocks or []))
    return (all(o.ok for o in outcomes), summarize_outcomes(outcomes))


def apply_diff_blocks(
    blocks: list[DiffBlock],
    base_dir: Path,
    preview: PreviewCallback | None = None,
) -> list[PatchOutcome]:
    def apply_one(block: DiffBlock) -> PatchOutcome:
        outcome, target, updated = plan_block(block, base_dir)
        if not outcome.ok:
            log.warning("Could not apply block for %s: %s", block.file_path, outcome.status)
            return outcome
        if target is None or updated is None:
            return outcome

        if preview is not None:
            preview(block.file_path, read_existing(target) or "", updated)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(updated, encoding="utf-8")
        except OSError as e:
            log.warning("Failed to write %s: %s", target, e)
            return PatchOutcome(block, ERROR, str(e))
        return outcome

    return list(map(apply_one, blocks or []))


def summarize_outcomes(outcomes: list[PatchOutcome]) -> str:
    def one(outcome: PatchOutcome) -> str:
        line = f"- {outcome.block.file_path}: {outcome.status}"
        if outcome.detail:
            line += f" ({outcome.detail})"
        if outcome.ok:
            return line
        return f"{line}\n\n```{outcome.block.language}\n{outcome.block.current_content}\n```"

    return "\n".join(map(one, outcomes or []))


def changed_paths(outcomes: list[PatchOutcome], base_dir: Path) -> list[Path]:
    wrote = filter(lambda o: o.status in (CREATED, UPDATED), outcomes or [])
    return list(filter(None, map(lambda o: resolve_target(base_dir, o.block.file_path), wrote)))
