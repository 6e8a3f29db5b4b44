from __future__ import annotations

import fnmatch
import logging
import math
from pathlib import Path

log = logging.getLogger(__name__)

SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build"}
BINARY_SNIFF_BYTES = 8000


def dedupe_keep_order(xs: list[str]) -> list[str]:
    seen = set()

    def keep(x: str) -> bool:
        if x in seen:
            return False
        seen.add(x)
        return True

    return list(filter(keep, xs or []))


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text or "") / 4)


def is_binary_file(path: Path) -> bool:
    try:
        with path.open("rb") as f:
            return b"\0" in f.read(BINARY_SNIFF_BYTES)
    except OSError:
        return True


def read_text_or_none(path: Path) -> str | None:
    if not path.is_file() or is_binary_file(path):
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        log.warning("Skipping unreadable file %s: %s", path, e)
        return None


def walk_files(directory: Path) -> list[Path]:
    def visible(p: Path) -> bool:
        return not any(part in SKIP_DIRS for part in p.relative_to(directory).parts)

    return sorted(filter(lambda p: p.is_file() and visible(p), directory.rglob("*")))


def glob_files(pattern: str, base_dir: Path) -> list[Path]:
    anchor = Path(pattern).anchor
    root, rest = (Path(anchor), pattern[len(anchor) :]) if Path(pattern).is_absolute() else (base_dir, pattern)
    try:
        return sorted(filter(lambda m: m.is_file(), root.glob(rest)))
    except (NotImplementedError, ValueError) as e:
        log.warning("Ignoring pattern %s: %s", pattern, e)
        return []


def resolve_paths_and_globs(values: list[str], *, base_dir: Path) -> list[str]:
    base = base_dir.resolve()

    def to_rel(p: Path) -> str:
        resolved = p.resolve()
        return str(resolved.relative_to(base)) if base in resolved.parents else str(p)

    def one(v: str) -> list[str]:
        s = (v or "").strip()
        if not s:
            return []

        p = base_dir / s
        if p.is_dir():
            return list(map(to_rel, walk_files(p)))
        if p.is_file():
            return [to_rel(p)]
        return list(map(to_rel, glob_files(s, base_dir)))

    return dedupe_keep_order(sum(map(one, values or []), []))


def collect_context_files(values: list[str], base_dir: Path, into: dict[str, str] | None = None) -> dict[str, str]:
    out = dict(into or {})
    for rel in resolve_paths_and_globs(values, base_dir=base_dir):
        txt = read_text_or_none(base_dir / rel)
        if txt is not None:
            out[rel] = txt
    return out


def reload_context_files(files: dict[str, str], base_dir: Path) -> dict[str, str]:
    def one(item: tuple[str, str]) -> tuple[str, str]:
        rel, previous = item
        txt = read_text_or_none(base_dir / rel)
        return (rel, previous if txt is None else txt)

    return dict(map(one, files.items()))


def filter_paths(paths: list[str], pattern: str) -> list[str]:
    return list(filter(lambda p: fnmatch.fnmatchcase(p, pattern), paths or []))


def total_tokens(files: dict[str, str]) -> int:
    return sum(map(estimate_tokens, files.values()))
