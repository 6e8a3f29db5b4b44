"""
[FILE SUMMARY]
context:
  INTENT:
    purpose: >
      Incrementally splits normalized model output into plain prose and fenced code regions
      while it streams, recognising CURRENT/NEW edit blocks as soon as their closing fence
      arrives, no matter how the text was chunked on the wire.

  STRUCTURAL:
    responsibility: >
      Owns the PLAIN / AWAITING_BOUNDARY / CODE state machine and the look-ahead buffering
      needed when a fence marker is split across appends. Emits ordered ScanEvents; it does
      no rendering and no file I/O.
    boundaries:
      owns:
        - Fence start detection ("```" at the start of a line)
        - Fence end detection (first "\\n```" after the opening fence)
        - Hold-back of trailing text that may still become a fence marker
        - Classification of completed code regions into DiffBlockFound or RawCode
      does_not_own:
        - Delimiter-level parsing of CURRENT/NEW blocks (owned by blocks.py)
        - Vendor envelope decoding (owned by adapters.py)
    entrypoints:
      - BlockScanner.feed
      - BlockScanner.finish
[/FILE SUMMARY]
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .blocks import CLOSING_FENCE, CURRENT_MARKER, FENCE, parse_diff_block
from .models import DiffBlock

log = logging.getLogger(__name__)


class ScannerMode(str, Enum):
    PLAIN = "plain"
    AWAITING_BOUNDARY = "awaiting_boundary"
    CODE = "code"


@dataclass(frozen=True)
class PlainText:
    text: str


@dataclass(frozen=True)
class CodeStarted:
    pass


@dataclass(frozen=True)
class CodeEnded:
    pass


@dataclass(frozen=True)
class DiffBlockFound:
    block: DiffBlock
    raw: str


@dataclass(frozen=True)
class RawCode:
    text: str


ScanEvent = PlainText | CodeStarted | CodeEnded | DiffBlockFound | RawCode


@dataclass
class ScannerState:
    plain_buffer: str = ""
    code_buffer: str = ""
    is_buffering_code: bool = False
    is_awaiting_more_input: bool = False


def classify_code_region(region: str) -> ScanEvent:
    block = parse_diff_block(region)
    if block is not None and block.current_content and block.new_content:
        return DiffBlockFound(block, region)

    if CURRENT_MARKER in region:
        name = block.file_path if block is not None else "<unknown>"
        log.warning("Discarding malformed CURRENT/NEW block for %s", name)
    return RawCode(region)


class BlockScanner:
    def __init__(self):
        self.state = ScannerState()
        self.at_line_start = True
        self._code_scan_from = len(FENCE)

    @property
    def mode(self) -> ScannerMode:
        if self.state.is_buffering_code:
            return ScannerMode.CODE
        if self.state.is_awaiting_more_input:
            return ScannerMode.AWAITING_BOUNDARY
        return ScannerMode.PLAIN

    def feed(self, text: str) -> list[ScanEvent]:
        events: list[ScanEvent] = []
        if not text:
            return events

        if self.state.is_buffering_code:
            self.state.code_buffer += text
        else:
            self.state.plain_buffer += text

        while self._step(events):
            pass
        return events

    def finish(self) -> list[ScanEvent]:
        events: list[ScanEvent] = []
        if self.state.is_buffering_code:
            log.warning("Response ended inside an unterminated code block")
            events.append(CodeEnded())
            if self.state.code_buffer:
                events.append(RawCode(self.state.code_buffer))
        elif self.state.plain_buffer:
            events.append(PlainText(self.state.plain_buffer))

        self.state = ScannerState()
        self.at_line_start = True
        self._code_scan_from = len(FENCE)
        return events

    def _step(self, events: list[ScanEvent]) -> bool:
        if self.state.is_buffering_code:
            return self._close_code(events)
        return self._open_code(events)

    def _find_fence_start(self, buf: str) -> int | None:
        pos = 0
        while True:
            at = buf.find(FENCE, pos)
            if at < 0:
                return None
            if (at == 0 and self.at_line_start) or (at > 0 and buf[at - 1] == "\n"):
                return at
            pos = at + 1

    def _held_back_length(self, buf: str) -> int:
        newline_at = buf.rfind("\n")
        if newline_at < 0 and not self.at_line_start:
            return 0
        tail = buf[newline_at + 1 :]
        if tail and len(tail) < len(FENCE) and tail == "`" * len(tail):
            return len(tail)
        return 0

    def _emit_plain(self, text: str, events: list[ScanEvent]) -> None:
        if not text:
            return
        events.append(PlainText(text))
        self.at_line_start = text.endswith("\n")

    def _open_code(self, events: list[ScanEvent]) -> bool:
        buf = self.state.plain_buffer
        fence_at = self._find_fence_start(buf)

        if fence_at is None:
            hold = self._held_back_length(buf)
            self._emit_plain(buf[: len(buf) - hold], events)
            self.state.plain_buffer = buf[len(buf) - hold :]
            self.state.is_awaiting_more_input = hold > 0
            return False

        self._emit_plain(buf[:fence_at], events)
        self.state = ScannerState(code_buffer=buf[fence_at:], is_buffering_code=True)
        self._code_scan_from = len(FENCE)
        events.append(CodeStarted())
        return True

    def _close_code(self, events: list[ScanEvent]) -> bool:
        buf = self.state.code_buffer
        close_at = buf.find(CLOSING_FENCE, self._code_scan_from)
        if close_at < 0:
            self._code_scan_from = max(len(FENCE), len(buf) - len(CLOSING_FENCE) + 1)
            return False

        end = close_at + len(CLOSING_FENCE)
        events.append(CodeEnded())
        events.append(classify_code_region(buf[:end]))

        self.state = ScannerState(plain_buffer=buf[end:])
        self.at_line_start = False
        return True
