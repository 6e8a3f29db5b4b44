from __future__ import annotations

from typing import Callable

ContentListener = Callable[[str], None]


class ChunkAccumulator:
    """Sliding text window over a live response stream.

    Every append hands the listener the whole unconsumed buffer, not only the new
    piece, because a vendor envelope may straddle two network chunks. The listener
    calls clear_buffer() once it has consumed a prefix.
    """

    def __init__(self, on_content: ContentListener):
        self._on_content = on_content
        self._buffer = ""

    @property
    def buffer(self) -> str:
        return self._buffer

    def add_chunk(self, text: str | None) -> None:
        if not text:
            return
        self._buffer += text
        self._on_content(self._buffer)

    def clear_buffer(self, consumed_length: int) -> None:
        self._buffer = self._buffer[max(consumed_length, 0) :]
