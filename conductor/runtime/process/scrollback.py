"""
scrollback.py - Bounded output history for supervised processes.

The scrollback keeps the most recent ``max_chars`` characters of everything a
process wrote, so late subscribers can replay it. Oldest characters are
evicted first; the buffer is always a suffix of the true output.
"""

from __future__ import annotations

from typing import List


def truncate_to_suffix(text: str, max_chars: int) -> str:
    """Return the last ``max_chars`` characters of ``text``.

    Truncating an already-truncated string is a no-op.
    """
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text
    return text[-max_chars:]


class ScrollbackBuffer:
    """Size-bounded FIFO character buffer."""

    def __init__(self, max_chars: int = 50000):
        if max_chars <= 0:
            raise ValueError(f"max_chars must be positive, got {max_chars}")
        self.max_chars = max_chars
        self._chunks: List[str] = []
        self._size = 0

    def append(self, chunk: str) -> None:
        if not chunk:
            return
        self._chunks.append(chunk)
        self._size += len(chunk)
        if self._size > self.max_chars:
            self._compact()

    def _compact(self) -> None:
        text = truncate_to_suffix("".join(self._chunks), self.max_chars)
        self._chunks = [text]
        self._size = len(text)

    @property
    def text(self) -> str:
        if len(self._chunks) > 1:
            self._compact()
        return self._chunks[0] if self._chunks else ""

    def clear(self) -> None:
        self._chunks = []
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def __str__(self) -> str:
        return self.text
