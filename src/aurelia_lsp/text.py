"""
Offset tables for translating between string offsets and LSP positions.

Every component of the server works on offsets into a Python ``str``
(code points). The protocol speaks ``(line, character)`` with UTF-16
characters, and tree-sitter reports UTF-8 byte offsets; this module
converts between the three.
"""

from __future__ import annotations

import bisect
import logging
from pathlib import Path

from lsprotocol import types as lsp

logger = logging.getLogger(__name__)


def _utf16_len(text: str) -> int:
    if text.isascii():
        return len(text)
    return len(text.encode("utf-16-le")) // 2


class LineIndex:
    """Line table over a single text, built once per text version."""

    def __init__(self, text: str) -> None:
        self.text = text
        self._line_starts = [0]
        index = text.find("\n")
        while index != -1:
            self._line_starts.append(index + 1)
            index = text.find("\n", index + 1)

    def _line_end(self, line: int) -> int:
        """Offset of the end of *line*, excluding its line terminator."""
        if line + 1 < len(self._line_starts):
            end = self._line_starts[line + 1] - 1
            if end > self._line_starts[line] and self.text[end - 1] == "\r":
                end -= 1
            return end
        return len(self.text)

    def position_at(self, offset: int) -> lsp.Position:
        """Convert a string offset to an LSP position (clamped to the text)."""
        offset = max(0, min(offset, len(self.text)))
        line = bisect.bisect_right(self._line_starts, offset) - 1
        start = self._line_starts[line]
        return lsp.Position(line=line, character=_utf16_len(self.text[start:offset]))

    def offset_at(self, position: lsp.Position) -> int:
        """Convert an LSP position to a string offset (clamped to the line)."""
        if position.line < 0:
            return 0
        if position.line >= len(self._line_starts):
            return len(self.text)

        start = self._line_starts[position.line]
        end = self._line_end(position.line)
        segment = self.text[start:end]
        if segment.isascii():
            return start + max(0, min(position.character, len(segment)))

        units = 0
        for i, ch in enumerate(segment):
            if units >= position.character:
                return start + i
            units += 2 if ord(ch) > 0xFFFF else 1
        return end

    def range_of(self, start: int, end: int) -> lsp.Range:
        return lsp.Range(start=self.position_at(start), end=self.position_at(end))

    def offsets_of(self, rng: lsp.Range) -> tuple[int, int]:
        return self.offset_at(rng.start), self.offset_at(rng.end)


class ByteOffsets:
    """Translate UTF-8 byte offsets (as reported by tree-sitter) to string offsets."""

    def __init__(self, text: str) -> None:
        self._length = len(text)
        self._table: list[int] | None = None
        if not text.isascii():
            table: list[int] = []
            for i, ch in enumerate(text):
                table.extend([i] * len(ch.encode("utf-8")))
            table.append(len(text))
            self._table = table

    def to_char(self, byte_offset: int) -> int:
        if self._table is None:
            return min(byte_offset, self._length)
        if byte_offset >= len(self._table):
            return self._length
        return self._table[byte_offset]


def read_text_file(path: str) -> str | None:
    """Read a UTF-8 file from disk, returning None when it cannot be read."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Could not read {path}: {e}")
        return None
