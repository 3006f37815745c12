"""Streaming line segmentation.

vcs-runner runtime v0.1.0

Splits decoded text into complete lines as it arrives, one chunk at a time.
Recognised terminators are ``\\n``, ``\\r\\n`` and a lone ``\\r``. A ``\\r`` that
is the last character seen so far is held back, since the matching ``\\n``
may still be in the next chunk.
"""

from __future__ import annotations

import re
from enum import Enum

__all__ = [
    "LineEndings",
    "LineSegmenter",
    "split_lines",
]

# Alternation order matters: "\r\n" must win over the lone "\r" form.
# A "\r" at the very end of the buffer matches neither branch.
_BOUNDARY = re.compile(r"\r\n|\r(?=.)|\n", re.DOTALL)


class LineEndings(str, Enum):
    """What happens to line terminators in emitted lines.

    - STRIP: terminators are removed
    - PRESERVE: terminators are kept exactly as matched
    """

    STRIP = "strip"
    PRESERVE = "preserve"


def split_lines(buffer: str, preserve: bool = False) -> tuple[list[str], str]:
    """Split a buffer into complete lines and the unconsumed remainder.

    Args:
        buffer: Previous remainder followed by newly decoded text
        preserve: Keep the terminator at the end of each line

    Returns:
        Tuple of (complete lines, remainder)
    """
    lines: list[str] = []
    start = 0

    for match in _BOUNDARY.finditer(buffer):
        end = match.end() if preserve else match.start()
        lines.append(buffer[start:end])
        start = match.end()

    return lines, buffer[start:]


class LineSegmenter:
    """Stateful wrapper around split_lines that carries the remainder.

    Example:
        segmenter = LineSegmenter(LineEndings.STRIP)
        segmenter.feed("a\\nb")   # ["a"]
        segmenter.feed("\\r\\nc")  # ["b"]
        segmenter.flush()         # ["c"]
    """

    def __init__(self, policy: LineEndings = LineEndings.STRIP) -> None:
        self.policy = LineEndings(policy)
        self._remainder = ""

    @property
    def remainder(self) -> str:
        """Text received so far that does not yet form a complete line."""
        return self._remainder

    @property
    def preserve(self) -> bool:
        return self.policy is LineEndings.PRESERVE

    def feed(self, text: str) -> list[str]:
        """Consume one decoded chunk and return the lines it completed."""
        if not text:
            return []

        lines, self._remainder = split_lines(self._remainder + text, self.preserve)
        return lines

    def flush(self) -> list[str]:
        """Emit the remainder as a final unterminated line at end of stream.

        Under STRIP a single trailing lone "\\r" is a terminator, not content,
        so it is dropped.
        """
        rest = self._remainder
        self._remainder = ""

        if not rest:
            return []

        if not self.preserve and rest.endswith("\r"):
            rest = rest[:-1]

        return [rest]

    def reset(self) -> None:
        """Discard any buffered partial line."""
        self._remainder = ""
