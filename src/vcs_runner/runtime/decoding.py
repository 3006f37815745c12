"""Decoded stream adapter.

vcs-runner runtime v0.1.0

Wraps a raw byte source with an incremental text filter so that callers only
ever see decoded text. Multi-byte characters split across reads are held by
the filter until the rest of the bytes arrive.

Any object with a ``decode(data, final=False) -> str`` method can act as a
filter; ``codecs`` incremental decoders satisfy this directly.
"""

from __future__ import annotations

import codecs
import logging
import os
from typing import BinaryIO, Protocol

import anyio

__all__ = [
    "DecodedStream",
    "TextFilter",
    "make_text_filter",
]

logger = logging.getLogger(__name__)


class TextFilter(Protocol):
    """Incremental bytes -> text conversion."""

    def decode(self, input: bytes, final: bool = False) -> str: ...


def make_text_filter(encoding: str = "utf-8", errors: str = "replace") -> TextFilter:
    """Create the default filter for a codec name.

    Raises:
        LookupError: If the encoding is unknown
    """
    return codecs.getincrementaldecoder(encoding)(errors=errors)


class DecodedStream:
    """Readable text view over a binary source.

    ``read()`` and ``read_async()`` return decoded text, which may be empty
    when a chunk only contained part of a character, and ``None`` once the
    source is exhausted and the filter has been flushed.

    The async path reads straight from the file descriptor, so the source must
    be a pipe, socket or similar pollable object and must not hold buffered
    data of its own.
    """

    def __init__(self, source: BinaryIO, text_filter: TextFilter | None = None) -> None:
        self._source = source
        self._filter = text_filter if text_filter is not None else make_text_filter()
        self._read = getattr(source, "read1", source.read)
        self._at_eof = False
        self._closed = False
        self.bytes_read = 0

    @property
    def at_eof(self) -> bool:
        return self._at_eof

    @property
    def closed(self) -> bool:
        return self._closed

    def fileno(self) -> int:
        return self._source.fileno()

    def read(self, size: int) -> str | None:
        """Blocking read of at most ``size`` bytes, decoded.

        A source in non-blocking mode is switched to blocking the first time
        it reports that no data is ready.

        Raises:
            BlockingIOError: If the source still has no data after that
        """
        if self._at_eof:
            return None

        data = self._read(size)
        if data is None:
            os.set_blocking(self._source.fileno(), True)
            data = self._read(size)
            if data is None:
                raise BlockingIOError("source returned no data in blocking mode")

        return self._decode(data)

    async def read_async(self, size: int) -> str | None:
        """Wait for the source to become readable, then read and decode.

        Cancellation is observed at the readiness wait; once bytes have been
        taken from the descriptor they are always decoded.
        """
        if self._at_eof:
            return None

        fd = self._source.fileno()
        if os.get_blocking(fd):
            os.set_blocking(fd, False)

        while True:
            await anyio.wait_readable(fd)
            try:
                data = os.read(fd, size)
            except BlockingIOError:
                continue
            return self._decode(data)

    def _decode(self, data: bytes) -> str | None:
        if data:
            self.bytes_read += len(data)
            return self._filter.decode(data)

        self._at_eof = True
        tail = self._filter.decode(b"", final=True)
        logger.debug(f"Source exhausted after {self.bytes_read} bytes")
        return tail or None

    def close(self) -> None:
        """Close the underlying source. Safe to call more than once."""
        try:
            self._source.close()
        except OSError as e:
            logger.debug(f"Error closing source: {e}")
        finally:
            self._closed = True
