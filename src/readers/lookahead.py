from __future__ import annotations

import io
from typing import Optional

from .concat import ByteSource, ConcatReader


class LookaheadConstants:
    ENCODING = "utf-8"
    DECODE_ERRORS = "replace"
    SINGLE_BYTE = 1
    MAX_SEQUENCE_LEN = 4
    LEAD_BIT = 0x80
    INITIAL_CAPACITY = 1
    GROWTH_FACTOR = 2


class LookaheadReader:
    """Character reader over a byte source with unbounded peek depth.

    Decoded characters live in a circular buffer indexed by `start` and
    `length`. The source is read one byte at a time and only as far as the
    deepest `peek` requires. `None` is returned once the source is exhausted.
    """

    def __init__(self, source: ByteSource, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError(f"capacity must be non-negative, got {capacity!r}")
        self._source = source
        self._buf: list[Optional[str]] = [None] * capacity
        self._start = 0
        self._length = 0

    def __len__(self) -> int:
        return self._length

    @property
    def capacity(self) -> int:
        return len(self._buf)

    @staticmethod
    def sequence_length(lead: int) -> int:
        """Number of bytes in the UTF-8 sequence started by `lead`."""
        ones = 0
        mask = LookaheadConstants.LEAD_BIT
        while mask and lead & mask:
            ones += 1
            mask >>= 1
        if ones == 0:
            return LookaheadConstants.SINGLE_BYTE
        return min(ones, LookaheadConstants.MAX_SEQUENCE_LEN)

    def peek(self, i: int = 0) -> Optional[str]:
        if i < 0:
            raise IndexError(f"peek offset must be non-negative, got {i!r}")
        while i >= self._length:
            if not self._decode_next():
                return None
        return self._buf[(self._start + i) % len(self._buf)]

    def read(self) -> Optional[str]:
        char = self.peek(0)
        if char is not None:
            self._buf[self._start] = None
            self._start = (self._start + 1) % len(self._buf)
            self._length -= 1
        return char

    def buffered(self) -> ByteSource:
        """Unconsumed characters as a byte source, in logical order."""
        if not self._length:
            return io.BytesIO()
        end = self._start + self._length
        if end <= len(self._buf):
            return io.BytesIO(self._encode(self._buf[self._start : end]))
        return ConcatReader(
            io.BytesIO(self._encode(self._buf[self._start :])),
            io.BytesIO(self._encode(self._buf[: end - len(self._buf)])),
        )

    def _decode_next(self) -> bool:
        lead = self._source.read(1)
        if not lead:
            return False
        raw = bytearray(lead)
        needed = self.sequence_length(raw[0])
        while len(raw) < needed:
            more = self._source.read(1)
            if not more:
                # truncated sequence is dropped
                return False
            raw += more
        char = bytes(raw).decode(LookaheadConstants.ENCODING, errors=LookaheadConstants.DECODE_ERRORS)[0]
        if self._length == len(self._buf):
            self._grow()
        self._buf[(self._start + self._length) % len(self._buf)] = char
        self._length += 1
        return True

    def _grow(self) -> None:
        if not self._buf:
            self._buf = [None] * LookaheadConstants.INITIAL_CAPACITY
            return
        old = self._buf
        # full buffer: logical order is old[start:] then the wrapped prefix
        self._buf = old[self._start :] + old[: self._start]
        self._buf.extend([None] * (len(old) * (LookaheadConstants.GROWTH_FACTOR - 1)))
        self._start = 0

    @staticmethod
    def _encode(chars: list[Optional[str]]) -> bytes:
        return "".join(c for c in chars if c is not None).encode(LookaheadConstants.ENCODING)
