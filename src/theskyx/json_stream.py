from __future__ import annotations

import io
import json
from typing import Any

from readers import ByteSource


class JsonStreamConstants:
    CHUNK_SIZE = 512
    ENCODING = "utf-8"
    WHITESPACE = b" \t\r\n"
    OPENERS = b"{["
    CLOSERS = b"}]"
    QUOTE = ord('"')
    BACKSLASH = ord("\\")


class JsonStreamError(ValueError):
    pass


class TheSkyXJsonDecoder:
    """Decodes one JSON object or array from the front of a byte stream.

    Reads the source in chunks, so it may pull bytes past the end of the
    value. Those bytes are kept and handed back by `buffered()`.
    """

    def __init__(self, source: ByteSource, chunk_size: int = JsonStreamConstants.CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size!r}")
        self._source = source
        self._chunk_size = chunk_size
        self._buf = bytearray()
        self._decoder = json.JSONDecoder()

    def decode(self) -> Any:
        end = self._scan_value()
        raw = bytes(self._buf[:end])
        del self._buf[:end]
        try:
            text = raw.decode(JsonStreamConstants.ENCODING).lstrip()
            value, _ = self._decoder.raw_decode(text)
        except UnicodeDecodeError as exc:
            raise JsonStreamError(f"JSON value is not valid UTF-8: {raw!r}") from exc
        except json.JSONDecodeError as exc:
            raise JsonStreamError(f"malformed JSON value: {exc}") from exc
        return value

    def buffered(self) -> ByteSource:
        """Bytes read from the source but not part of a decoded value."""
        return io.BytesIO(bytes(self._buf))

    def _scan_value(self) -> int:
        pos = 0
        depth = 0
        in_string = False
        escaped = False
        while True:
            if pos == len(self._buf):
                chunk = self._source.read(self._chunk_size)
                if not chunk:
                    raise JsonStreamError("end of data inside JSON value")
                self._buf += chunk
            byte = self._buf[pos]
            pos += 1
            if in_string:
                if escaped:
                    escaped = False
                elif byte == JsonStreamConstants.BACKSLASH:
                    escaped = True
                elif byte == JsonStreamConstants.QUOTE:
                    in_string = False
                continue
            if depth == 0:
                if byte in JsonStreamConstants.WHITESPACE:
                    continue
                if byte not in JsonStreamConstants.OPENERS:
                    raise JsonStreamError(f"expected JSON object or array, got {chr(byte)!r}")
            if byte == JsonStreamConstants.QUOTE:
                in_string = True
            elif byte in JsonStreamConstants.OPENERS:
                depth += 1
            elif byte in JsonStreamConstants.CLOSERS:
                depth -= 1
                if depth == 0:
                    return pos
