from __future__ import annotations

from typing import Protocol


class ByteSource(Protocol):
    def read(self, size: int = -1) -> bytes:
        raise NotImplementedError


class ConcatReader:
    """Reads several byte sources back to back as one stream.

    Nested `ConcatReader` sources are flattened on construction, so the
    member list only ever holds leaf sources. An empty read ends a member.
    `read()` with no size drains every member to its end, so it is meant
    for finite sources.
    """

    def __init__(self, *sources: ByteSource) -> None:
        self._sources: list[ByteSource] = []
        for source in sources:
            if isinstance(source, ConcatReader):
                self._sources.extend(source._sources)
            else:
                self._sources.append(source)

    def __len__(self) -> int:
        return len(self._sources)

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            return self._read_all()
        if size == 0:
            return b""
        while self._sources:
            data = self._sources[0].read(size)
            if data:
                return data
            # exhausted
            self._sources.pop(0)
        return b""

    def _read_all(self) -> bytes:
        chunks = []
        while self._sources:
            chunk = self._sources[0].read(-1)
            if chunk:
                chunks.append(chunk)
            else:
                self._sources.pop(0)
        return b"".join(chunks)
