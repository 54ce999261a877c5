"""Byte sources the coordinator can slice parts from.

A source has a known total length and hands out arbitrary ``[start, end)``
ranges. In-memory buffers are sliced directly; files are read with a
positioned read on a worker thread so a slow disk never stalls the event
loop while other parts are on the wire.
"""

from __future__ import annotations

import asyncio
import os
import threading
from pathlib import Path
from typing import Protocol, Union


class ByteSource(Protocol):
    """A seekable byte source with a known total length."""

    @property
    def size(self) -> int:
        """Total length of the source in bytes."""
        ...

    async def read(self, start: int, end: int) -> bytes:
        """Return bytes ``[start, end)`` of the source."""
        ...


class BytesSource:
    """An in-memory source over ``bytes``, ``bytearray`` or ``memoryview``."""

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._data = memoryview(data).cast("B")

    @property
    def size(self) -> int:
        return len(self._data)

    async def read(self, start: int, end: int) -> bytes:
        return self._data[start:end].tobytes()


class FileSource:
    """A source backed by a file on disk.

    Attributes:
        path: The file being uploaded.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._size = self.path.stat().st_size
        self._fh = open(self.path, "rb")
        # seek+read pairs must not interleave across worker threads
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return self._size

    def _read_range(self, start: int, end: int) -> bytes:
        with self._lock:
            self._fh.seek(start, os.SEEK_SET)
            data = self._fh.read(end - start)
        if len(data) != end - start:
            raise OSError(
                f"Short read from {self.path}: wanted {end - start} bytes at {start}, "
                f"got {len(data)} (file changed during upload?)"
            )
        return data

    async def read(self, start: int, end: int) -> bytes:
        return await asyncio.to_thread(self._read_range, start, end)

    def close(self) -> None:
        self._fh.close()

    def __enter__(self) -> "FileSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


SourceLike = Union[ByteSource, bytes, bytearray, memoryview]


def as_source(source: SourceLike) -> ByteSource:
    """Wrap buffers in a :class:`BytesSource`; pass sources through.

    Anything supporting the buffer protocol (``bytes``, ``mmap.mmap``,
    ``array.array``...) is sliced in memory. Other objects must expose an
    integer ``size`` and an async ``read(start, end)``.
    """
    try:
        view = memoryview(source)
    except TypeError:
        pass
    else:
        return BytesSource(view)
    if isinstance(getattr(source, "size", None), int) and callable(getattr(source, "read", None)):
        return source
    raise TypeError(f"Unsupported byte source: {type(source).__name__}")
