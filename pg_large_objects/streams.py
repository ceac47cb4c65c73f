"""
Chunked stream adapters over a large object handle.

Two narrow roles instead of one polymorphic collection protocol:

* LargeObjectReader - pull-based producer. Iterating yields one
  `read(bufsize)` per chunk and stops at the first empty read. The handle is
  closed when the iteration ends, and by `close()` when the consumer stops
  early. Single pass: re-open the object to read it again.
* LargeObjectWriter - push-based consumer. Each `write(chunk)` is one backend
  write of exactly that chunk. Closing after a normal end closes the handle;
  after a failure the close is attempted but not required to succeed.

ChunkView is a sequence view (`len`, indexing, slicing) of the object in
bufsize-sized chunks. It seeks before every indexed read, so it moves the
handle's cursor.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Iterable, List, Union, overload

from .ports import BytesLike, Whence

if TYPE_CHECKING:
    from .large_object import LargeObject


class LargeObjectReader:
    """Lazy, forward-only, single-pass iterator of chunks from a handle.

    The reader is its own iterator, so `close()` (or leaving a `with` block)
    releases the handle even when no chunk was ever pulled.
    """

    def __init__(self, lob: "LargeObject") -> None:
        self._lob = lob
        self._started = False
        self._done = False

    def __iter__(self) -> "LargeObjectReader":
        if self._done:
            raise RuntimeError("large object reader is single-pass; reopen the object to read it again")
        self._started = True
        return self

    def __next__(self) -> bytes:
        if self._done:
            raise StopIteration
        self._started = True
        lob = self._lob
        try:
            data = lob.read(lob.bufsize)
        except BaseException:
            self._done = True
            lob._close_quietly()
            raise
        if not data:
            self._done = True
            if not lob.closed:
                lob.close()
            raise StopIteration
        return data

    def close(self) -> None:
        """Stop early; the handle is released, errors from the close are only logged."""
        if self._done:
            return
        self._done = True
        self._lob._close_quietly()

    def __enter__(self) -> "LargeObjectReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def __del__(self) -> None:
        if not self._done and self._started:
            self.close()


class LargeObjectWriter:
    """Sink writing successive chunks into a handle."""

    def __init__(self, lob: "LargeObject") -> None:
        self._lob = lob
        self._closed = False
        self.bytes_written = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: BytesLike) -> int:
        if self._closed:
            raise ValueError("write to closed large object writer")
        self._lob.write(data)
        size = memoryview(data).nbytes
        self.bytes_written += size
        return size

    def consume(self, chunks: Iterable[BytesLike]) -> int:
        """Drain `chunks` into the object, then close; returns bytes written."""
        try:
            for chunk in chunks:
                self.write(chunk)
        except BaseException:
            self.abort()
            raise
        self.close()
        return self.bytes_written

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._lob.closed:
            self._lob.close()

    def abort(self) -> None:
        """Close after a failure; errors from the close are only logged."""
        if self._closed:
            return
        self._closed = True
        self._lob._close_quietly()

    def __enter__(self) -> "LargeObjectWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.close()
        else:
            self.abort()
        return False


class ChunkView(Sequence):
    """The object as a sequence of bufsize-sized chunks."""

    def __init__(self, lob: "LargeObject") -> None:
        self._lob = lob

    def __len__(self) -> int:
        size = self._lob.size()
        return -(-size // self._lob.bufsize)

    @overload
    def __getitem__(self, index: int) -> bytes:
        ...

    @overload
    def __getitem__(self, index: slice) -> List[bytes]:
        ...

    def __getitem__(self, index: Union[int, slice]) -> Union[bytes, List[bytes]]:
        if isinstance(index, slice):
            return [self._chunk(i) for i in range(*index.indices(len(self)))]
        count = len(self)
        if index < 0:
            index += count
        if not 0 <= index < count:
            raise IndexError("chunk index out of range")
        return self._chunk(index)

    def _chunk(self, index: int) -> bytes:
        lob = self._lob
        lob.seek(index * lob.bufsize, Whence.START)
        return lob.read(lob.bufsize)


__all__ = ["ChunkView", "LargeObjectReader", "LargeObjectWriter"]
