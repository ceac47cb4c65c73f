"""
Handle on one opened large object.

Intent:
    Represent an object opened for I/O inside a transaction scope: the
    backend reference, the object id, the backend-assigned descriptor and
    the chunk size used for streaming.

Design:
    - No client-side cursor mirror: position and size always round-trip to
      the backend, so other code paths touching the same descriptor (e.g. a
      bulk query) cannot desynchronize it.
    - A handle is a context manager that closes its descriptor on every exit
      path; iterating it yields chunks (see `streams`).
    - Handles never outlive their scope. Do not let one escape the
      `transaction()` / `session()` block it was opened in.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
from typing import Iterator, Optional, Union

from .bindings import INV_READ, INV_WRITE
from .errors import InvalidOffsetError, ObjectNotFoundError
from .ports import BytesLike, LargeObjectBackend, Mode, Whence
from .streams import ChunkView, LargeObjectReader, LargeObjectWriter

LOG = logging.getLogger(__name__)

# PostgreSQL recommends transferring at most a few megabytes per call, see
# https://www.postgresql.org/docs/current/lo-interfaces.html#LO-READ
DEFAULT_BUFSIZE = 1_048_576

_MODE_FLAGS = {
    Mode.READ: INV_READ,
    Mode.WRITE: INV_WRITE,
    Mode.READ_WRITE: INV_READ | INV_WRITE,
    Mode.APPEND: INV_READ | INV_WRITE,
}


def mode_flags(mode: Union[Mode, str]) -> int:
    """Return the `lo_open` flag bits for an open mode."""
    return _MODE_FLAGS[Mode.coerce(mode)]


def _check_oid(oid: int) -> None:
    if isinstance(oid, bool) or not isinstance(oid, int) or oid <= 0:
        raise ValueError(f"oid must be a positive integer, got {oid!r}")


def _check_bufsize(bufsize: int) -> None:
    if isinstance(bufsize, bool) or not isinstance(bufsize, int) or bufsize <= 0:
        raise ValueError(f"bufsize must be a positive integer, got {bufsize!r}")


@dataclass
class LargeObject:
    """An opened large object.

    Attributes:
        backend: Backend the descriptor belongs to.
        oid: Object id; stable for the object's lifetime.
        fd: Descriptor; valid until closed or until the scope ends.
        bufsize: Chunk size for streaming reads.
        mode: Mode the object was opened with.
    """

    backend: LargeObjectBackend = field(repr=False)
    oid: int
    fd: int
    bufsize: int = DEFAULT_BUFSIZE
    mode: Mode = Mode.READ
    _closed: bool = field(default=False, init=False, repr=False)

    # --- Lifecycle -----------------------------------------------------------

    @classmethod
    def create(
        cls,
        backend: LargeObjectBackend,
        *,
        mode: Union[Mode, str] = Mode.READ_WRITE,
        bufsize: int = DEFAULT_BUFSIZE,
    ) -> "LargeObject":
        """Allocate a new object (server-chosen oid) and open it."""
        mode = Mode.coerce(mode)
        _check_bufsize(bufsize)
        oid = backend.create(0)
        return cls.open(backend, oid, mode=mode, bufsize=bufsize)

    @classmethod
    def open(
        cls,
        backend: LargeObjectBackend,
        oid: int,
        *,
        mode: Union[Mode, str] = Mode.READ,
        bufsize: int = DEFAULT_BUFSIZE,
    ) -> "LargeObject":
        """Attach to an existing object; ObjectNotFoundError if it is missing.

        `append` opens for writing and moves the cursor to end-of-object.
        """
        mode = Mode.coerce(mode)
        _check_oid(oid)
        _check_bufsize(bufsize)
        fd = backend.open(oid, _MODE_FLAGS[mode])
        lob = cls(backend=backend, oid=oid, fd=fd, bufsize=bufsize, mode=mode)
        if mode is Mode.APPEND:
            try:
                backend.seek(fd, 0, Whence.END)
            except BaseException:
                lob._close_quietly()
                raise
        return lob

    @classmethod
    @contextmanager
    def opened(
        cls,
        backend: LargeObjectBackend,
        oid: int,
        *,
        mode: Union[Mode, str] = Mode.READ,
        bufsize: int = DEFAULT_BUFSIZE,
    ) -> Iterator["LargeObject"]:
        """Open an object for the duration of a `with` block."""
        with cls.open(backend, oid, mode=mode, bufsize=bufsize) as lob:
            yield lob

    @classmethod
    @contextmanager
    def created(
        cls,
        backend: LargeObjectBackend,
        *,
        mode: Union[Mode, str] = Mode.READ_WRITE,
        bufsize: int = DEFAULT_BUFSIZE,
    ) -> Iterator["LargeObject"]:
        """Create an object and keep it open for the duration of a `with` block."""
        with cls.create(backend, mode=mode, bufsize=bufsize) as lob:
            yield lob

    @staticmethod
    def remove(backend: LargeObjectBackend, oid: int) -> None:
        """Delete an object and its data, regardless of open handles.

        Not idempotent: removing a missing object raises ObjectNotFoundError.
        """
        _check_oid(oid)
        backend.unlink(oid)

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise ObjectNotFoundError("descriptor already closed", oid=self.oid, fd=self.fd)

    def close(self) -> None:
        """Release the descriptor; ObjectNotFoundError if it is already invalid.

        A closed handle never reaches the backend again: the server reuses
        descriptor numbers, so a second close could hit another handle.
        """
        self._check_open()
        try:
            self.backend.close(self.fd)
        finally:
            self._closed = True

    def _close_quietly(self) -> None:
        if self._closed:
            return
        try:
            self.close()
        except Exception as exc:
            LOG.warning("close after failure did not succeed: oid=%s fd=%s error=%s", self.oid, self.fd, type(exc).__name__)

    def __enter__(self) -> "LargeObject":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._closed:
            return False
        if exc_type is None:
            self.close()
        else:
            self._close_quietly()
        return False

    # --- Positional I/O ------------------------------------------------------

    def read(self, length: Optional[int] = None) -> bytes:
        """Read up to `length` bytes (default: bufsize) from the cursor.

        Returns fewer bytes, possibly none, at end-of-object.
        """
        if length is None:
            length = self.bufsize
        if length < 0:
            raise ValueError(f"length must be >= 0, got {length}")
        self._check_open()
        return self.backend.read(self.fd, length)

    def write(self, data: BytesLike) -> None:
        """Write at the cursor, overwriting in place and extending past the end."""
        self._check_open()
        self.backend.write(self.fd, data)

    def seek(self, offset: int, whence: Union[Whence, str] = Whence.START) -> int:
        """Move the cursor and return the new absolute position.

        START needs `offset >= 0` and END needs `offset <= 0`; CURRENT takes
        any offset. Seeking past the end is allowed, seeking before byte 0
        raises InvalidOffsetError.
        """
        self._check_open()
        whence = Whence.coerce(whence)
        if whence is Whence.START and offset < 0:
            raise InvalidOffsetError(f"offset {offset} before start of object", oid=self.oid, fd=self.fd)
        if whence is Whence.END and offset > 0:
            raise InvalidOffsetError(f"offset {offset} must not be positive when seeking from end", oid=self.oid, fd=self.fd)
        return self.backend.seek(self.fd, offset, whence)

    def tell(self) -> int:
        self._check_open()
        return self.backend.tell(self.fd)

    def size(self) -> int:
        """Return the object size, leaving the cursor where it was.

        If restoring the position fails, that failure is raised rather than
        reporting a size with a moved cursor.
        """
        self._check_open()
        position = self.tell()
        size = self.backend.seek(self.fd, 0, Whence.END)
        restored = self.backend.seek(self.fd, position, Whence.START)
        if restored != position:
            raise InvalidOffsetError(
                f"could not restore position {position} (got {restored})", oid=self.oid, fd=self.fd
            )
        return size

    def resize(self, size: int) -> None:
        """Truncate or zero-extend the object to exactly `size` bytes."""
        if size < 0:
            raise ValueError(f"size must be >= 0, got {size}")
        self._check_open()
        self.backend.resize(self.fd, size)

    # --- Streaming -----------------------------------------------------------

    def __iter__(self) -> LargeObjectReader:
        return iter(LargeObjectReader(self))

    def chunks(self) -> ChunkView:
        """Random-access view of the object as bufsize-sized chunks."""
        return ChunkView(self)

    def writer(self) -> LargeObjectWriter:
        """Push-based sink writing into this object."""
        return LargeObjectWriter(self)


__all__ = ["DEFAULT_BUFSIZE", "LargeObject", "mode_flags"]
