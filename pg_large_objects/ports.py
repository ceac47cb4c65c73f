"""
Ports for large object I/O: shared enums and protocols.

Intent:
    Keep the contract between the handle/stream layer and the concrete
    backend adapter framework-agnostic, so tests can supply fakes and so
    generic stream code only depends on the two narrow stream roles.

Design:
    - Enums: Mode (open mode), Whence (seek anchor)
    - Protocols: LargeObjectBackend (primitive remote operations),
      ChunkSink (push-based consumer of byte chunks)
    - ChunkSource: alias for any iterable of byte chunks (pull-based producer)
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import ContextManager, Iterable, Optional, Protocol, Union

from .errors import InvalidModeError

BytesLike = Union[bytes, bytearray, memoryview]
ChunkSource = Iterable[BytesLike]


class Mode(str, Enum):
    """Open mode of a handle."""

    READ = "read"
    WRITE = "write"
    READ_WRITE = "read_write"
    APPEND = "append"

    @classmethod
    def coerce(cls, value: Union["Mode", str]) -> "Mode":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidModeError(f"invalid mode: {value!r}") from None

    @property
    def writable(self) -> bool:
        return self is not Mode.READ


class Whence(IntEnum):
    """Seek anchor; values match SEEK_SET/SEEK_CUR/SEEK_END."""

    START = 0
    CURRENT = 1
    END = 2

    @classmethod
    def coerce(cls, value: Union["Whence", str, int]) -> "Whence":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"invalid seek anchor: {value!r}") from None
        return cls(value)


class LargeObjectBackend(Protocol):
    """Primitive remote operations on large objects.

    Every method either returns its value or raises a LargeObjectError
    subclass; descriptors are valid only inside `transaction()`.
    """

    def create(self, desired_oid: int = 0) -> int:
        ...

    def unlink(self, oid: int) -> None:
        ...

    def open(self, oid: int, flags: int) -> int:
        ...

    def close(self, fd: int) -> None:
        ...

    def write(self, fd: int, data: BytesLike) -> None:
        ...

    def read(self, fd: int, length: int) -> bytes:
        ...

    def seek(self, fd: int, offset: int, whence: Whence) -> int:
        ...

    def tell(self, fd: int) -> int:
        ...

    def resize(self, fd: int, size: int) -> None:
        ...

    def transaction(self, *, timeout: Optional[float] = None) -> ContextManager[object]:
        ...


class ChunkSink(Protocol):
    """Anything accepting successive byte chunks (file objects qualify)."""

    def write(self, data: bytes) -> object:
        ...


__all__ = [
    "BytesLike",
    "ChunkSource",
    "ChunkSink",
    "LargeObjectBackend",
    "Mode",
    "Whence",
]
