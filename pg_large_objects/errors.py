"""
Error taxonomy for large object operations.

Intent:
    Give callers one exception class per failure kind so they can decide
    whether e.g. a missing object mid-stream should abort or be treated as
    already deleted. The backend adapter translates driver errors into these;
    unmapped driver errors propagate unchanged.

Design:
    - Base class: LargeObjectError (carries the oid and/or fd involved)
    - Kinds: not found, already exists, read-only, invalid offset,
      invalid mode, transfer timeout, scope misuse
"""

from __future__ import annotations

from typing import Optional


class LargeObjectError(Exception):
    """Base class for large object failures.

    Parameters:
        message: Human readable explanation.
        oid: Object id involved, when known.
        fd: Backend descriptor involved, when known.
    """

    def __init__(self, message: str, *, oid: Optional[int] = None, fd: Optional[int] = None) -> None:
        self.message = message
        self.oid = oid
        self.fd = fd
        super().__init__(message)

    def __str__(self) -> str:
        context = []
        if self.oid is not None:
            context.append(f"oid={self.oid}")
        if self.fd is not None:
            context.append(f"fd={self.fd}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class ObjectNotFoundError(LargeObjectError):
    """The object id or descriptor does not (or no longer) exist."""


class ObjectExistsError(LargeObjectError):
    """Object id collision on creation."""


class ReadOnlyError(LargeObjectError):
    """Write or resize attempted through a handle not opened for writing."""


class InvalidOffsetError(LargeObjectError):
    """Seek would move the cursor before byte 0, or violates its anchor."""


class InvalidModeError(LargeObjectError, ValueError):
    """Unrecognized open mode (programmer error)."""


class TransferTimeoutError(LargeObjectError, TimeoutError):
    """The enclosing scope ran past its timeout; the scope is aborted."""


class ScopeError(LargeObjectError):
    """Backend used outside of an active transaction scope."""


__all__ = [
    "LargeObjectError",
    "ObjectNotFoundError",
    "ObjectExistsError",
    "ReadOnlyError",
    "InvalidOffsetError",
    "InvalidModeError",
    "TransferTimeoutError",
    "ScopeError",
]
