"""
Low-level bindings to the PostgreSQL large object API over psycopg3.

Intent:
    Execute the primitive large object functions (`lo_create`, `lo_open`,
    `loread`, ...) on a caller-provided psycopg connection and translate
    server errors into the large object error taxonomy.

Design:
    - PgBackend binds to one connection; it does not open or close it.
    - Statements are composed from the fragments in `query`, so the
      primitives used here are exactly the ones embeddable in bulk queries.
    - Every primitive runs inside a savepoint by default, so a typed failure
      (e.g. a missing object) leaves the enclosing transaction usable.
    - `transaction(timeout=...)` opens a scope with a transaction-local
      `statement_timeout` plus a deadline checked before every call.

Scope:
    Descriptors are only valid inside a transaction. Calling a primitive on
    a connection that is not inside one raises ScopeError instead of letting
    the server hand out a descriptor that dies with the next implicit commit.

See https://www.postgresql.org/docs/current/largeobjects.html
"""

from __future__ import annotations

from contextlib import contextmanager, nullcontext
import logging
import time
from typing import Any, Iterator, Optional, Sequence

import psycopg
from psycopg import pq, sql

from . import query
from .errors import (
    InvalidOffsetError,
    LargeObjectError,
    ObjectExistsError,
    ObjectNotFoundError,
    ReadOnlyError,
    ScopeError,
    TransferTimeoutError,
)
from .ports import BytesLike, Whence

LOG = logging.getLogger(__name__)

# Constants taken from libpq/libpq-fs.h
INV_READ = 0x00040000
INV_WRITE = 0x00020000

# Largest length accepted by loread (int4).
MAX_READ_LENGTH = 2**31 - 1


def _param(pg_type: str) -> sql.Composed:
    return sql.SQL("{}::{}").format(sql.Placeholder(), sql.SQL(pg_type))


def _select(fragment: sql.Composable) -> sql.Composed:
    return sql.SQL("select {}").format(fragment)


_CREATE = _select(query.lo_create(_param("oid")))
_UNLINK = _select(query.lo_unlink(_param("oid")))
_OPEN = _select(query.lo_open(_param("oid"), _param("int4")))
_CLOSE = _select(query.lo_close(_param("int4")))
_WRITE = _select(query.lo_write(_param("int4"), _param("bytea")))
_READ = _select(query.lo_read(_param("int4"), _param("int4")))
_SEEK = _select(query.lo_lseek64(_param("int4"), _param("int8"), _param("int4")))
_TELL = _select(query.lo_tell64(_param("int4")))
_TRUNCATE = _select(query.lo_truncate64(_param("int4"), _param("int8")))

_GET_STATEMENT_TIMEOUT = "select current_setting('statement_timeout')"
_SET_STATEMENT_TIMEOUT = "select set_config('statement_timeout', %s, true)"

# SQLSTATE -> (error class, message)
_SQLSTATE_ERRORS: dict[str, tuple[type[LargeObjectError], str]] = {
    "42704": (ObjectNotFoundError, "large object or descriptor does not exist"),
    "23505": (ObjectExistsError, "large object already exists"),
    "55000": (ReadOnlyError, "large object descriptor not opened for writing"),
    "57014": (TransferTimeoutError, "statement timeout exceeded"),
}


def translate_error(
    exc: psycopg.Error,
    *,
    oid: Optional[int] = None,
    fd: Optional[int] = None,
    invalid_parameter: Optional[type[LargeObjectError]] = None,
) -> Optional[LargeObjectError]:
    """Map a driver error onto the taxonomy; None when it has no mapping.

    `invalid_parameter` maps SQLSTATE 22023 for the operations where that
    code has a precise meaning (seeking before byte 0).
    """
    sqlstate = getattr(exc, "sqlstate", None)
    if sqlstate == "22023" and invalid_parameter is not None:
        return invalid_parameter("invalid large object seek target", oid=oid, fd=fd)
    entry = _SQLSTATE_ERRORS.get(sqlstate or "")
    if entry is None:
        return None
    cls, message = entry
    return cls(message, oid=oid, fd=fd)


def _require_int(name: str, value: Any, *, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


class PgBackend:
    """Large object backend bound to one psycopg connection.

    Parameters
    ----------
    conn:
        Open psycopg connection. The caller owns its lifecycle.
    savepoints:
        Run each primitive inside a savepoint (default). Disable to save two
        round trips per call when a failure may abort the whole transaction.
    """

    def __init__(self, conn: psycopg.Connection, *, savepoints: bool = True) -> None:
        self._conn = conn
        self._savepoints = savepoints
        self._deadline: Optional[float] = None
        self._released = False

    @property
    def connection(self) -> psycopg.Connection:
        return self._conn

    def release(self) -> None:
        """Mark the scope this backend was handed out for as finished."""
        self._released = True

    # --- Scope -------------------------------------------------------------------

    @contextmanager
    def transaction(self, *, timeout: Optional[float] = None) -> Iterator["PgBackend"]:
        """Open a transactional scope (a savepoint when one is already active).

        Any exception leaving the block rolls the scope back, including
        descriptors and objects created inside it. With `timeout`, both a
        transaction-local `statement_timeout` and a deadline over the whole
        block apply; exceeding either raises TransferTimeoutError.
        """
        if self._released:
            raise ScopeError("backend used after its scope ended")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")
        outermost = self._conn.info.transaction_status == pq.TransactionStatus.IDLE
        previous_deadline = self._deadline
        deadline = previous_deadline
        if timeout is not None:
            candidate = time.monotonic() + timeout
            if deadline is None or candidate < deadline:
                deadline = candidate
        with self._conn.transaction():
            previous_timeout = None
            if timeout is not None:
                previous_timeout = self._apply_statement_timeout(timeout)
            self._deadline = deadline
            try:
                yield self
            finally:
                self._deadline = previous_deadline
            if previous_timeout is not None and not outermost:
                self._scalar(_SET_STATEMENT_TIMEOUT, (previous_timeout,))

    def _apply_statement_timeout(self, timeout: float) -> Optional[str]:
        previous = self._scalar(_GET_STATEMENT_TIMEOUT, ())
        millis = max(1, int(timeout * 1000))
        self._scalar(_SET_STATEMENT_TIMEOUT, (f"{millis}ms",))
        return previous

    def _ensure_scope(self, *, oid: Optional[int] = None, fd: Optional[int] = None) -> None:
        if self._released:
            raise ScopeError("backend used after its scope ended", oid=oid, fd=fd)
        if self._conn.info.transaction_status == pq.TransactionStatus.IDLE:
            raise ScopeError("large object operations require an open transaction", oid=oid, fd=fd)
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise TransferTimeoutError("scope deadline exceeded", oid=oid, fd=fd)

    def _scalar(self, stmt: Any, params: Sequence[Any]) -> Any:
        with self._conn.cursor() as cur:
            cur.execute(stmt, params)
            row = cur.fetchone()
        return row[0] if row else None

    def _call(
        self,
        stmt: sql.Composable,
        params: Sequence[Any],
        *,
        oid: Optional[int] = None,
        fd: Optional[int] = None,
        invalid_parameter: Optional[type[LargeObjectError]] = None,
    ) -> Any:
        self._ensure_scope(oid=oid, fd=fd)
        savepoint = self._conn.transaction() if self._savepoints else nullcontext()
        try:
            with savepoint:
                return self._scalar(stmt, params)
        except psycopg.Error as exc:
            mapped = translate_error(exc, oid=oid, fd=fd, invalid_parameter=invalid_parameter)
            if mapped is None:
                raise
            raise mapped from exc

    # --- Primitives --------------------------------------------------------------

    def create(self, desired_oid: int = 0) -> int:
        _require_int("desired_oid", desired_oid, minimum=0)
        oid = int(self._call(_CREATE, (desired_oid,), oid=desired_oid or None))
        LOG.debug("lo_create desired=%s oid=%s", desired_oid, oid)
        return oid

    def unlink(self, oid: int) -> None:
        _require_int("oid", oid, minimum=1)
        self._call(_UNLINK, (oid,), oid=oid)
        LOG.debug("lo_unlink oid=%s", oid)

    def open(self, oid: int, flags: int) -> int:
        _require_int("oid", oid, minimum=1)
        _require_int("flags", flags, minimum=0)
        fd = int(self._call(_OPEN, (oid, flags), oid=oid))
        LOG.debug("lo_open oid=%s flags=%#x fd=%s", oid, flags, fd)
        return fd

    def close(self, fd: int) -> None:
        _require_int("fd", fd, minimum=0)
        self._call(_CLOSE, (fd,), fd=fd)
        LOG.debug("lo_close fd=%s", fd)

    def write(self, fd: int, data: BytesLike) -> None:
        _require_int("fd", fd, minimum=0)
        self._call(_WRITE, (fd, bytes(data)), fd=fd)

    def read(self, fd: int, length: int) -> bytes:
        _require_int("fd", fd, minimum=0)
        _require_int("length", length, minimum=0)
        if length > MAX_READ_LENGTH:
            raise ValueError(f"length must be <= {MAX_READ_LENGTH}, got {length}")
        data = self._call(_READ, (fd, length), fd=fd)
        return bytes(data) if data is not None else b""

    def seek(self, fd: int, offset: int, whence: Whence) -> int:
        _require_int("fd", fd, minimum=0)
        _require_int("offset", offset, minimum=-(2**63))
        whence = Whence.coerce(whence)
        position = self._call(
            _SEEK,
            (fd, offset, int(whence)),
            fd=fd,
            invalid_parameter=InvalidOffsetError,
        )
        return int(position)

    def tell(self, fd: int) -> int:
        _require_int("fd", fd, minimum=0)
        return int(self._call(_TELL, (fd,), fd=fd))

    def resize(self, fd: int, size: int) -> None:
        _require_int("fd", fd, minimum=0)
        _require_int("size", size, minimum=0)
        self._call(_TRUNCATE, (fd, size), fd=fd)
        LOG.debug("lo_truncate64 fd=%s size=%s", fd, size)


__all__ = [
    "INV_READ",
    "INV_WRITE",
    "MAX_READ_LENGTH",
    "PgBackend",
    "translate_error",
]
