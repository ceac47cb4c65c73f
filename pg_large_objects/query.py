"""
SQL fragments wrapping the PostgreSQL large object functions.

These compose into larger statements so large objects can be handled in
bulk, in one query, instead of one round trip per row:

    from psycopg import sql
    from pg_large_objects.query import lo_unlink

    stmt = sql.SQL("select {} from uploads where user_id = %s").format(
        lo_unlink(sql.Identifier("uploads", "object_id"))
    )
    conn.execute(stmt, (user_id,))

Arguments may be psycopg `sql.Composable` objects (identifiers,
placeholders, nested fragments) or plain values, which are passed as
literals. See https://www.postgresql.org/docs/current/lo-interfaces.html.
"""

from __future__ import annotations

from typing import Any

from psycopg import sql

DEFAULT_READ_LENGTH = 1_048_576


def _arg(value: Any) -> sql.Composable:
    if isinstance(value, sql.Composable):
        return value
    return sql.Literal(value)


def _call(name: str, *args: Any) -> sql.Composed:
    return sql.SQL("{}({})").format(sql.SQL(name), sql.SQL(", ").join(_arg(a) for a in args))


def lo_create(desired_oid: Any = 0) -> sql.Composed:
    """Create a large object; 0 lets the server pick the oid."""
    return _call("lo_create", desired_oid)


def lo_unlink(oid: Any) -> sql.Composed:
    """Delete a large object."""
    return _call("lo_unlink", oid)


def lo_open(oid: Any, flags: Any) -> sql.Composed:
    """Open a large object for reading and/or writing."""
    return _call("lo_open", oid, flags)


def lo_close(fd: Any) -> sql.Composed:
    return _call("lo_close", fd)


def lo_write(fd: Any, data: Any) -> sql.Composed:
    return _call("lowrite", fd, data)


def lo_read(fd: Any, length: Any = DEFAULT_READ_LENGTH) -> sql.Composed:
    return _call("loread", fd, length)


def lo_lseek64(fd: Any, offset: Any, whence: Any) -> sql.Composed:
    """Move the read/write position of a descriptor."""
    return _call("lo_lseek64", fd, offset, whence)


def lo_tell64(fd: Any) -> sql.Composed:
    return _call("lo_tell64", fd)


def lo_truncate64(fd: Any, size: Any) -> sql.Composed:
    """Truncate or zero-extend a large object."""
    return _call("lo_truncate64", fd, size)


__all__ = [
    "lo_create",
    "lo_unlink",
    "lo_open",
    "lo_close",
    "lo_write",
    "lo_read",
    "lo_lseek64",
    "lo_tell64",
    "lo_truncate64",
]
