"""
Postgres-backed repository for large objects.

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection and one
  transaction, so descriptors never leak across calls.
- Handles are only handed out inside context managers (`session`,
  `create_large_object`, `open_large_object`); when the block ends the
  transaction commits (or rolls back on error) and the backend is released.

Permissions:
- The role behind the DSN needs the large object privileges of the objects it
  touches (ownership or `GRANT SELECT/UPDATE ON LARGE OBJECT`).
"""
from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Iterator, Optional, Union

import psycopg

from . import transfer
from .bindings import PgBackend
from .config import LargeObjectConfig, load_config
from .large_object import LargeObject
from .ports import ChunkSink, Mode
from .streams import LargeObjectReader

LOG = logging.getLogger(__name__)


class LargeObjectRepo:
    """Entry point bundling connection handling and large object operations.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Defaults to the configured DSN.
    config:
        Explicit configuration; defaults to `load_config()`.
    """

    def __init__(self, dsn: Optional[str] = None, *, config: Optional[LargeObjectConfig] = None) -> None:
        self._config = config or load_config()
        self._dsn = dsn or self._config.dsn
        if not self._dsn:
            raise RuntimeError("No database DSN provided for LargeObjectRepo")

    @property
    def config(self) -> LargeObjectConfig:
        return self._config

    @contextmanager
    def session(self, *, timeout: Optional[float] = None) -> Iterator[PgBackend]:
        """Yield a backend bound to a fresh connection and transaction.

        The transaction commits when the block exits normally and rolls back
        otherwise. The backend must not be used after the block.
        """
        with psycopg.connect(self._dsn) as conn:
            backend = PgBackend(conn, savepoints=self._config.savepoints)
            try:
                with backend.transaction(timeout=timeout):
                    yield backend
            finally:
                backend.release()

    # --- Handles -----------------------------------------------------------------

    @contextmanager
    def create_large_object(
        self,
        *,
        mode: Union[Mode, str] = Mode.READ_WRITE,
        bufsize: Optional[int] = None,
    ) -> Iterator[LargeObject]:
        """Create an object and yield it open; committed when the block ends."""
        with self.session() as backend:
            with LargeObject.created(backend, mode=mode, bufsize=bufsize or self._config.bufsize) as lob:
                yield lob

    @contextmanager
    def open_large_object(
        self,
        oid: int,
        *,
        mode: Union[Mode, str] = Mode.READ,
        bufsize: Optional[int] = None,
    ) -> Iterator[LargeObject]:
        """Yield object `oid` opened in `mode` for the duration of the block."""
        with self.session() as backend:
            with LargeObject.opened(backend, oid, mode=mode, bufsize=bufsize or self._config.bufsize) as lob:
                yield lob

    def remove_large_object(self, oid: int) -> None:
        with self.session() as backend:
            LargeObject.remove(backend, oid)
        LOG.info("large object removed: oid=%s", oid)

    def large_object_size(self, oid: int) -> int:
        with self.open_large_object(oid) as lob:
            return lob.size()

    def iter_large_object(self, oid: int, *, bufsize: Optional[int] = None) -> Iterator[bytes]:
        """Lazily yield the chunks of `oid`; the session stays open while iterating.

        Nothing is opened until the first chunk is requested, so a missing
        object surfaces as ObjectNotFoundError on the first `next()`.
        """
        with self.session() as backend:
            lob = LargeObject.open(backend, oid, mode=Mode.READ, bufsize=bufsize or self._config.transfer_bufsize)
            yield from LargeObjectReader(lob)

    # --- Import / export ---------------------------------------------------------

    def import_large_object(
        self,
        source: transfer.Source,
        *,
        bufsize: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """Store `source` as a new object and return its oid."""
        with psycopg.connect(self._dsn) as conn:
            backend = PgBackend(conn, savepoints=self._config.savepoints)
            try:
                return transfer.import_large_object(
                    backend,
                    source,
                    bufsize=bufsize or self._config.transfer_bufsize,
                    timeout=timeout or self._config.timeout_seconds,
                )
            finally:
                backend.release()

    def export_large_object(
        self,
        oid: int,
        *,
        sink: Optional[ChunkSink] = None,
        bufsize: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Optional[bytes]:
        """Return the bytes of `oid`, or write them to `sink` and return None."""
        with psycopg.connect(self._dsn) as conn:
            backend = PgBackend(conn, savepoints=self._config.savepoints)
            try:
                return transfer.export_large_object(
                    backend,
                    oid,
                    sink=sink,
                    bufsize=bufsize or self._config.transfer_bufsize,
                    timeout=timeout or self._config.timeout_seconds,
                )
            finally:
                backend.release()


__all__ = ["LargeObjectRepo"]
