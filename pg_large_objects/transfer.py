"""
Import/export orchestration between byte sources/sinks and large objects.

Intent:
    Move arbitrarily large payloads into and out of large objects with
    bounded memory: sources are consumed chunk by chunk through the writer
    adapter, objects are drained chunk by chunk through the reader adapter.

Behavior:
    - Both operations run inside `backend.transaction(timeout=...)`. Any
      failure, including a timeout mid-transfer, aborts that scope, so a
      failed import never leaves a partially written object behind.
    - A single buffer is re-chunked into `bufsize` pieces; an iterable of
      chunks is written as given; a readable binary file object is read in
      `bufsize` pieces.
    - Export without a sink returns the whole payload; with a sink (anything
      with `write(bytes)`) the chunks go there and None is returned. A
      missing object raises ObjectNotFoundError; an empty one returns b"".
      A sink that raises stops the export and the handle is closed before
      the scope is left.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Optional, Union

from . import telemetry
from .large_object import LargeObject
from .ports import BytesLike, ChunkSink, LargeObjectBackend, Mode
from .streams import LargeObjectReader

LOG = logging.getLogger(__name__)

TRANSFER_BUFSIZE = 65_536
DEFAULT_TIMEOUT = 60.0

Source = Union[BytesLike, Iterable[BytesLike], Any]


def rechunk(data: BytesLike, bufsize: int) -> Iterator[bytes]:
    """Split one buffer into pieces of at most `bufsize` bytes."""
    if bufsize <= 0:
        raise ValueError(f"bufsize must be positive, got {bufsize}")
    view = memoryview(data)
    if view.ndim != 1 or view.format != "B":
        view = view.cast("B")
    for start in range(0, view.nbytes, bufsize):
        yield bytes(view[start:start + bufsize])


def _file_chunks(fileobj: Any, bufsize: int) -> Iterator[bytes]:
    while True:
        data = fileobj.read(bufsize)
        if not data:
            break
        if isinstance(data, str):
            raise TypeError("file object must be opened in binary mode")
        yield data


def iter_source(source: Source, bufsize: int) -> Iterable[BytesLike]:
    """Normalize a buffer, file object or chunk iterable into chunks."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return rechunk(source, bufsize)
    if isinstance(source, str):
        raise TypeError("str is not a byte source; encode it first")
    if callable(getattr(source, "read", None)):
        return _file_chunks(source, bufsize)
    return source


def import_large_object(
    backend: LargeObjectBackend,
    source: Source,
    *,
    bufsize: int = TRANSFER_BUFSIZE,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
) -> int:
    """Create a new object holding the bytes of `source`; return its oid."""
    chunks = iter_source(source, bufsize)
    try:
        with backend.transaction(timeout=timeout):
            lob = LargeObject.create(backend, mode=Mode.READ_WRITE, bufsize=bufsize)
            written = lob.writer().consume(chunks)
    except Exception as exc:
        telemetry.record_transfer("import", "error")
        LOG.warning("large object import aborted: error=%s", type(exc).__name__)
        raise
    telemetry.record_transfer("import", "ok", nbytes=written)
    LOG.info("large object imported: oid=%s bytes=%s", lob.oid, written)
    return lob.oid


def export_large_object(
    backend: LargeObjectBackend,
    oid: int,
    *,
    sink: Optional[ChunkSink] = None,
    bufsize: int = TRANSFER_BUFSIZE,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
) -> Optional[bytes]:
    """Read object `oid` into memory (no sink) or into `sink`."""
    total = 0
    buffer = bytearray() if sink is None else None
    try:
        with backend.transaction(timeout=timeout):
            lob = LargeObject.open(backend, oid, mode=Mode.READ, bufsize=bufsize)
            with LargeObjectReader(lob) as reader:
                for chunk in reader:
                    total += len(chunk)
                    if buffer is not None:
                        buffer.extend(chunk)
                    else:
                        sink.write(chunk)
    except Exception as exc:
        telemetry.record_transfer("export", "error")
        LOG.warning("large object export failed: oid=%s error=%s", oid, type(exc).__name__)
        raise
    telemetry.record_transfer("export", "ok", nbytes=total)
    LOG.info("large object exported: oid=%s bytes=%s", oid, total)
    return bytes(buffer) if buffer is not None else None


__all__ = [
    "DEFAULT_TIMEOUT",
    "TRANSFER_BUFSIZE",
    "export_large_object",
    "import_large_object",
    "iter_source",
    "rechunk",
]
