"""
Reader/writer stream adapters and the chunk sequence view.
"""
from __future__ import annotations

import gc
import itertools

import pytest

from pg_large_objects.bindings import PgBackend
from pg_large_objects.errors import ObjectNotFoundError
from pg_large_objects.large_object import LargeObject
from pg_large_objects.ports import Mode
from pg_large_objects.streams import ChunkView, LargeObjectReader, LargeObjectWriter


@pytest.fixture
def backend(conn):
    return PgBackend(conn)


def test_reader_yields_bufsize_chunks_and_closes(server, backend, conn):
    oid = server.put(b"ABCDEFG")
    with backend.transaction():
        lob = LargeObject.open(backend, oid, bufsize=3)
        assert list(lob) == [b"ABC", b"DEF", b"G"]
        assert lob.fd not in conn._fds


def test_reader_on_empty_object_yields_nothing(server, backend):
    oid = server.put(b"")
    with backend.transaction():
        lob = LargeObject.open(backend, oid)
        assert list(LargeObjectReader(lob)) == []


def test_reader_is_lazy(server, backend, conn):
    oid = server.put(b"ABCDEFG")
    with backend.transaction():
        lob = LargeObject.open(backend, oid, bufsize=3)
        before = len(conn.statements)
        chunks = iter(lob)
        assert len(conn.statements) == before
        assert next(chunks) == b"ABC"


def test_reader_closes_handle_when_consumer_stops_early(server, backend, conn):
    oid = server.put(b"ABCDEFG")
    with backend.transaction():
        lob = LargeObject.open(backend, oid, bufsize=2)
        chunks = iter(lob)
        assert next(chunks) == b"AB"
        chunks.close()
        assert lob.fd not in conn._fds


def test_reader_closed_before_first_pull_releases_handle(server, backend, conn):
    oid = server.put(b"ABCDEFG")
    with backend.transaction():
        lob = LargeObject.open(backend, oid, bufsize=2)
        chunks = iter(lob)
        chunks.close()
        assert lob.closed
        assert lob.fd not in conn._fds
        assert next(chunks, None) is None


def test_dropped_unstarted_reader_releases_handle(server, backend, conn):
    oid = server.put(b"ABCDEFG")
    with backend.transaction():
        lob = LargeObject.open(backend, oid, bufsize=2)
        assert list(itertools.islice(lob, 0)) == []
        gc.collect()
        assert lob.closed
        assert lob.fd not in conn._fds


def test_reader_as_context_manager_closes_on_break(server, backend, conn):
    oid = server.put(b"ABCDEFG")
    with backend.transaction():
        lob = LargeObject.open(backend, oid, bufsize=2)
        with LargeObjectReader(lob) as reader:
            for chunk in reader:
                break
        assert chunk == b"AB"
        assert lob.fd not in conn._fds


def test_handle_closed_by_reader_is_not_closed_again(server, backend, conn):
    first = server.put(b"first")
    second = server.put(b"second")
    with backend.transaction():
        with LargeObject.opened(backend, first, bufsize=2) as lob:
            assert b"".join(lob) == b"first"
            other = LargeObject.open(backend, second)
            # the freed descriptor slot is handed out again
            assert other.fd == lob.fd
        assert other.read() == b"second"
        other.close()
    assert sum(1 for s in conn.statements if "lo_close" in s) == 2


def test_handle_closed_by_writer_is_not_closed_again(server, backend):
    with backend.transaction():
        with LargeObject.created(backend, mode=Mode.WRITE) as lob:
            lob.writer().consume([b"abc", b"def"])
            assert lob.closed
    assert server.get(lob.oid) == b"abcdef"


def test_reader_is_single_pass(server, backend):
    oid = server.put(b"ABC")
    with backend.transaction():
        reader = LargeObjectReader(LargeObject.open(backend, oid))
        assert list(reader) == [b"ABC"]
        with pytest.raises(RuntimeError):
            iter(reader)


def test_reader_propagates_backend_failure(server, backend):
    oid = server.put(b"ABCDEFG")
    with backend.transaction():
        lob = LargeObject.open(backend, oid, bufsize=2)
        chunks = iter(lob)
        next(chunks)
        LargeObject.remove(backend, oid)
        with pytest.raises(ObjectNotFoundError):
            next(chunks)


def test_writer_writes_each_chunk_and_counts_bytes(server, backend, conn):
    with backend.transaction():
        lob = LargeObject.create(backend)
        with lob.writer() as writer:
            assert isinstance(writer, LargeObjectWriter)
            writer.write(b"abc")
            writer.write(bytearray(b"de"))
            writer.write(memoryview(b"f"))
        assert writer.closed
        assert writer.bytes_written == 6
        assert lob.fd not in conn._fds
    assert server.get(lob.oid) == b"abcdef"
    assert sum(1 for s in conn.statements if "lowrite" in s) == 3


def test_writer_rejects_write_after_close(backend):
    with backend.transaction():
        writer = LargeObject.create(backend).writer()
        writer.close()
        with pytest.raises(ValueError):
            writer.write(b"late")


def test_writer_consume_drains_iterable(server, backend):
    with backend.transaction():
        lob = LargeObject.create(backend, mode=Mode.WRITE)
        written = lob.writer().consume(iter([b"12", b"34", b"5"]))
    assert written == 5
    assert server.get(lob.oid) == b"12345"


def test_writer_consume_closes_on_source_failure(backend, conn):
    def source():
        yield b"12"
        raise OSError("disk gone")

    with backend.transaction():
        lob = LargeObject.create(backend)
        with pytest.raises(OSError):
            lob.writer().consume(source())
        assert lob.fd not in conn._fds


def test_chunk_view_len_and_indexing(server, backend):
    oid = server.put(b"ABCDEFG")
    with backend.transaction():
        view = LargeObject.open(backend, oid, bufsize=3).chunks()
        assert isinstance(view, ChunkView)
        assert len(view) == 3
        assert view[0] == b"ABC"
        assert view[2] == b"G"
        assert view[-2] == b"DEF"
        assert view[1:] == [b"DEF", b"G"]
        assert list(view) == [b"ABC", b"DEF", b"G"]
        with pytest.raises(IndexError):
            view[3]


def test_chunk_view_of_empty_object(server, backend):
    oid = server.put(b"")
    with backend.transaction():
        view = LargeObject.open(backend, oid).chunks()
        assert len(view) == 0
        assert list(view) == []


def test_chunk_view_exact_multiple(server, backend):
    oid = server.put(b"ABCDEF")
    with backend.transaction():
        view = LargeObject.open(backend, oid, bufsize=3).chunks()
        assert len(view) == 2
        assert view[1] == b"DEF"
