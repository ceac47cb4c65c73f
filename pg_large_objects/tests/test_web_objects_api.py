"""Large objects HTTP API: streamed upload/download, size and delete.

Runs the FastAPI app in-process (httpx ASGITransport) against a repository
whose psycopg is faked, so no database is needed.
"""
from __future__ import annotations

import asyncio
import os

import httpx
import pytest
from httpx import ASGITransport

from pg_large_objects import repo as repo_module
from pg_large_objects.repo import LargeObjectRepo
from pg_large_objects.web import routes
from pg_large_objects.web.main import app
from utils.fake_psycopg import install_fake_psycopg

pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def fake_db(monkeypatch, server):
    return install_fake_psycopg(monkeypatch, repo_module, server)


@pytest.fixture(autouse=True)
def _install_repo(fake_db, make_config):
    routes.set_repo(LargeObjectRepo(config=make_config(transfer_bufsize=4, max_upload_bytes=64)))
    try:
        yield
    finally:
        routes.set_repo(None)


async def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _assert_private(resp: httpx.Response) -> None:
    assert resp.headers.get("Cache-Control") == "private, no-store"


async def test_upload_then_download(fake_db):
    data = os.urandom(50)
    async with (await _client()) as client:
        resp = await client.post("/objects", content=data)
        assert resp.status_code == 201
        _assert_private(resp)
        body = resp.json()
        assert body["size"] == 50
        assert fake_db.get(body["oid"]) == data

        resp = await client.get(f"/objects/{body['oid']}")
        assert resp.status_code == 200
        _assert_private(resp)
        assert resp.headers["content-type"] == "application/octet-stream"
        assert resp.content == data


async def test_upload_streamed_chunks(fake_db):
    async def body():
        for part in (b"abc", b"defgh", b"i"):
            yield part

    async with (await _client()) as client:
        resp = await client.post("/objects", content=body())
    assert resp.status_code == 201
    assert fake_db.get(resp.json()["oid"]) == b"abcdefghi"


async def test_upload_over_limit_is_rejected_and_removed(fake_db):
    async with (await _client()) as client:
        resp = await client.post("/objects", content=os.urandom(65))
    assert resp.status_code == 413
    assert resp.json() == {"error": "size_exceeded"}
    _assert_private(resp)
    assert fake_db.objects == {}


class _CancelledBody:
    """Request stand-in whose body stream is cancelled after `chunks`."""

    def __init__(self, *chunks: bytes) -> None:
        self._chunks = chunks

    async def stream(self):
        for chunk in self._chunks:
            yield chunk
        raise asyncio.CancelledError()


async def test_cancelled_upload_removes_partial_object(fake_db):
    with pytest.raises(asyncio.CancelledError):
        await routes.upload_object(_CancelledBody(b"abcd", b"efgh", b"ij"))
    assert fake_db.objects == {}


async def test_empty_upload_is_rejected(fake_db):
    async with (await _client()) as client:
        resp = await client.post("/objects", content=b"")
    assert resp.status_code == 400
    assert resp.json() == {"error": "empty_body"}
    assert fake_db.objects == {}


async def test_download_empty_object(fake_db):
    oid = fake_db.put(b"")
    async with (await _client()) as client:
        resp = await client.get(f"/objects/{oid}")
    assert resp.status_code == 200
    assert resp.content == b""


async def test_download_missing_object_is_404():
    async with (await _client()) as client:
        resp = await client.get("/objects/12345")
    assert resp.status_code == 404
    assert resp.json() == {"error": "not_found"}
    _assert_private(resp)


async def test_size_endpoint(fake_db):
    oid = fake_db.put(b"ABCDEFG")
    async with (await _client()) as client:
        resp = await client.get(f"/objects/{oid}/size")
        missing = await client.get("/objects/12345/size")
    assert resp.status_code == 200
    assert resp.json() == {"oid": oid, "size": 7}
    _assert_private(resp)
    assert missing.status_code == 404


async def test_delete_endpoint(fake_db):
    oid = fake_db.put(b"ABC")
    async with (await _client()) as client:
        resp = await client.delete(f"/objects/{oid}")
        again = await client.delete(f"/objects/{oid}")
    assert resp.status_code == 204
    _assert_private(resp)
    assert fake_db.objects == {}
    assert again.status_code == 404


@pytest.mark.parametrize("path", ["/objects/0", "/objects/-3/size"])
async def test_non_positive_oid_is_rejected(path):
    async with (await _client()) as client:
        resp = await client.get(path)
    assert resp.status_code == 400
    assert resp.json() == {"error": "bad_request", "detail": "invalid_oid"}


async def test_health():
    async with (await _client()) as client:
        resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}
    _assert_private(resp)
