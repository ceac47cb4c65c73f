"""Large object endpoints: streamed upload, streamed download, size, delete."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterator, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from pg_large_objects.errors import ObjectNotFoundError
from pg_large_objects.repo import LargeObjectRepo
from pg_large_objects.upload_writer import DONE, UploadWriter

logger = logging.getLogger("pg_large_objects.web")

objects_router = APIRouter(tags=["Large Objects"])

_REPO: Optional[LargeObjectRepo] = None


def set_repo(repo: Optional[LargeObjectRepo]) -> None:
    """Allow tests or startup code to provide the repository (None resets)."""
    global _REPO
    _REPO = repo


def _get_repo() -> LargeObjectRepo:
    global _REPO
    if _REPO is None:
        _REPO = LargeObjectRepo()
    return _REPO


def _private_headers() -> dict[str, str]:
    return {"Cache-Control": "private, no-store"}


def _private_response(body: dict, *, status_code: int) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers=_private_headers())


def _invalid_oid() -> JSONResponse:
    return _private_response({"error": "bad_request", "detail": "invalid_oid"}, status_code=400)


def _not_found() -> JSONResponse:
    return _private_response({"error": "not_found"}, status_code=404)


def _prepend(first: Optional[bytes], rest: Iterator[bytes]) -> Iterator[bytes]:
    if first is None:
        return
    yield first
    yield from rest


@objects_router.post("/objects")
async def upload_object(request: Request):
    """
    Stream the request body into a new large object.

    Behavior:
        - Chunks are buffered up to the transfer chunk size and appended in
          one short transaction each (no transaction spans the upload).
        - Bodies above the configured maximum are rejected with 413 and the
          partial object is removed; empty bodies are rejected with 400.
    """
    repo = _get_repo()
    writer = UploadWriter(repo)
    limit = repo.config.max_upload_bytes
    flush_at = repo.config.transfer_bufsize
    state = await asyncio.to_thread(writer.init, remove_on_cancel=True)
    pending = bytearray()
    received = 0
    try:
        async for chunk in request.stream():
            if not chunk:
                continue
            received += len(chunk)
            if limit > 0 and received > limit:
                await asyncio.to_thread(writer.close, state, "size_exceeded")
                return _private_response({"error": "size_exceeded"}, status_code=413)
            pending.extend(chunk)
            if len(pending) >= flush_at:
                state = await asyncio.to_thread(writer.write_chunk, bytes(pending), state)
                pending.clear()
        if pending:
            state = await asyncio.to_thread(writer.write_chunk, bytes(pending), state)
            pending.clear()
    except BaseException as exc:
        # also reached when the request task is cancelled
        logger.warning("upload failed: oid=%s error=%s", state["object_id"], type(exc).__name__)
        await asyncio.to_thread(writer.close, state, "error")
        raise
    if state["size"] == 0:
        await asyncio.to_thread(writer.close, state, "empty_body")
        return _private_response({"error": "empty_body"}, status_code=400)
    state = await asyncio.to_thread(writer.close, state, DONE)
    meta = writer.meta(state)
    return _private_response({"oid": meta["object_id"], "size": meta["size"]}, status_code=201)


@objects_router.get("/objects/{oid}")
async def download_object(oid: int):
    """Stream the object as `application/octet-stream`; 404 when it is missing."""
    if oid <= 0:
        return _invalid_oid()
    chunks = _get_repo().iter_large_object(oid)
    try:
        first = await asyncio.to_thread(next, chunks, None)
    except ObjectNotFoundError:
        return _not_found()
    return StreamingResponse(
        _prepend(first, chunks),
        media_type="application/octet-stream",
        headers=_private_headers(),
    )


@objects_router.get("/objects/{oid}/size")
async def object_size(oid: int):
    if oid <= 0:
        return _invalid_oid()
    try:
        size = await asyncio.to_thread(_get_repo().large_object_size, oid)
    except ObjectNotFoundError:
        return _not_found()
    return _private_response({"oid": oid, "size": size}, status_code=200)


@objects_router.delete("/objects/{oid}")
async def delete_object(oid: int):
    if oid <= 0:
        return _invalid_oid()
    try:
        await asyncio.to_thread(_get_repo().remove_large_object, oid)
    except ObjectNotFoundError:
        return _not_found()
    return Response(status_code=204, headers=_private_headers())


__all__ = ["objects_router", "set_repo"]
