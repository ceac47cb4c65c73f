"""
Upload writer streaming incoming chunks straight into a large object.

Intent:
    Let an upload pipeline push chunks as they arrive without holding the
    whole payload in memory and without a transaction spanning the whole
    upload. `init` creates the object in its own committed scope; every
    `write_chunk` opens a fresh scope, opens the object in append mode,
    writes and closes.

State:
    A plain dict `{"object_id": int, "size": int, "remove_on_cancel": bool}`;
    every call returns a new dict. `meta(state)` exposes it to whoever consumes
    the finished upload, which stores `object_id` to keep a reference to the
    data.

Errors:
    `write_chunk` raises the LargeObjectError of the failed scope; that scope
    was rolled back, so the object holds exactly the chunks written before.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from .errors import ObjectNotFoundError
from .large_object import LargeObject
from .ports import BytesLike, Mode
from .repo import LargeObjectRepo

LOG = logging.getLogger(__name__)

DONE = "done"


class UploadWriter:
    """Push-based writer: init -> write_chunk* -> close."""

    def __init__(self, repo: LargeObjectRepo) -> None:
        self._repo = repo

    def init(self, *, remove_on_cancel: bool = False) -> Dict[str, Any]:
        with self._repo.session() as backend:
            with LargeObject.created(backend, mode=Mode.WRITE) as lob:
                oid = lob.oid
        LOG.debug("upload started: oid=%s", oid)
        return {"object_id": oid, "size": 0, "remove_on_cancel": bool(remove_on_cancel)}

    def meta(self, state: Dict[str, Any]) -> Dict[str, Any]:
        return dict(state)

    def write_chunk(self, data: BytesLike, state: Dict[str, Any]) -> Dict[str, Any]:
        with self._repo.open_large_object(state["object_id"], mode=Mode.APPEND) as lob:
            lob.write(data)
        return {**state, "size": state["size"] + memoryview(data).nbytes}

    def close(self, state: Dict[str, Any], reason: Any) -> Dict[str, Any]:
        """Finish the upload. Any reason other than "done" counts as cancelled."""
        if reason == DONE:
            LOG.info("upload finished: oid=%s bytes=%s", state["object_id"], state["size"])
            return state
        LOG.info("upload cancelled: oid=%s bytes=%s reason=%s", state["object_id"], state["size"], reason)
        if state.get("remove_on_cancel"):
            try:
                self._repo.remove_large_object(state["object_id"])
            except ObjectNotFoundError:
                LOG.debug("cancelled upload already removed: oid=%s", state["object_id"])
            return {**state, "size": 0}
        return state


__all__ = ["DONE", "UploadWriter"]
