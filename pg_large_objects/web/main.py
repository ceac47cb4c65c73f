"pg-large-objects HTTP service"
from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from pg_large_objects import __version__
from pg_large_objects.web.routes import objects_router

logger = logging.getLogger("pg_large_objects.web")


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest; tests provide their own env.
    - Explicit opt-out via LARGE_OBJECTS_ENABLE_DOTENV (default true).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("LARGE_OBJECTS_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    load_dotenv()

app = FastAPI(title="pg-large-objects", description="Streamed access to PostgreSQL large objects", version=__version__)

app.include_router(objects_router)


@app.get("/health")
async def health_check():
    # Security: no-store, runtime status must not be cached.
    return JSONResponse({"status": "healthy"}, headers={"Cache-Control": "private, no-store"})
