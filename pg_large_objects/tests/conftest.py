"""
Pytest configuration for large object tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors).
"""
import sys
from pathlib import Path

import pytest

# Ensure the repo root and the tests dir (for `utils.*`) are importable
REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = REPO_ROOT / "pg_large_objects" / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

from pg_large_objects import telemetry  # noqa: E402
from pg_large_objects.config import LargeObjectConfig  # noqa: E402
from utils.fake_psycopg import FakeConnection, FakeLargeObjectServer  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_telemetry():
    """Counters are module globals; start every test from zero."""
    telemetry.reset_for_tests()
    yield
    telemetry.reset_for_tests()


@pytest.fixture(autouse=True)
def _clear_large_object_env(monkeypatch: pytest.MonkeyPatch):
    """Clear env-driven toggles so a developer shell does not leak into tests."""
    for var in (
        "LARGE_OBJECTS_DATABASE_URL",
        "LARGE_OBJECTS_BUFSIZE",
        "LARGE_OBJECTS_TRANSFER_BUFSIZE",
        "LARGE_OBJECTS_TIMEOUT_SECONDS",
        "LARGE_OBJECTS_MAX_UPLOAD_BYTES",
        "LARGE_OBJECTS_SAVEPOINTS",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def server() -> FakeLargeObjectServer:
    return FakeLargeObjectServer()


@pytest.fixture
def conn(server: FakeLargeObjectServer) -> FakeConnection:
    return server.connect()


@pytest.fixture
def make_config():
    """Build a LargeObjectConfig with test-friendly defaults."""

    def _make(**overrides) -> LargeObjectConfig:
        values = dict(
            dsn="postgresql://fake/large_objects",
            bufsize=1_048_576,
            transfer_bufsize=65_536,
            timeout_seconds=60.0,
            max_upload_bytes=100 * 1024 * 1024,
            savepoints=True,
        )
        values.update(overrides)
        return LargeObjectConfig(**values)

    return _make
