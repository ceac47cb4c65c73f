"""
Transfer counters kept in process memory.

Every import or export records its outcome once; successful ones also add
the bytes they moved. Readers (an exporter, a health endpoint or a test)
take the values through `transfer_count`, `bytes_transferred` or
`snapshot`.
"""
from __future__ import annotations

from collections import Counter
from threading import Lock
from typing import Dict

DIRECTIONS = ("import", "export")
OUTCOMES = ("ok", "error")

_outcomes: Counter = Counter()
_bytes: Counter = Counter()
_lock = Lock()


def record_transfer(direction: str, outcome: str, *, nbytes: int = 0) -> None:
    """Count one finished transfer; `nbytes` is what it moved."""
    if direction not in DIRECTIONS:
        raise ValueError(f"unknown transfer direction: {direction!r}")
    if outcome not in OUTCOMES:
        raise ValueError(f"unknown transfer outcome: {outcome!r}")
    with _lock:
        _outcomes[direction, outcome] += 1
        _bytes[direction] += nbytes


def transfer_count(direction: str, outcome: str) -> int:
    with _lock:
        return _outcomes[direction, outcome]


def bytes_transferred(direction: str) -> int:
    with _lock:
        return _bytes[direction]


def snapshot() -> Dict[str, int]:
    """Flat copy, e.g. {"import.ok": 2, "import.error": 0, "import.bytes": 10, ...}."""
    with _lock:
        values: Dict[str, int] = {}
        for direction in DIRECTIONS:
            for outcome in OUTCOMES:
                values[f"{direction}.{outcome}"] = _outcomes[direction, outcome]
            values[f"{direction}.bytes"] = _bytes[direction]
        return values


def reset_for_tests() -> None:
    with _lock:
        _outcomes.clear()
        _bytes.clear()


__all__ = ["bytes_transferred", "record_transfer", "reset_for_tests", "snapshot", "transfer_count"]
