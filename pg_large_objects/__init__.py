"""
Streamed access to PostgreSQL large objects.

Handles (`LargeObject`) are bound to an open transaction on a backend; the
repository (`LargeObjectRepo`) owns connections and scopes, `transfer`
moves whole payloads in and out, and `UploadWriter` appends chunks as they
arrive.
"""

__version__ = "0.1.0"

from .errors import (
    InvalidModeError,
    InvalidOffsetError,
    LargeObjectError,
    ObjectExistsError,
    ObjectNotFoundError,
    ReadOnlyError,
    ScopeError,
    TransferTimeoutError,
)
from .large_object import LargeObject
from .ports import Mode, Whence
from .repo import LargeObjectRepo
from .upload_writer import UploadWriter

__all__ = [
    "InvalidModeError",
    "InvalidOffsetError",
    "LargeObject",
    "LargeObjectError",
    "LargeObjectRepo",
    "Mode",
    "ObjectExistsError",
    "ObjectNotFoundError",
    "ReadOnlyError",
    "ScopeError",
    "TransferTimeoutError",
    "UploadWriter",
    "Whence",
    "__version__",
]
