"""
Storage backend contract shared by the key-value and structured stores.

Both backends expose get/put/delete/list_all over string keys holding
JSON-serializable values. Values are serialized deterministically so that
rewriting identical content stores identical bytes.
"""

from __future__ import annotations

import json
from typing import Any, Protocol, runtime_checkable


class StorageError(Exception):
    """Base exception for storage backend errors."""

    pass


class BackendWriteError(StorageError):
    """Raised when a value could not be written to a backend."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class StorageQuotaError(BackendWriteError):
    """Raised when a bounded backend has no room left for a write."""

    pass


class BackendReadError(StorageError):
    """Raised when a backend read fails or returns undecodable data."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


def encode_value(value: Any) -> str:
    """
    Serialize a value to its canonical JSON text.

    Keys are sorted and separators fixed, so equal values always encode to
    equal strings.

    Raises:
        BackendWriteError: If the value is not JSON-serializable
    """
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise BackendWriteError(f"Value is not JSON-serializable: {e}") from e


def decode_value(raw: str, key: str | None = None) -> Any:
    """
    Parse stored JSON text.

    Raises:
        BackendReadError: If the stored text is not valid JSON
    """
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise BackendReadError(f"Corrupt value for key {key!r}: {e}", key=key) from e


@runtime_checkable
class StorageBackend(Protocol):
    """Synchronous backend contract."""

    name: str

    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...

    def list_all(self, namespace_prefix: str = "") -> list[str]: ...


@runtime_checkable
class AsyncStorageBackend(Protocol):
    """Asynchronous backend contract."""

    name: str

    async def get(self, key: str) -> Any | None: ...

    async def put(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def list_all(self, namespace_prefix: str = "") -> list[str]: ...


def escape_like(prefix: str) -> str:
    """Escape a key prefix for use in a SQL ``LIKE ... ESCAPE '\\'`` clause."""
    return prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


__all__ = [
    "StorageError",
    "BackendWriteError",
    "BackendReadError",
    "StorageQuotaError",
    "StorageBackend",
    "AsyncStorageBackend",
    "encode_value",
    "decode_value",
    "escape_like",
]
