"""
Storage backends for contact data replicas.

- **KeyValueStore**: synchronous, bounded, SQLite-backed (critical saves)
- **StructuredStore**: asynchronous, indexed, aiosqlite-backed (snapshots)

Both share the get/put/delete/list_all contract defined in ``base``.
"""

from contact_vault.storage.base import (
    AsyncStorageBackend,
    BackendReadError,
    BackendWriteError,
    StorageBackend,
    StorageError,
    StorageQuotaError,
)
from contact_vault.storage.kv_store import DEFAULT_CAPACITY_BYTES, KeyValueStore
from contact_vault.storage.structured_store import StructuredStore

__all__ = [
    "AsyncStorageBackend",
    "BackendReadError",
    "BackendWriteError",
    "DEFAULT_CAPACITY_BYTES",
    "KeyValueStore",
    "StorageBackend",
    "StorageError",
    "StorageQuotaError",
    "StructuredStore",
]
