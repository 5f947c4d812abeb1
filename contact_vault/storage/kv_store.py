"""
Synchronous bounded key-value store backed by SQLite.

This is the fast store used by the critical-save path: every operation
completes before returning and nothing is scheduled for later. A byte
capacity bounds the total stored payload, mirroring the quota of a
browser-style local storage area.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from contact_vault.storage.base import (
    BackendReadError,
    BackendWriteError,
    StorageQuotaError,
    decode_value,
    encode_value,
    escape_like,
)

logger = logging.getLogger(__name__)

# Default capacity: 5 MiB, the common local-storage quota
DEFAULT_CAPACITY_BYTES = 5 * 1024 * 1024

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    size_bytes INTEGER NOT NULL,
    updated_at TIMESTAMP NOT NULL
);
"""


class KeyValueStore:
    """
    SQLite-backed synchronous key-value store with a byte quota.

    Usage:
        store = KeyValueStore('/path/to/kv.db', capacity_bytes=5 * 1024 * 1024)
        store.initialize()
        store.put('contacts.primary', [...])
        contacts = store.get('contacts.primary')

        # Or use in-memory for testing:
        store = KeyValueStore(':memory:')
        store.initialize()
    """

    name = "kv"

    def __init__(
        self, db_path: str, capacity_bytes: Optional[int] = DEFAULT_CAPACITY_BYTES
    ):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ':memory:'
            capacity_bytes: Maximum total size of keys plus values in bytes.
                           None disables the quota.
        """
        self.db_path = db_path
        self.capacity_bytes = capacity_bytes
        self._shared_connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get a database connection.

        In-memory databases share one connection so the data persists across
        operations; file databases open a new connection each time.
        """
        if self.db_path == ":memory:":
            if self._shared_connection is None:
                self._shared_connection = sqlite3.connect(":memory:")
                self._shared_connection.row_factory = sqlite3.Row
            return self._shared_connection

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager committing on success and rolling back on error."""
        conn = self._get_connection()
        is_shared = self.db_path == ":memory:"
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if not is_shared:
                conn.close()

    def initialize(self) -> None:
        """Create the kv table if it doesn't exist."""
        with self.connection() as conn:
            conn.executescript(SCHEMA)

    def close(self) -> None:
        """Close the shared in-memory connection, if any."""
        if self._shared_connection is not None:
            self._shared_connection.close()
            self._shared_connection = None

    # =========================================================================
    # Backend contract
    # =========================================================================

    def get_raw(self, key: str) -> Optional[str]:
        """
        Return the stored JSON text for a key, or None if absent.

        Raises:
            BackendReadError: If the database cannot be read
        """
        try:
            with self.connection() as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise BackendReadError(f"Failed to read {key!r}: {e}", key=key) from e
        return row["value"] if row else None

    def get(self, key: str) -> Any | None:
        """
        Return the decoded value for a key, or None if absent.

        Raises:
            BackendReadError: If the read fails or the value is corrupt
        """
        raw = self.get_raw(key)
        if raw is None:
            return None
        return decode_value(raw, key)

    def put(self, key: str, value: Any) -> None:
        """
        Store a value under a key.

        Rewriting identical content is a no-op.

        Raises:
            StorageQuotaError: If the write would exceed the capacity
            BackendWriteError: If the value cannot be encoded or written
        """
        encoded = encode_value(value)
        size = len(key.encode("utf-8")) + len(encoded.encode("utf-8"))

        try:
            with self.connection() as conn:
                row = conn.execute(
                    "SELECT value, size_bytes FROM kv WHERE key = ?", (key,)
                ).fetchone()
                if row is not None and row["value"] == encoded:
                    return

                if self.capacity_bytes is not None:
                    used = conn.execute(
                        "SELECT COALESCE(SUM(size_bytes), 0) FROM kv"
                    ).fetchone()[0]
                    existing = row["size_bytes"] if row is not None else 0
                    if used - existing + size > self.capacity_bytes:
                        raise StorageQuotaError(
                            f"Quota exceeded writing {key!r}: "
                            f"{used - existing + size} > {self.capacity_bytes} bytes",
                            key=key,
                        )

                conn.execute(
                    """
                    INSERT INTO kv (key, value, size_bytes, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        size_bytes = excluded.size_bytes,
                        updated_at = excluded.updated_at
                    """,
                    (key, encoded, size, datetime.now(timezone.utc).isoformat()),
                )
        except sqlite3.Error as e:
            raise BackendWriteError(f"Failed to write {key!r}: {e}", key=key) from e

    def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if a value was deleted, False if the key was absent
        """
        try:
            with self.connection() as conn:
                cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise BackendWriteError(f"Failed to delete {key!r}: {e}", key=key) from e

    def list_all(self, namespace_prefix: str = "") -> list[str]:
        """
        List keys starting with a prefix, sorted.

        Raises:
            BackendReadError: If the database cannot be read
        """
        try:
            with self.connection() as conn:
                cursor = conn.execute(
                    "SELECT key FROM kv WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                    (escape_like(namespace_prefix) + "%",),
                )
                return [row["key"] for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise BackendReadError(f"Failed to list {namespace_prefix!r}: {e}") from e

    # =========================================================================
    # Utility Operations
    # =========================================================================

    def usage_bytes(self) -> int:
        """Get the total size currently stored, in bytes."""
        with self.connection() as conn:
            result: int = conn.execute(
                "SELECT COALESCE(SUM(size_bytes), 0) FROM kv"
            ).fetchone()[0]
            return result

    def clear(self) -> int:
        """
        Delete every key (use with caution).

        Returns:
            Number of keys deleted
        """
        with self.connection() as conn:
            cursor = conn.execute("DELETE FROM kv")
            logger.debug(f"Cleared {cursor.rowcount} key(s) from {self.db_path}")
            return cursor.rowcount


__all__ = ["KeyValueStore", "DEFAULT_CAPACITY_BYTES"]
