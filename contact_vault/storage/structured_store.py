"""
Asynchronous structured store backed by aiosqlite.

Slower than the key-value store but without a quota. Besides the plain
key/value contract it extracts a few fields from each stored value
(namespace, snapshot type, timestamp, record count) into indexed columns so
snapshots can be queried without decoding every row.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Optional

import aiosqlite

from contact_vault.storage.base import (
    BackendReadError,
    BackendWriteError,
    decode_value,
    encode_value,
    escape_like,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    key TEXT PRIMARY KEY,
    namespace TEXT NOT NULL,
    kind TEXT,
    timestamp TEXT,
    record_count INTEGER,
    value TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_records_namespace ON records(namespace);
CREATE INDEX IF NOT EXISTS idx_records_kind ON records(kind);
CREATE INDEX IF NOT EXISTS idx_records_timestamp ON records(timestamp);
"""

# Columns that find_by() may filter on
INDEXED_FIELDS = ("namespace", "kind", "timestamp")


def key_namespace(key: str) -> str:
    """
    Derive the namespace of a key from its first two dotted segments.

    "contacts.rapid.2024-01-20" -> "contacts.rapid"
    """
    return ".".join(key.split(".")[:2])


def _index_fields(value: Any) -> tuple[Optional[str], Optional[str], Optional[int]]:
    """Extract (kind, timestamp, record_count) from a stored value."""
    if isinstance(value, dict):
        contacts = value.get("contacts")
        count = len(contacts) if isinstance(contacts, list) else None
        kind = value.get("type")
        timestamp = value.get("timestamp")
        return (
            kind if isinstance(kind, str) else None,
            timestamp if isinstance(timestamp, str) else None,
            count,
        )
    if isinstance(value, list):
        return None, None, len(value)
    return None, None, None


class StructuredStore:
    """
    aiosqlite-backed asynchronous store with secondary indices.

    Usage:
        store = StructuredStore('/path/to/records.db')
        await store.initialize()
        await store.put('contacts.rapid.2024-01-20', snapshot_dict)
        keys = await store.find_by('kind', 'rapid')
        await store.close()
    """

    name = "structured"

    def __init__(self, db_path: str):
        """
        Args:
            db_path: Path to SQLite database file, or ':memory:'
        """
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """Open the connection and create the schema if needed."""
        if self._conn is None:
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        await self._conn.executescript(SCHEMA)
        await self._conn.commit()

    async def close(self) -> None:
        """Close the connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise BackendReadError(f"Structured store {self.db_path} is not initialized")
        return self._conn

    # =========================================================================
    # Backend contract
    # =========================================================================

    async def get_raw(self, key: str) -> Optional[str]:
        """Return the stored JSON text for a key, or None if absent."""
        try:
            async with self._connection().execute(
                "SELECT value FROM records WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise BackendReadError(f"Failed to read {key!r}: {e}", key=key) from e
        return row["value"] if row else None

    async def get(self, key: str) -> Any | None:
        """
        Return the decoded value for a key, or None if absent.

        Raises:
            BackendReadError: If the read fails or the value is corrupt
        """
        raw = await self.get_raw(key)
        if raw is None:
            return None
        return decode_value(raw, key)

    async def put(self, key: str, value: Any) -> None:
        """
        Store a value and refresh its indexed fields.

        Rewriting identical content leaves the row unchanged.

        Raises:
            BackendWriteError: If the value cannot be encoded or written
        """
        encoded = encode_value(value)
        kind, timestamp, record_count = _index_fields(value)

        try:
            conn = self._connection()
            await conn.execute(
                """
                INSERT INTO records (key, namespace, kind, timestamp, record_count, value)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    namespace = excluded.namespace,
                    kind = excluded.kind,
                    timestamp = excluded.timestamp,
                    record_count = excluded.record_count,
                    value = excluded.value
                WHERE records.value != excluded.value
                """,
                (key, key_namespace(key), kind, timestamp, record_count, encoded),
            )
            await conn.commit()
        except (sqlite3.Error, BackendReadError) as e:
            raise BackendWriteError(f"Failed to write {key!r}: {e}", key=key) from e

    async def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if a value was deleted, False if the key was absent
        """
        try:
            conn = self._connection()
            cursor = await conn.execute("DELETE FROM records WHERE key = ?", (key,))
            await conn.commit()
            return cursor.rowcount > 0
        except (sqlite3.Error, BackendReadError) as e:
            raise BackendWriteError(f"Failed to delete {key!r}: {e}", key=key) from e

    async def list_all(self, namespace_prefix: str = "") -> list[str]:
        """List keys starting with a prefix, sorted."""
        try:
            async with self._connection().execute(
                "SELECT key FROM records WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (escape_like(namespace_prefix) + "%",),
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise BackendReadError(f"Failed to list {namespace_prefix!r}: {e}") from e
        return [row["key"] for row in rows]

    # =========================================================================
    # Index queries
    # =========================================================================

    async def find_by(self, field: str, value: str) -> list[str]:
        """
        List keys whose indexed field equals a value, newest timestamp first.

        Args:
            field: One of "namespace", "kind", "timestamp"
            value: Value to match exactly

        Raises:
            ValueError: If the field is not indexed
        """
        if field not in INDEXED_FIELDS:
            raise ValueError(
                f"Cannot query on {field!r}; indexed fields are {', '.join(INDEXED_FIELDS)}"
            )

        try:
            async with self._connection().execute(
                f"SELECT key FROM records WHERE {field} = ? "  # nosec B608 - field is whitelisted
                "ORDER BY timestamp DESC, key",
                (value,),
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise BackendReadError(f"Failed to query {field}={value!r}: {e}") from e
        return [row["key"] for row in rows]

    async def record_count(self, key: str) -> Optional[int]:
        """Get the indexed record count for a key without decoding its value."""
        try:
            async with self._connection().execute(
                "SELECT record_count FROM records WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise BackendReadError(f"Failed to read {key!r}: {e}", key=key) from e
        return row["record_count"] if row else None

    async def clear(self) -> int:
        """Delete every record (use with caution)."""
        conn = self._connection()
        cursor = await conn.execute("DELETE FROM records")
        await conn.commit()
        logger.debug(f"Cleared {cursor.rowcount} record(s) from {self.db_path}")
        return cursor.rowcount


__all__ = ["StructuredStore", "INDEXED_FIELDS", "key_namespace"]
