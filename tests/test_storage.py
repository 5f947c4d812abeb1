"""
Tests for the storage backends.

Covers the synchronous key-value store (quota, deterministic encoding)
and the aiosqlite structured store (indexed queries).
"""

import pytest

from contact_vault.storage import (
    AsyncStorageBackend,
    BackendReadError,
    BackendWriteError,
    KeyValueStore,
    StorageBackend,
    StorageQuotaError,
    StructuredStore,
)
from contact_vault.storage.base import decode_value, encode_value, escape_like
from contact_vault.storage.structured_store import key_namespace


class TestEncoding:
    """Tests for value encoding helpers."""

    def test_encode_is_deterministic(self):
        """Equal values encode to equal strings regardless of key order."""
        assert encode_value({"b": 1, "a": 2}) == encode_value({"a": 2, "b": 1})

    def test_encode_rejects_unserializable(self):
        """Test that values JSON cannot encode raise a write error."""
        with pytest.raises(BackendWriteError):
            encode_value({"when": object()})

    def test_decode_invalid_json_raises_read_error(self):
        """Test that a malformed stored value raises a read error naming the key."""
        with pytest.raises(BackendReadError) as exc_info:
            decode_value("{not json", key="contacts.primary")
        assert exc_info.value.key == "contacts.primary"

    def test_escape_like_escapes_wildcards(self):
        """Test that LIKE wildcards in prefixes are escaped."""
        assert escape_like("a_b%c") == "a\\_b\\%c"


class TestKeyValueStore:
    """Tests for KeyValueStore basic operations."""

    def test_satisfies_backend_protocol(self, kv_store):
        """Test the key-value store satisfies the backend protocol."""
        assert isinstance(kv_store, StorageBackend)

    def test_get_missing_key_returns_none(self, kv_store):
        """Test that reading a missing key returns None."""
        assert kv_store.get("contacts.primary") is None

    def test_put_and_get_roundtrip(self, kv_store):
        """Test that a stored list reads back unchanged."""
        kv_store.put("contacts.primary", [{"id": "1", "name": "Ada"}])
        assert kv_store.get("contacts.primary") == [{"id": "1", "name": "Ada"}]

    def test_put_overwrites(self, kv_store):
        """Test that a second put replaces the first value."""
        kv_store.put("key", [1])
        kv_store.put("key", [1, 2])
        assert kv_store.get("key") == [1, 2]

    def test_delete_existing_key(self, kv_store):
        """Test that deleting an existing key reports True."""
        kv_store.put("key", "value")
        assert kv_store.delete("key") is True
        assert kv_store.get("key") is None

    def test_delete_missing_key(self, kv_store):
        """Test that deleting a missing key reports False."""
        assert kv_store.delete("missing") is False

    def test_list_all_filters_by_prefix(self, kv_store):
        """Test that list_all only returns keys under the prefix."""
        kv_store.put("contacts.primary", [])
        kv_store.put("contacts.backup", [])
        kv_store.put("settings.theme", "dark")
        assert kv_store.list_all("contacts.") == ["contacts.backup", "contacts.primary"]

    def test_list_all_prefix_is_literal(self, kv_store):
        """Underscores in the prefix are not SQL wildcards."""
        kv_store.put("a_b.key", 1)
        kv_store.put("axb.key", 2)
        assert kv_store.list_all("a_b") == ["a_b.key"]

    def test_corrupt_value_raises_read_error(self, kv_store):
        """Test that a corrupt stored value raises a read error."""
        with kv_store.connection() as conn:
            conn.execute(
                "INSERT INTO kv (key, value, size_bytes, updated_at) VALUES (?, ?, ?, ?)",
                ("contacts.primary", "{broken", 7, "2024-01-01"),
            )
        with pytest.raises(BackendReadError):
            kv_store.get("contacts.primary")

    def test_usage_bytes_tracks_writes(self, kv_store):
        """Test that usage grows with stored bytes."""
        assert kv_store.usage_bytes() == 0
        kv_store.put("k", "v")
        assert kv_store.usage_bytes() == len("k") + len('"v"')

    def test_clear_removes_everything(self, kv_store):
        """Test that clear removes every key."""
        kv_store.put("a", 1)
        kv_store.put("b", 2)
        assert kv_store.clear() == 2
        assert kv_store.list_all() == []


class TestKeyValueStoreQuota:
    """Tests for the byte capacity."""

    def test_write_beyond_capacity_raises_quota_error(self):
        """Test that exceeding the capacity raises a quota error."""
        store = KeyValueStore(":memory:", capacity_bytes=50)
        store.initialize()
        with pytest.raises(StorageQuotaError) as exc_info:
            store.put("contacts.primary", "x" * 100)
        assert exc_info.value.key == "contacts.primary"
        assert store.get("contacts.primary") is None
        store.close()

    def test_quota_error_is_write_error(self):
        assert issubclass(StorageQuotaError, BackendWriteError)

    def test_overwrite_counts_replaced_size_only(self):
        """Test that an overwrite only counts the size difference."""
        store = KeyValueStore(":memory:", capacity_bytes=30)
        store.initialize()
        store.put("k", "x" * 20)
        # Replacing the same key frees its previous size first
        store.put("k", "y" * 20)
        assert store.get("k") == "y" * 20
        store.close()

    def test_no_capacity_disables_quota(self):
        """Test that a None capacity never raises a quota error."""
        store = KeyValueStore(":memory:", capacity_bytes=None)
        store.initialize()
        store.put("k", "x" * 10_000)
        assert len(store.get("k")) == 10_000
        store.close()

    def test_file_database_persists_across_instances(self, tmp_path):
        """Test that a file database keeps data between instances."""
        db_path = str(tmp_path / "kv.db")
        first = KeyValueStore(db_path)
        first.initialize()
        first.put("contacts.primary", [{"id": "1"}])

        second = KeyValueStore(db_path)
        second.initialize()
        assert second.get("contacts.primary") == [{"id": "1"}]


class TestStructuredStore:
    """Tests for the aiosqlite structured store."""

    def test_key_namespace(self):
        assert key_namespace("contacts.rapid.2024-01-20") == "contacts.rapid"
        assert key_namespace("contacts") == "contacts"

    @pytest.mark.asyncio
    async def test_satisfies_async_backend_protocol(self, structured_store):
        """Test the structured store satisfies the async backend protocol."""
        assert isinstance(structured_store, AsyncStorageBackend)

    @pytest.mark.asyncio
    async def test_put_and_get_roundtrip(self, structured_store):
        """Test that a stored list reads back unchanged."""
        await structured_store.put("contacts.current", [{"id": "1", "name": "Ada"}])
        assert await structured_store.get("contacts.current") == [{"id": "1", "name": "Ada"}]

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, structured_store):
        """Test that reading a missing key returns None."""
        assert await structured_store.get("contacts.current") is None

    @pytest.mark.asyncio
    async def test_delete(self, structured_store):
        """Test that deleted keys read back as None."""
        await structured_store.put("k", 1)
        assert await structured_store.delete("k") is True
        assert await structured_store.delete("k") is False

    @pytest.mark.asyncio
    async def test_list_all_by_prefix(self, structured_store):
        """Test that list_all only returns keys under the prefix."""
        await structured_store.put("contacts.rapid.2024-01-20", {"contacts": []})
        await structured_store.put("contacts.full.2024-01-20", {"contacts": []})
        await structured_store.put("other", 1)
        assert await structured_store.list_all("contacts.") == [
            "contacts.full.2024-01-20",
            "contacts.rapid.2024-01-20",
        ]

    @pytest.mark.asyncio
    async def test_record_count_indexed_for_lists_and_snapshots(self, structured_store):
        """Test that record counts are indexed for mirrors and snapshot payloads."""
        await structured_store.put("contacts.current", [{"id": "1"}, {"id": "2"}])
        await structured_store.put(
            "contacts.full.2024-01-20", {"contacts": [{"id": "1"}], "type": "full"}
        )
        assert await structured_store.record_count("contacts.current") == 2
        assert await structured_store.record_count("contacts.full.2024-01-20") == 1
        assert await structured_store.record_count("missing") is None

    @pytest.mark.asyncio
    async def test_find_by_kind_newest_first(self, structured_store):
        """Test that find_by returns matching rows newest first."""
        await structured_store.put(
            "contacts.rapid.2024-01-19",
            {"contacts": [], "type": "rapid", "timestamp": "2024-01-19T10:00:00+00:00"},
        )
        await structured_store.put(
            "contacts.rapid.2024-01-20",
            {"contacts": [], "type": "rapid", "timestamp": "2024-01-20T10:00:00+00:00"},
        )
        await structured_store.put(
            "contacts.full.2024-01-20",
            {"contacts": [], "type": "full", "timestamp": "2024-01-20T11:00:00+00:00"},
        )
        assert await structured_store.find_by("kind", "rapid") == [
            "contacts.rapid.2024-01-20",
            "contacts.rapid.2024-01-19",
        ]
        assert await structured_store.find_by("namespace", "contacts.full") == [
            "contacts.full.2024-01-20"
        ]

    @pytest.mark.asyncio
    async def test_find_by_rejects_unindexed_field(self, structured_store):
        """Test that find_by only accepts indexed fields."""
        with pytest.raises(ValueError, match="indexed fields"):
            await structured_store.find_by("value", "x")

    @pytest.mark.asyncio
    async def test_uninitialized_store_raises(self):
        """Test that using the store before initialize raises."""
        store = StructuredStore(":memory:")
        with pytest.raises(BackendReadError):
            await store.get("k")
        with pytest.raises(BackendWriteError):
            await store.put("k", 1)

    @pytest.mark.asyncio
    async def test_clear(self, structured_store):
        await structured_store.put("a", 1)
        await structured_store.put("b", 2)
        assert await structured_store.clear() == 2
        assert await structured_store.list_all() == []
