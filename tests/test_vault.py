"""
Tests for the ContactVault composition root.
"""

from unittest.mock import MagicMock

import pytest

from contact_vault.backup.manager import (
    BACKUP_KEY,
    CURRENT_KEY,
    GROUPS_PRIMARY_KEY,
    PRIMARY_KEY,
    critical_key,
)
from contact_vault.backup.snapshot import Snapshot, SnapshotType
from contact_vault.config import VaultConfig
from contact_vault.contacts import Contact
from contact_vault.daemon.scheduler import CheckpointTrigger
from contact_vault.storage import KeyValueStore, StructuredStore
from contact_vault.utils.events import EVENT_RECOVERED
from contact_vault.vault import ContactVault


def people(count):
    return [Contact(id=f"c{i}", name=f"Person {i}").to_dict() for i in range(count)]


class TestOpen:
    """Tests for opening and loading."""

    @pytest.mark.asyncio
    async def test_fresh_start(self, clock):
        """Test opening an empty vault."""
        vault = ContactVault.in_memory(clock=clock)
        report = await vault.open()
        try:
            assert vault.loaded_from is None
            assert len(vault.store) == 0
            assert report.mismatch is False
        finally:
            await vault.close()

    @pytest.mark.asyncio
    async def test_loads_primary_before_backup(self, clock):
        """Test that the primary mirror is preferred on load."""
        kv_store = KeyValueStore(":memory:")
        kv_store.initialize()
        kv_store.put(PRIMARY_KEY, people(3))
        kv_store.put(BACKUP_KEY, people(2))
        kv_store.put(GROUPS_PRIMARY_KEY, [{"id": "g1", "label": "Family"}])

        vault = ContactVault(kv_store, StructuredStore(":memory:"), clock=clock)
        await vault.open(check_integrity=False)
        try:
            assert vault.loaded_from == PRIMARY_KEY
            assert len(vault.store) == 3
            assert vault.store.get_group("g1").label == "Family"
            assert vault.store.dirty is False
        finally:
            await vault.close()

    @pytest.mark.asyncio
    async def test_corrupt_primary_falls_through_to_backup(self, clock):
        """Test that a corrupt primary falls back to the backup mirror."""
        kv_store = KeyValueStore(":memory:")
        kv_store.initialize()
        kv_store.put(PRIMARY_KEY, "not a contact list")
        kv_store.put(BACKUP_KEY, people(2))

        vault = ContactVault(kv_store, StructuredStore(":memory:"), clock=clock)
        await vault.open(check_integrity=False)
        try:
            assert vault.loaded_from == BACKUP_KEY
            assert len(vault.store) == 2
        finally:
            await vault.close()

    @pytest.mark.asyncio
    async def test_open_recovers_diverged_replicas(self, clock):
        """Test that open recovers when replica counts diverge."""
        kv_store = KeyValueStore(":memory:")
        kv_store.initialize()
        kv_store.put(PRIMARY_KEY, people(1))
        kv_store.put(BACKUP_KEY, people(12))

        vault = ContactVault(kv_store, StructuredStore(":memory:"), clock=clock)
        received = []
        vault.events.subscribe(EVENT_RECOVERED, lambda name, payload: received.append(payload))
        report = await vault.open()
        try:
            assert report.mismatch is True
            assert report.recovery.source_id == BACKUP_KEY
            assert len(vault.store) == 12
            assert received[0]["record_count"] == 12
        finally:
            await vault.close()

    @pytest.mark.asyncio
    async def test_async_context_manager(self, clock):
        """Test the async context manager opens and closes the vault."""
        async with ContactVault.in_memory(clock=clock) as vault:
            vault.store.add({"name": "Ada"})
        assert len(vault.store) == 1


class TestBackups:
    """Tests for checkpoints and manual backups."""

    def test_unknown_checkpoint_rejected(self, clock):
        """Test that unknown checkpoint triggers are rejected."""
        vault = ContactVault.in_memory(clock=clock)
        with pytest.raises(ValueError):
            vault.checkpoint("page-refresh")

    @pytest.mark.asyncio
    async def test_checkpoint_writes_critical_snapshot(self, vault, clock):
        """Test that a checkpoint writes a critical snapshot."""
        vault.store.add({"name": "Ada"})
        written = vault.checkpoint(CheckpointTrigger.TAB_HIDDEN)
        assert critical_key("tab-hidden", clock.now) in written
        assert len(vault.kv_store.get(PRIMARY_KEY)) == 1

    @pytest.mark.asyncio
    async def test_checkpoint_accepts_trigger_name(self, vault):
        """Test that triggers can be given by name."""
        assert PRIMARY_KEY in vault.checkpoint("freeze")

    @pytest.mark.asyncio
    async def test_manual_backup_of_empty_set_succeeds(self, vault, clock):
        """Test that backing up an empty set is not an error."""
        result = await vault.manual_backup()

        assert result.success is True
        assert result.record_count == 0
        full = Snapshot.from_value(
            vault.kv_store.get("contacts.full.2024-01-20"), "contacts.full.2024-01-20"
        )
        assert full.type is SnapshotType.FULL
        assert full.record_count == 0
        assert vault.writer.last_critical_save()["trigger"] == "manual"

    @pytest.mark.asyncio
    async def test_cleanup_applies_retention(self, vault, clock):
        """Test that cleanup drops snapshots past retention."""
        vault.checkpoint("manual")
        clock.advance(days=30)
        result = await vault.cleanup()
        assert result.deleted == 1

    @pytest.mark.asyncio
    async def test_network_restored_pushes_current_set(self, clock):
        """Test that regaining connectivity pushes the current set to the remote."""
        remote = MagicMock(enabled=True)
        vault = ContactVault.in_memory(remote=remote, clock=clock)
        await vault.open()
        vault.store.add({"name": "Ada"})

        assert await vault.network_restored() is True

        pushed = remote.push.call_args.args[0]
        assert pushed.record_count == 1
        await vault.close()

    @pytest.mark.asyncio
    async def test_network_restored_without_remote(self, vault):
        """Test that nothing happens when no remote is configured."""
        assert await vault.network_restored() is False


class TestClose:
    """Tests for shutting down."""

    @pytest.mark.asyncio
    async def test_close_flushes_unsaved_changes(self, clock):
        """Test that close saves changes made since the last backup."""
        kv_store = KeyValueStore(":memory:")
        structured_store = StructuredStore(":memory:")
        vault = ContactVault(kv_store, structured_store, clock=clock)
        await vault.open()
        vault.store.add({"name": "Ada"})

        flushed = {}
        original_close = structured_store.close

        async def capture_then_close():
            flushed["current"] = await structured_store.record_count(CURRENT_KEY)
            flushed["primary"] = len(kv_store.get(PRIMARY_KEY))
            await original_close()

        structured_store.close = capture_then_close
        await vault.close()

        assert flushed == {"current": 1, "primary": 1}

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, clock):
        """Test that closing twice is safe."""
        vault = ContactVault.in_memory(clock=clock)
        await vault.open()
        await vault.close()
        await vault.close()


class TestStatus:
    """Tests for the status report."""

    @pytest.mark.asyncio
    async def test_status_keys(self, vault, clock):
        """Test the keys reported by status."""
        vault.store.add({"name": "Ada"})
        await vault.manual_backup()

        status = await vault.status()

        assert status["contacts"] == 1
        assert status["groups"] == 0
        assert status["integrity_state"] == "consistent"
        assert status["replica_counts"]["primary"] == 1
        assert status["snapshots"]["kv"] == [
            critical_key("manual", clock.now),
            "contacts.full.2024-01-20",
        ]
        assert status["remote_sync"] is False
        assert status["scheduler"]["running"] is False
        assert status["kv_usage_bytes"] > 0


class TestFromConfig:
    """Tests for building a vault from configuration."""

    @pytest.mark.asyncio
    async def test_stores_live_in_data_dir(self, tmp_path, clock):
        """Test that file stores are created in the data directory."""
        config = VaultConfig(config_dir=tmp_path)
        vault = ContactVault.from_config(config, clock=clock)
        await vault.open()
        vault.store.add({"name": "Ada"})
        await vault.close()

        reopened = ContactVault.from_config(config, clock=clock)
        await reopened.open()
        try:
            assert reopened.loaded_from == PRIMARY_KEY
            assert [c.name for c in reopened.store.get_all()] == ["Ada"]
        finally:
            await reopened.close()

        assert config.kv_path.exists()
        assert config.structured_path.exists()
