"""
ContactVault: wires the store, backends, writer, recovery and timers together.

One ContactVault instance owns one dataset. Nothing here is a module-level
singleton; tests and front ends construct their own instance.

Lifecycle:
    vault = ContactVault.from_config(VaultConfig.load())
    await vault.open()                 # load + integrity check (+ recovery)
    vault.start_scheduler()            # rapid / full / cleanup timers
    vault.checkpoint("tab-hidden")     # synchronous critical save
    result = await vault.manual_backup()
    await vault.close()                # stop timers, final critical save
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from contact_vault.backup.manager import (
    BACKUP_KEY,
    CURRENT_KEY,
    DEFAULT_RETENTION,
    GROUPS_BACKUP_KEY,
    GROUPS_CURRENT_KEY,
    GROUPS_PRIMARY_KEY,
    PRIMARY_KEY,
    CleanupResult,
    SnapshotWriter,
    is_snapshot_key,
)
from contact_vault.backup.snapshot import Snapshot, SnapshotFormatError
from contact_vault.config.vault_config import VaultConfig
from contact_vault.contacts.contact import utc_now
from contact_vault.contacts.store import ContactStore
from contact_vault.daemon.scheduler import (
    BackupScheduler,
    CheckpointTrigger,
    TimerSpec,
    default_timers,
)
from contact_vault.recovery.engine import RecoveryEngine, RecoveryOutcome, ScoringWeights
from contact_vault.recovery.integrity import (
    DEFAULT_DIVERGENCE_FLOOR,
    DEFAULT_DIVERGENCE_RATIO,
    IntegrityChecker,
    IntegrityReport,
)
from contact_vault.remote.client import RemoteSyncClient
from contact_vault.storage import (
    BackendReadError,
    BackendWriteError,
    KeyValueStore,
    StructuredStore,
)
from contact_vault.utils.events import EventBus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackupResult:
    """
    Outcome of a manual backup.

    Attributes:
        success: True if both the full snapshot and the critical save landed
        record_count: Contacts included in the backup
        error: What failed, if anything
    """

    success: bool
    record_count: int
    error: Optional[str] = None


class ContactVault:
    """
    Composition root for the persistence and recovery engine.

    Attributes:
        store: The authoritative in-memory dataset
        events: Bus carrying "recovered" and "recovery-issue" notifications
        writer: Snapshot writer over both backends
        engine: Recovery engine
        checker: Integrity checker (owns the check/recovery state)
        scheduler: Backup timers
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        structured_store: StructuredStore,
        store: Optional[ContactStore] = None,
        remote: Optional[RemoteSyncClient] = None,
        events: Optional[EventBus] = None,
        weights: Optional[ScoringWeights] = None,
        divergence_ratio: float = DEFAULT_DIVERGENCE_RATIO,
        divergence_floor: int = DEFAULT_DIVERGENCE_FLOOR,
        timers: Optional[list[TimerSpec]] = None,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.kv_store = kv_store
        self.structured_store = structured_store
        self.store = store or ContactStore(clock=clock)
        self.remote = remote
        self.events = events or EventBus()
        self.retention = retention

        self.writer = SnapshotWriter(
            self.store, kv_store, structured_store, remote=remote, clock=clock
        )
        self.engine = RecoveryEngine(
            self.store, self.writer, self.events, weights=weights, clock=clock
        )
        self.checker = IntegrityChecker(
            self.engine, ratio=divergence_ratio, floor=divergence_floor
        )
        self.scheduler = BackupScheduler(
            self.writer, timers=timers, retention=retention, clock=clock
        )
        self.loaded_from: Optional[str] = None
        self._opened = False

    @classmethod
    def from_config(cls, config: VaultConfig, **kwargs: Any) -> ContactVault:
        """Build a vault whose stores live in the configured data directory."""
        data_dir = config.resolved_data_dir
        data_dir.mkdir(parents=True, exist_ok=True)

        remote = None
        if config.remote_sync_url:
            remote = RemoteSyncClient(
                config.remote_sync_url,
                token_env=config.remote_sync_token_env,
                timeout=config.remote_timeout,
            )

        return cls(
            KeyValueStore(str(config.kv_path), capacity_bytes=config.kv_capacity_bytes),
            StructuredStore(str(config.structured_path)),
            remote=remote,
            weights=config.scoring,
            divergence_ratio=config.divergence_ratio,
            divergence_floor=config.divergence_floor,
            timers=default_timers(
                config.rapid_interval, config.full_interval, config.cleanup_interval
            ),
            retention=config.retention,
            **kwargs,
        )

    @classmethod
    def in_memory(cls, **kwargs: Any) -> ContactVault:
        """A vault backed by in-memory SQLite databases."""
        return cls(KeyValueStore(":memory:"), StructuredStore(":memory:"), **kwargs)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self, check_integrity: bool = True) -> Optional[IntegrityReport]:
        """
        Initialize both stores, load the dataset and check replica integrity.

        Returns:
            The integrity report, or None if the check was skipped
        """
        self.kv_store.initialize()
        await self.structured_store.initialize()
        self._opened = True

        self.loaded_from = await self.load()
        if not check_integrity:
            return None
        return await self.checker.run()

    async def load(self) -> Optional[str]:
        """
        Load the dataset from the first readable mirror.

        Tries the primary mirror, then the backup mirror, then the structured
        store's live mirror.

        Returns:
            The key loaded from, or None if no mirror exists (fresh start)
        """
        for contacts_key, groups_key, structured in (
            (PRIMARY_KEY, GROUPS_PRIMARY_KEY, False),
            (BACKUP_KEY, GROUPS_BACKUP_KEY, False),
            (CURRENT_KEY, GROUPS_CURRENT_KEY, True),
        ):
            try:
                if structured:
                    contacts = await self.structured_store.get(contacts_key)
                    groups = await self.structured_store.get(groups_key)
                else:
                    contacts = self.kv_store.get(contacts_key)
                    groups = self.kv_store.get(groups_key)
                if contacts is None:
                    continue
                snapshot = Snapshot.from_mirrors(contacts, groups, contacts_key)
            except (BackendReadError, SnapshotFormatError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping {contacts_key} during load: {e}")
                continue

            self.store.load(snapshot)
            logger.info(
                f"Loaded {snapshot.record_count} contact(s) and "
                f"{snapshot.group_count} group(s) from {contacts_key}"
            )
            return contacts_key

        logger.info("No stored contacts found, starting with an empty set")
        return None

    def start_scheduler(self) -> None:
        """Start the backup timers (requires a running event loop)."""
        self.scheduler.start()

    async def close(self) -> None:
        """
        Stop the timers, flush unsaved changes and close the stores.

        Unsaved changes go to the structured store's mirrors first, then a
        final "destroy" critical save covers the key-value store.
        """
        if not self._opened:
            return
        await self.scheduler.stop()
        try:
            await self.writer.rapid_backup()
        except BackendWriteError as e:
            logger.warning(f"Final rapid backup failed: {e}")
        try:
            self.checkpoint(CheckpointTrigger.DESTROY)
        except BackendWriteError as e:
            logger.error(f"Final critical save failed: {e}")
        await self.structured_store.close()
        self.kv_store.close()
        if self.remote is not None:
            self.remote.close()
        self._opened = False

    async def __aenter__(self) -> ContactVault:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # =========================================================================
    # Backups
    # =========================================================================

    def checkpoint(self, trigger: CheckpointTrigger | str) -> list[str]:
        """
        Synchronous critical save for a lifecycle checkpoint.

        Raises:
            ValueError: If the trigger is not a known checkpoint
            BackendWriteError: If no location could be written
        """
        return self.writer.critical_save(CheckpointTrigger(trigger).value)

    async def manual_backup(self) -> BackupResult:
        """
        Full snapshot to both stores plus a "manual" critical save.

        An empty dataset is backed up like any other.
        """
        errors: list[str] = []
        try:
            await self.writer.full_backup()
        except BackendWriteError as e:
            errors.append(str(e))

        try:
            self.checkpoint(CheckpointTrigger.MANUAL)
        except BackendWriteError as e:
            errors.append(str(e))

        result = BackupResult(
            success=not errors,
            record_count=len(self.store),
            error="; ".join(errors) or None,
        )
        if result.success:
            logger.info(f"Manual backup of {result.record_count} contact(s) complete")
        else:
            logger.error(f"Manual backup failed: {result.error}")
        return result

    async def cleanup(self) -> CleanupResult:
        """Apply the retention policy now."""
        return await self.writer.cleanup(self.retention)

    async def network_restored(self) -> bool:
        """Best-effort remote sync once connectivity returns."""
        return await self.writer.sync_remote()

    # =========================================================================
    # Integrity
    # =========================================================================

    async def check_integrity(self, recover: bool = True) -> IntegrityReport:
        return await self.checker.run(recover=recover)

    async def recover(self) -> RecoveryOutcome:
        """Restore the best candidate regardless of replica counts."""
        return await self.checker.recover()

    async def status(self) -> dict[str, Any]:
        """Persistence status: counts, replicas, timers and storage usage."""
        kv_snapshots = [k for k in self.kv_store.list_all("contacts.") if is_snapshot_key(k)]
        structured_snapshots = [
            k for k in await self.structured_store.list_all("contacts.") if is_snapshot_key(k)
        ]
        last_modified = self.store.last_modified
        return {
            "contacts": len(self.store),
            "groups": len(self.store.get_groups()),
            "dirty": self.store.dirty,
            "revision": self.store.revision,
            "last_modified": last_modified.isoformat() if last_modified else None,
            "loaded_from": self.loaded_from,
            "last_critical_save": self.writer.last_critical_save(),
            "integrity_state": self.checker.state.value,
            "replica_counts": await self.checker.read_counts(),
            "snapshots": {"kv": kv_snapshots, "structured": structured_snapshots},
            "kv_usage_bytes": self.kv_store.usage_bytes(),
            "kv_capacity_bytes": self.kv_store.capacity_bytes,
            "remote_sync": bool(self.remote and self.remote.enabled),
            "scheduler": {
                "running": self.scheduler.running,
                **self.scheduler.stats.to_dict(),
            },
        }


__all__ = ["ContactVault", "BackupResult"]
