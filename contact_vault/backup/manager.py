"""
Snapshot writer: persists the contact dataset across both storage backends.

Provides functionality to:
- Write critical saves synchronously to the key-value store (lifecycle checkpoints)
- Write rapid snapshots and live mirrors to the structured store
- Write full snapshots to both stores and push them to the remote endpoint
- Re-persist a recovered dataset to every location
- Apply the retention policy by each snapshot's embedded timestamp

Key layout:
    contacts.primary / contacts.backup          contacts mirror (key-value store)
    contacts.groups.primary / .backup           groups mirror (key-value store)
    contacts.current / contacts.groups.current  live mirrors (structured store)
    contacts.critical.<trigger>.<ms>            critical snapshot (key-value store)
    contacts.emergency.<ms>                     fallback snapshot (key-value store)
    contacts.rapid.<date>                       rapid snapshot (structured store)
    contacts.full.<date>                        full snapshot (both stores)
    contacts.meta.last_critical_save            {timestamp, trigger} (key-value store)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Optional

from contact_vault.backup.snapshot import (
    Snapshot,
    SnapshotFormatError,
    SnapshotType,
    UnsupportedSchemaVersion,
)
from contact_vault.contacts.contact import parse_timestamp, utc_now
from contact_vault.storage import (
    BackendReadError,
    BackendWriteError,
    KeyValueStore,
    StructuredStore,
)

if TYPE_CHECKING:
    from contact_vault.contacts.store import ContactStore
    from contact_vault.remote.client import RemoteSyncClient

logger = logging.getLogger(__name__)

PRIMARY_KEY = "contacts.primary"
BACKUP_KEY = "contacts.backup"
GROUPS_PRIMARY_KEY = "contacts.groups.primary"
GROUPS_BACKUP_KEY = "contacts.groups.backup"
CURRENT_KEY = "contacts.current"
GROUPS_CURRENT_KEY = "contacts.groups.current"
LAST_CRITICAL_SAVE_KEY = "contacts.meta.last_critical_save"

CRITICAL_PREFIX = "contacts.critical."
EMERGENCY_PREFIX = "contacts.emergency."
RAPID_PREFIX = "contacts.rapid."
FULL_PREFIX = "contacts.full."
SNAPSHOT_PREFIXES = (CRITICAL_PREFIX, EMERGENCY_PREFIX, RAPID_PREFIX, FULL_PREFIX)

DEFAULT_RETENTION = timedelta(days=7)


def epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def date_key(prefix: str, moment: datetime) -> str:
    """Key for a once-per-day snapshot (later writes on the same date supersede)."""
    return f"{prefix}{moment.date().isoformat()}"


def critical_key(trigger: str, moment: datetime) -> str:
    return f"{CRITICAL_PREFIX}{trigger}.{epoch_millis(moment)}"


def emergency_key(moment: datetime) -> str:
    return f"{EMERGENCY_PREFIX}{epoch_millis(moment)}"


def is_snapshot_key(key: str) -> bool:
    return key.startswith(SNAPSHOT_PREFIXES)


@dataclass
class CleanupResult:
    """
    Outcome of a retention pass.

    Attributes:
        expired: Keys deleted because their snapshot was past retention
        corrupt: Keys deleted because their value could not be parsed
        kept: Number of snapshot keys left in place
    """

    expired: list[str] = field(default_factory=list)
    corrupt: list[str] = field(default_factory=list)
    kept: int = 0

    @property
    def deleted(self) -> int:
        return len(self.expired) + len(self.corrupt)


class SnapshotWriter:
    """
    Writes snapshots of a ContactStore to the storage backends.

    Holds no timers; BackupScheduler and ContactVault decide when to call it.

    Usage:
        writer = SnapshotWriter(store, kv_store, structured_store)

        # Synchronous, safe inside a signal handler
        writer.critical_save("terminate")

        # Async paths
        await writer.rapid_backup()
        await writer.full_backup()
        await writer.cleanup()
    """

    def __init__(
        self,
        store: ContactStore,
        kv_store: KeyValueStore,
        structured_store: StructuredStore,
        remote: Optional[RemoteSyncClient] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.kv_store = kv_store
        self.structured_store = structured_store
        self.remote = remote
        self._clock = clock

    # =========================================================================
    # Critical path (synchronous)
    # =========================================================================

    def critical_save(self, trigger: str) -> list[str]:
        """
        Save the authoritative set to the key-value store without awaiting.

        Writes both contact mirrors, both group mirrors and a timestamped
        critical snapshot. Any key that fails is covered by a single
        ``contacts.emergency.<ms>`` snapshot.

        Args:
            trigger: Lifecycle checkpoint name (e.g. "terminate")

        Returns:
            Keys that were written

        Raises:
            BackendWriteError: If no location at all could be written
        """
        now = self._clock()
        snapshot = self.store.snapshot(
            SnapshotType.CRITICAL,
            trigger=trigger,
            source_id=critical_key(trigger, now),
            timestamp=now,
        )
        contacts_mirror = snapshot.contacts_mirror()
        groups_mirror = snapshot.groups_mirror()

        writes: list[tuple[str, Any]] = [
            (PRIMARY_KEY, contacts_mirror),
            (BACKUP_KEY, contacts_mirror),
            (GROUPS_PRIMARY_KEY, groups_mirror),
            (GROUPS_BACKUP_KEY, groups_mirror),
            (snapshot.source_id, snapshot.to_dict()),
        ]

        written: list[str] = []
        failed: list[str] = []
        for key, value in writes:
            try:
                self.kv_store.put(key, value)
                written.append(key)
            except BackendWriteError as e:
                logger.warning(f"Critical save ({trigger}) could not write {key}: {e}")
                failed.append(key)

        if failed:
            fallback = emergency_key(now)
            emergency = replace(snapshot, type=SnapshotType.EMERGENCY, source_id=fallback)
            try:
                self.kv_store.put(fallback, emergency.to_dict())
                written.append(fallback)
                logger.warning(f"Critical save ({trigger}) fell back to {fallback}")
            except BackendWriteError as e:
                logger.error(f"Emergency save failed: {e}")

        if not written:
            raise BackendWriteError(
                f"Critical save ({trigger}) failed: no storage location accepted the data"
            )

        try:
            self.kv_store.put(
                LAST_CRITICAL_SAVE_KEY, {"timestamp": now.isoformat(), "trigger": trigger}
            )
        except BackendWriteError as e:
            logger.warning(f"Could not record last critical save: {e}")

        logger.debug(
            f"Critical save ({trigger}): {snapshot.record_count} contact(s), "
            f"{len(written)} key(s) written"
        )
        return written

    def last_critical_save(self) -> Optional[dict[str, Any]]:
        """The {timestamp, trigger} record of the last critical save, if readable."""
        try:
            value = self.kv_store.get(LAST_CRITICAL_SAVE_KEY)
        except BackendReadError as e:
            logger.warning(f"Could not read last critical save: {e}")
            return None
        return value if isinstance(value, dict) else None

    # =========================================================================
    # Async paths
    # =========================================================================

    async def _write_async_mirrors(self, snapshot: Snapshot) -> None:
        await self.structured_store.put(CURRENT_KEY, snapshot.contacts_mirror())
        await self.structured_store.put(GROUPS_CURRENT_KEY, snapshot.groups_mirror())

    async def rapid_backup(self, force: bool = False) -> Optional[Snapshot]:
        """
        Write the live mirrors and the day's rapid snapshot if the store is dirty.

        Returns:
            The written snapshot, or None if there was nothing to write

        Raises:
            BackendWriteError: If the structured store rejected the write
        """
        if not (self.store.dirty or force):
            return None

        revision = self.store.revision
        now = self._clock()
        key = date_key(RAPID_PREFIX, now)
        snapshot = self.store.snapshot(SnapshotType.RAPID, source_id=key, timestamp=now)

        await self._write_async_mirrors(snapshot)
        await self.structured_store.put(key, snapshot.to_dict())
        self.store.mark_clean(revision)

        logger.debug(f"Rapid backup: {snapshot.record_count} contact(s) to {key}")
        return snapshot

    async def full_backup(self, sync_remote: bool = True) -> Snapshot:
        """
        Write a full snapshot to both stores, then push it to the remote.

        A failure in one store is logged; the backup only fails when neither
        store accepted it. Remote failures never fail the backup.

        Raises:
            BackendWriteError: If both stores rejected the snapshot
        """
        revision = self.store.revision
        now = self._clock()
        key = date_key(FULL_PREFIX, now)
        snapshot = self.store.snapshot(SnapshotType.FULL, source_id=key, timestamp=now)
        payload = snapshot.to_dict()

        kv_ok = True
        try:
            self.kv_store.put(key, payload)
        except BackendWriteError as e:
            logger.warning(f"Full backup could not write {key} to key-value store: {e}")
            kv_ok = False

        structured_ok = True
        try:
            await self.structured_store.put(key, payload)
            await self._write_async_mirrors(snapshot)
        except BackendWriteError as e:
            logger.warning(f"Full backup could not write {key} to structured store: {e}")
            structured_ok = False

        if not (kv_ok or structured_ok):
            raise BackendWriteError(f"Full backup failed: no store accepted {key}", key=key)

        if structured_ok:
            self.store.mark_clean(revision)

        logger.info(f"Full backup: {snapshot.record_count} contact(s) to {key}")

        if sync_remote:
            await self.sync_remote(snapshot)
        return snapshot

    async def sync_remote(self, snapshot: Optional[Snapshot] = None) -> bool:
        """
        Best-effort push to the remote endpoint.

        Returns:
            True if the remote accepted the snapshot
        """
        if self.remote is None or not self.remote.enabled:
            return False

        from contact_vault.remote.client import RemoteSyncError

        snapshot = snapshot or self.store.snapshot(
            SnapshotType.FULL, source_id="remote", timestamp=self._clock()
        )
        try:
            await asyncio.to_thread(self.remote.push, snapshot)
        except RemoteSyncError as e:
            logger.warning(f"Remote sync skipped: {e}")
            return False
        return True

    async def persist_all(self, snapshot: Snapshot) -> list[str]:
        """
        Write a dataset to every mirror location in both stores.

        Used after recovery. Individual failures are logged.

        Returns:
            Keys that were written

        Raises:
            BackendWriteError: If no location accepted the data
        """
        contacts_mirror = snapshot.contacts_mirror()
        groups_mirror = snapshot.groups_mirror()
        written: list[str] = []

        for key, value in (
            (PRIMARY_KEY, contacts_mirror),
            (BACKUP_KEY, contacts_mirror),
            (GROUPS_PRIMARY_KEY, groups_mirror),
            (GROUPS_BACKUP_KEY, groups_mirror),
        ):
            try:
                self.kv_store.put(key, value)
                written.append(key)
            except BackendWriteError as e:
                logger.warning(f"Could not re-persist {key}: {e}")

        for key, value in ((CURRENT_KEY, contacts_mirror), (GROUPS_CURRENT_KEY, groups_mirror)):
            try:
                await self.structured_store.put(key, value)
                written.append(key)
            except BackendWriteError as e:
                logger.warning(f"Could not re-persist {key}: {e}")

        if not written:
            raise BackendWriteError("Re-persist failed: no storage location accepted the data")
        return written

    # =========================================================================
    # Retention
    # =========================================================================

    def _classify(self, key: str, value: Any, cutoff: datetime) -> Optional[str]:
        """Return "expired", "corrupt" or None (keep)."""
        try:
            snapshot = Snapshot.from_value(value, key)
        except UnsupportedSchemaVersion as e:
            # Written by a newer release; age it out but never call it corrupt
            timestamp = parse_timestamp(value.get("timestamp"))
            if timestamp is not None and timestamp < cutoff:
                return "expired"
            logger.debug(f"Keeping {key}: schema version {e.version} is newer than supported")
            return None
        except (SnapshotFormatError, TypeError, AttributeError) as e:
            logger.warning(f"Removing corrupt snapshot {key}: {e}")
            return "corrupt"

        timestamp = snapshot.timestamp
        if timestamp is None and isinstance(value, dict):
            timestamp = parse_timestamp(value.get("timestamp"))
        if timestamp is None:
            logger.debug(f"Keeping {key}: no embedded timestamp")
            return None
        return "expired" if timestamp < cutoff else None

    async def cleanup(
        self,
        retention: timedelta = DEFAULT_RETENTION,
        now: Optional[datetime] = None,
    ) -> CleanupResult:
        """
        Delete snapshots older than ``retention`` from both stores.

        Age comes from the timestamp embedded in each snapshot, never from
        the key. Unparseable values are deleted as corrupt; snapshots written
        by a newer schema version are kept until their raw timestamp expires.
        """
        cutoff = (now or self._clock()) - retention
        result = CleanupResult()

        for key in self.kv_store.list_all("contacts."):
            if not is_snapshot_key(key):
                continue
            try:
                value = self.kv_store.get(key)
                verdict = self._classify(key, value, cutoff)
            except BackendReadError as e:
                logger.warning(f"Removing unreadable snapshot {key}: {e}")
                verdict = "corrupt"
            if verdict is None:
                result.kept += 1
                continue
            self.kv_store.delete(key)
            getattr(result, verdict).append(key)

        for key in await self.structured_store.list_all("contacts."):
            if not is_snapshot_key(key):
                continue
            try:
                value = await self.structured_store.get(key)
                verdict = self._classify(key, value, cutoff)
            except BackendReadError as e:
                logger.warning(f"Removing unreadable snapshot {key}: {e}")
                verdict = "corrupt"
            if verdict is None:
                result.kept += 1
                continue
            await self.structured_store.delete(key)
            getattr(result, verdict).append(key)

        if result.deleted:
            logger.info(
                f"Cleanup removed {len(result.expired)} expired and "
                f"{len(result.corrupt)} corrupt snapshot(s)"
            )
        return result


__all__ = [
    "SnapshotWriter",
    "CleanupResult",
    "DEFAULT_RETENTION",
    "PRIMARY_KEY",
    "BACKUP_KEY",
    "GROUPS_PRIMARY_KEY",
    "GROUPS_BACKUP_KEY",
    "CURRENT_KEY",
    "GROUPS_CURRENT_KEY",
    "LAST_CRITICAL_SAVE_KEY",
    "CRITICAL_PREFIX",
    "EMERGENCY_PREFIX",
    "RAPID_PREFIX",
    "FULL_PREFIX",
    "SNAPSHOT_PREFIXES",
    "critical_key",
    "date_key",
    "emergency_key",
    "is_snapshot_key",
]
