"""
Snapshots of contact data and the writer that persists them.

A Snapshot is the versioned, immutable unit of persistence; SnapshotWriter
places snapshots and mirrors into the storage backends and applies the
retention policy.
"""

from contact_vault.backup.manager import CleanupResult, SnapshotWriter
from contact_vault.backup.snapshot import (
    SCHEMA_VERSION,
    Snapshot,
    SnapshotFormatError,
    SnapshotType,
    UnsupportedSchemaVersion,
)

__all__ = [
    "CleanupResult",
    "SCHEMA_VERSION",
    "Snapshot",
    "SnapshotFormatError",
    "SnapshotType",
    "SnapshotWriter",
    "UnsupportedSchemaVersion",
]
