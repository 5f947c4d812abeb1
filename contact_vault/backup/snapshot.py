"""
Snapshot value type and its versioned wire format.

A Snapshot is an immutable, complete pairing of contacts and groups taken at
one point in time. Serialized snapshots carry a ``schemaVersion`` tag; older
shapes are migrated on read:

    version 0: bare JSON list of contacts (the legacy mirror format)
    version 1: {"contacts": [...], "groups": [...], "timestamp": ..., "type": ...}
    version 2: version 1 plus "schemaVersion", "sourceId" and "metadata"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from contact_vault.contacts.contact import Contact, parse_timestamp
from contact_vault.contacts.group import Group

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


class SnapshotType(str, Enum):
    """What produced a snapshot."""

    RAPID = "rapid"
    FULL = "full"
    CRITICAL = "critical"
    EMERGENCY = "emergency"
    MIRROR = "mirror"  # Reassembled from live contacts/groups mirrors


class SnapshotFormatError(ValueError):
    """Raised when a stored value cannot be interpreted as a snapshot."""

    pass


class UnsupportedSchemaVersion(SnapshotFormatError):
    """Raised for snapshots written by a newer schema version."""

    def __init__(self, source_id: str, version: int):
        super().__init__(f"{source_id}: unsupported snapshot schema version {version!r}")
        self.version = version


def _parse_contacts(items: list[Any], source_id: str) -> tuple[Contact, ...]:
    contacts: list[Contact] = []
    seen: set[str] = set()
    for item in items:
        if not isinstance(item, dict):
            logger.warning(f"Skipping non-object contact entry in {source_id}")
            continue
        try:
            contact = Contact.from_dict(item)
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping unreadable contact in {source_id}: {e}")
            continue
        if contact.id in seen:
            logger.warning(f"Skipping duplicate contact id {contact.id} in {source_id}")
            continue
        seen.add(contact.id)
        contacts.append(contact)
    return tuple(contacts)


def _parse_groups(items: Any, source_id: str) -> tuple[Group, ...]:
    if not isinstance(items, list):
        return ()
    groups: list[Group] = []
    seen: set[str] = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            group = Group.from_dict(item)
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping unreadable group in {source_id}: {e}")
            continue
        if group.id not in seen:
            seen.add(group.id)
            groups.append(group)
    return tuple(groups)


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable point-in-time copy of the contact dataset.

    Attributes:
        contacts: All contacts at snapshot time
        groups: All groups at snapshot time
        timestamp: When the snapshot was taken (None for legacy mirrors)
        type: What produced the snapshot
        trigger: Lifecycle trigger for critical snapshots
        source_id: Storage location the snapshot was read from or written to
        schema_version: Wire format version the snapshot was read from
    """

    contacts: tuple[Contact, ...] = ()
    groups: tuple[Group, ...] = ()
    timestamp: Optional[datetime] = None
    type: Optional[SnapshotType] = None
    trigger: Optional[str] = None
    source_id: str = ""
    schema_version: int = SCHEMA_VERSION
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def record_count(self) -> int:
        return len(self.contacts)

    @property
    def group_count(self) -> int:
        return len(self.groups)

    def age_hours(self, now: datetime) -> Optional[float]:
        """Hours elapsed since the snapshot was taken, or None without timestamp."""
        if self.timestamp is None:
            return None
        return (now - self.timestamp).total_seconds() / 3600

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the current (version 2) wire format."""
        return {
            "schemaVersion": SCHEMA_VERSION,
            "contacts": [c.to_dict() for c in self.contacts],
            "groups": [g.to_dict() for g in self.groups],
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "type": self.type.value if self.type else None,
            "trigger": self.trigger,
            "sourceId": self.source_id,
            "metadata": {
                "contactCount": self.record_count,
                "groupCount": self.group_count,
                **self.metadata,
            },
        }

    def contacts_mirror(self) -> list[dict[str, Any]]:
        """Contacts in the legacy contacts-only mirror format."""
        return [c.to_dict() for c in self.contacts]

    def groups_mirror(self) -> list[dict[str, Any]]:
        """Groups in the mirror format stored next to the contacts mirror."""
        return [g.to_dict() for g in self.groups]

    @classmethod
    def from_value(cls, value: Any, source_id: str) -> Snapshot:
        """
        Interpret a stored value as a snapshot, migrating older shapes.

        Args:
            value: Decoded JSON value read from a backend
            source_id: Where the value was read from

        Raises:
            SnapshotFormatError: If the value has no contact list or an
                unsupported schema version
        """
        if isinstance(value, list):
            return cls(
                contacts=_parse_contacts(value, source_id),
                source_id=source_id,
                type=SnapshotType.MIRROR,
                schema_version=0,
            )

        if not isinstance(value, dict):
            raise SnapshotFormatError(
                f"{source_id}: expected object or list, got {type(value).__name__}"
            )

        version = value.get("schemaVersion", 1)
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            raise SnapshotFormatError(
                f"{source_id}: invalid snapshot schema version {version!r}"
            )
        if version > SCHEMA_VERSION:
            raise UnsupportedSchemaVersion(source_id, version)

        contacts = value.get("contacts")
        if not isinstance(contacts, list):
            raise SnapshotFormatError(f"{source_id}: snapshot has no contact list")

        raw_type = value.get("type")
        try:
            snapshot_type = SnapshotType(raw_type) if raw_type else None
        except ValueError:
            snapshot_type = None

        metadata = value.get("metadata") if version >= 2 else None
        if not isinstance(metadata, dict):
            metadata = {}
        trigger = value.get("trigger")
        return cls(
            contacts=_parse_contacts(contacts, source_id),
            groups=_parse_groups(value.get("groups"), source_id),
            timestamp=parse_timestamp(value.get("timestamp")),
            type=snapshot_type,
            trigger=trigger if isinstance(trigger, str) else None,
            source_id=source_id,
            schema_version=version,
            metadata={
                k: v for k, v in metadata.items() if k not in ("contactCount", "groupCount")
            },
        )

    @classmethod
    def from_mirrors(
        cls, contacts_value: Any, groups_value: Any, source_id: str
    ) -> Snapshot:
        """
        Pair a contacts mirror with its groups mirror into one snapshot.

        A missing or unreadable groups mirror pairs as an empty group list.

        Raises:
            SnapshotFormatError: If the contacts mirror is unusable
        """
        base = cls.from_value(contacts_value, source_id)
        groups = _parse_groups(groups_value, source_id) if groups_value else base.groups
        return cls(
            contacts=base.contacts,
            groups=groups,
            timestamp=base.timestamp,
            type=base.type or SnapshotType.MIRROR,
            trigger=base.trigger,
            source_id=source_id,
            schema_version=base.schema_version,
        )

    def __repr__(self) -> str:
        return (
            f"Snapshot(source_id={self.source_id!r}, type={self.type}, "
            f"contacts={self.record_count}, groups={self.group_count}, "
            f"timestamp={self.timestamp.isoformat() if self.timestamp else None})"
        )


__all__ = [
    "Snapshot",
    "SnapshotType",
    "SnapshotFormatError",
    "UnsupportedSchemaVersion",
    "SCHEMA_VERSION",
]
