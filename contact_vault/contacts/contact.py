"""
Contact data model.

Contacts are immutable values: every change produces a new Contact with a
refreshed ``updated_at`` that replaces the previous record by id.
"""

from __future__ import annotations

import contextlib
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional

# Fields a caller may patch through ContactStore.update()
MUTABLE_FIELDS = frozenset({"name", "email", "phone", "favorite", "blocked", "groups"})


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate an opaque, globally unique record id."""
    return uuid.uuid4().hex


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts datetimes, ISO strings (with or without "Z"), and epoch
    milliseconds. Naive values are assumed to be UTC.

    Returns:
        The parsed datetime, or None if the value cannot be interpreted
    """
    parsed: Optional[datetime] = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        with contextlib.suppress(OverflowError, OSError, ValueError):
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str) and value:
        with contextlib.suppress(ValueError):
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class Contact:
    """
    A single contact record.

    Attributes:
        id: Opaque unique id assigned at creation, never changes
        name: Display name (1-100 characters)
        email: Optional email address
        phone: Optional phone number, separators stripped
        favorite: Starred by the user
        blocked: Blocked by the user
        groups: Ids of the groups this contact belongs to
        created_at: Creation time (UTC)
        updated_at: Last modification time (UTC), never before created_at
    """

    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    favorite: bool = False
    blocked: bool = False
    groups: frozenset[str] = field(default_factory=frozenset)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def with_changes(self, now: Optional[datetime] = None, **changes: Any) -> Contact:
        """
        Return a copy with the given fields replaced and updated_at refreshed.

        updated_at is clamped so it never precedes created_at.
        """
        timestamp = now or utc_now()
        if timestamp < self.created_at:
            timestamp = self.created_at
        if "groups" in changes:
            changes["groups"] = frozenset(changes["groups"])
        return replace(self, updated_at=timestamp, **changes)

    def in_group(self, group_id: str) -> bool:
        """Check whether the contact belongs to a group."""
        return group_id in self.groups

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary (camelCase wire names)."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "favorite": self.favorite,
            "blocked": self.blocked,
            "groups": sorted(self.groups),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Contact:
        """
        Deserialize a contact dictionary.

        Accepts both camelCase (persisted) and snake_case keys. Missing
        timestamps default to now; a missing id gets a fresh one.

        Raises:
            ValueError: If the data has no usable name or malformed groups
        """
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Contact record has no name: {data!r}")

        created_at = parse_timestamp(data.get("createdAt", data.get("created_at")))
        updated_at = parse_timestamp(data.get("updatedAt", data.get("updated_at")))
        created_at = created_at or updated_at or utc_now()
        updated_at = max(updated_at or created_at, created_at)

        groups = data.get("groups") or []
        if not isinstance(groups, (list, tuple)):
            raise ValueError(f"Contact groups must be a list, got {type(groups).__name__}")
        email = data.get("email")
        phone = data.get("phone")
        return cls(
            id=str(data.get("id") or new_id()),
            name=name,
            email=email if isinstance(email, str) and email else None,
            phone=phone if isinstance(phone, str) and phone else None,
            favorite=bool(data.get("favorite", False)),
            blocked=bool(data.get("blocked", False)),
            groups=frozenset(str(g) for g in groups),
            created_at=created_at,
            updated_at=updated_at,
        )

    def __repr__(self) -> str:
        return f"Contact(id={self.id!r}, name={self.name!r}, email={self.email!r})"


__all__ = ["Contact", "MUTABLE_FIELDS", "new_id", "parse_timestamp", "utc_now"]
