"""
Contact group data model.

Groups only carry a label. Membership lives on each Contact's ``groups``
set and is derived by scanning contacts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from contact_vault.contacts.contact import new_id, parse_timestamp, utc_now

# Maximum label length accepted by ContactStore.add_group()
MAX_LABEL_LENGTH = 50


@dataclass(frozen=True)
class Group:
    """
    A user-defined contact group.

    Attributes:
        id: Opaque unique id
        label: Display label (e.g. "Family", "Work")
        created_at: Creation time (UTC)
    """

    id: str
    label: str
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "id": self.id,
            "label": self.label,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Group:
        """
        Deserialize a group dictionary.

        Older records used "name" for the label; both are accepted.

        Raises:
            ValueError: If the data has no label
        """
        label = data.get("label", data.get("name"))
        if not isinstance(label, str) or not label.strip():
            raise ValueError(f"Group record has no label: {data!r}")

        return cls(
            id=str(data.get("id") or new_id()),
            label=label,
            created_at=parse_timestamp(data.get("createdAt", data.get("created_at")))
            or utc_now(),
        )


__all__ = ["Group", "MAX_LABEL_LENGTH"]
