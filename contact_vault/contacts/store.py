"""
Authoritative in-memory contact and group set.

ContactStore is the single writer for the dataset. Every successful mutation
marks the store dirty, bumps its revision and refreshes ``last_modified``;
the backup scheduler reads those to decide what to persist.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Optional

from contact_vault.contacts.contact import MUTABLE_FIELDS, Contact, new_id, utc_now
from contact_vault.contacts.group import MAX_LABEL_LENGTH, Group
from contact_vault.contacts.validation import (
    ContactStoreError,
    ContactValidationError,
    clean_contact_fields,
)
from contact_vault.utils import name_sort_key, normalize_phone, normalize_string

if TYPE_CHECKING:
    from contact_vault.backup.snapshot import Snapshot, SnapshotType

logger = logging.getLogger(__name__)


class ContactNotFoundError(ContactStoreError):
    """Raised when a contact id is not in the store."""

    pass


class GroupNotFoundError(ContactStoreError):
    """Raised when a group id is not in the store."""

    pass


@dataclass(frozen=True)
class ContactFilter:
    """
    Criteria for ContactStore.get_all().

    Attributes:
        search: Case-insensitive substring matched against name, email, phone
        group: Only contacts in this group id
        favorites_only: Only favorites
        include_blocked: Include blocked contacts (default True)
    """

    search: Optional[str] = None
    group: Optional[str] = None
    favorites_only: bool = False
    include_blocked: bool = True

    def matches(self, contact: Contact) -> bool:
        if self.group is not None and not contact.in_group(self.group):
            return False
        if self.favorites_only and not contact.favorite:
            return False
        if not self.include_blocked and contact.blocked:
            return False
        if self.search:
            needle = normalize_string(self.search)
            phone_needle = normalize_phone(self.search)
            haystacks = [normalize_string(contact.name), normalize_string(contact.email)]
            if needle and any(needle in h for h in haystacks):
                return True
            return bool(phone_needle and contact.phone and phone_needle in contact.phone)
        return True


class ContactStore:
    """
    Authoritative contact/group set with validation and change tracking.

    Usage:
        store = ContactStore()
        ada = store.add({"name": "Ada Lovelace", "email": "ada@example.com"})
        store.toggle_favorite(ada.id)
        family = store.add_group("Family")
        store.add_to_group(ada.id, family.id)
        members = store.group_members(family.id)

    Attributes:
        dirty: True when the set changed since the last persisted snapshot
        revision: Monotonic counter bumped on every mutation
        last_modified: Time of the last successful mutation
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        """
        Args:
            clock: Source of the current time (injectable for tests)
        """
        self._clock = clock
        self._contacts: dict[str, Contact] = {}
        self._groups: dict[str, Group] = {}
        self.dirty = False
        self.revision = 0
        self.last_modified: Optional[datetime] = None

    # =========================================================================
    # Change tracking
    # =========================================================================

    def _touch(self) -> None:
        self.dirty = True
        self.revision += 1
        self.last_modified = self._clock()

    def mark_clean(self, revision: int) -> bool:
        """
        Clear the dirty flag if nothing changed since ``revision`` was read.

        Returns:
            True if the flag was cleared
        """
        if revision == self.revision:
            self.dirty = False
            return True
        return False

    # =========================================================================
    # Contact operations
    # =========================================================================

    def add(self, data: dict[str, Any]) -> Contact:
        """
        Validate and add a new contact.

        Args:
            data: Raw fields; "name" is required, "email", "phone",
                  "favorite", "blocked", "groups" are optional

        Returns:
            The stored contact with its assigned id and timestamps

        Raises:
            ContactValidationError: If any field is invalid
        """
        fields = {k: v for k, v in data.items() if k in MUTABLE_FIELDS}
        fields.setdefault("name", None)
        cleaned = clean_contact_fields(fields)
        groups = self._check_group_ids(cleaned.get("groups") or ())

        now = self._clock()
        contact = Contact(
            id=new_id(),
            name=cleaned["name"],
            email=cleaned.get("email"),
            phone=cleaned.get("phone"),
            favorite=cleaned.get("favorite", False),
            blocked=cleaned.get("blocked", False),
            groups=groups,
            created_at=now,
            updated_at=now,
        )
        self._contacts[contact.id] = contact
        self._touch()
        logger.debug(f"Added contact {contact.id} ({contact.name})")
        return contact

    def update(self, contact_id: str, patch: dict[str, Any]) -> Contact:
        """
        Replace a contact with a patched copy.

        Raises:
            ContactNotFoundError: If the id is unknown
            ContactValidationError: If a patched field is invalid or
                immutable (id, createdAt)
        """
        current = self.get(contact_id)

        immutable = [k for k in patch if k not in MUTABLE_FIELDS]
        if immutable:
            raise ContactValidationError(
                {k: "Field cannot be changed" for k in immutable}
            )

        cleaned = clean_contact_fields(patch)
        if "groups" in cleaned:
            cleaned["groups"] = self._check_group_ids(cleaned["groups"] or ())

        updated = current.with_changes(now=self._clock(), **cleaned)
        self._contacts[contact_id] = updated
        self._touch()
        logger.debug(f"Updated contact {contact_id}: {', '.join(sorted(cleaned))}")
        return updated

    def delete(self, contact_id: str) -> None:
        """
        Remove a contact.

        Group membership is stored on the contact, so removing it also
        removes it from every group's member view.

        Raises:
            ContactNotFoundError: If the id is unknown
        """
        if self._contacts.pop(contact_id, None) is None:
            raise ContactNotFoundError(f"Contact not found: {contact_id}")
        self._touch()
        logger.debug(f"Deleted contact {contact_id}")

    def get(self, contact_id: str) -> Contact:
        """
        Get a single contact by id.

        Raises:
            ContactNotFoundError: If the id is unknown
        """
        contact = self._contacts.get(contact_id)
        if contact is None:
            raise ContactNotFoundError(f"Contact not found: {contact_id}")
        return contact

    def get_all(self, contact_filter: Optional[ContactFilter] = None) -> list[Contact]:
        """
        List contacts sorted by name, case-insensitively.

        Returns a new list on every call; the contacts themselves are
        immutable, so callers cannot reach the store's internal state.
        """
        contacts = [
            c
            for c in self._contacts.values()
            if contact_filter is None or contact_filter.matches(c)
        ]
        return sorted(contacts, key=lambda c: (name_sort_key(c.name), c.name, c.id))

    def toggle_favorite(self, contact_id: str) -> Contact:
        """Flip the favorite flag."""
        return self.update(contact_id, {"favorite": not self.get(contact_id).favorite})

    def toggle_block(self, contact_id: str) -> Contact:
        """Flip the blocked flag."""
        return self.update(contact_id, {"blocked": not self.get(contact_id).blocked})

    def __len__(self) -> int:
        return len(self._contacts)

    # =========================================================================
    # Group operations
    # =========================================================================

    def _check_group_ids(self, group_ids: Iterable[str]) -> frozenset[str]:
        ids = frozenset(group_ids)
        unknown = sorted(g for g in ids if g not in self._groups)
        if unknown:
            raise ContactValidationError({"groups": f"Unknown group(s): {', '.join(unknown)}"})
        return ids

    def _clean_label(self, label: str, group_id: Optional[str] = None) -> str:
        if not isinstance(label, str) or not label.strip():
            raise ContactValidationError({"label": "Group label is required"})
        if len(label.strip()) > MAX_LABEL_LENGTH:
            raise ContactValidationError(
                {"label": f"Group label must be at most {MAX_LABEL_LENGTH} characters"}
            )
        cleaned = label.strip()
        folded = cleaned.casefold()
        for group in self._groups.values():
            if group.id != group_id and group.label.casefold() == folded:
                raise ContactValidationError({"label": f"Group '{cleaned}' already exists"})
        return cleaned

    def add_group(self, label: str) -> Group:
        """
        Create a group.

        Raises:
            ContactValidationError: If the label is empty, too long or already used
        """
        group = Group(id=new_id(), label=self._clean_label(label), created_at=self._clock())
        self._groups[group.id] = group
        self._touch()
        return group

    def rename_group(self, group_id: str, label: str) -> Group:
        """Replace a group's label."""
        group = self.get_group(group_id)
        renamed = Group(
            id=group.id, label=self._clean_label(label, group_id), created_at=group.created_at
        )
        self._groups[group_id] = renamed
        self._touch()
        return renamed

    def delete_group(self, group_id: str) -> int:
        """
        Delete a group and strip it from every contact's membership.

        Returns:
            Number of contacts that were members

        Raises:
            GroupNotFoundError: If the id is unknown
        """
        self.get_group(group_id)
        del self._groups[group_id]

        now = self._clock()
        members = [c for c in self._contacts.values() if c.in_group(group_id)]
        for contact in members:
            self._contacts[contact.id] = contact.with_changes(
                now=now, groups=contact.groups - {group_id}
            )
        self._touch()
        return len(members)

    def get_group(self, group_id: str) -> Group:
        """
        Raises:
            GroupNotFoundError: If the id is unknown
        """
        group = self._groups.get(group_id)
        if group is None:
            raise GroupNotFoundError(f"Group not found: {group_id}")
        return group

    def get_groups(self) -> list[Group]:
        """List groups sorted by label."""
        return sorted(self._groups.values(), key=lambda g: (name_sort_key(g.label), g.id))

    def find_group(self, label_or_id: str) -> Group:
        """
        Look up a group by id or by label (case-insensitive).

        Raises:
            GroupNotFoundError: If nothing matches
        """
        if label_or_id in self._groups:
            return self._groups[label_or_id]
        wanted = normalize_string(label_or_id)
        for group in self.get_groups():
            if normalize_string(group.label) == wanted:
                return group
        raise GroupNotFoundError(f"Group not found: {label_or_id}")

    def add_to_group(self, contact_id: str, group_id: str) -> Contact:
        """Add a contact to a group. Already-members are returned unchanged."""
        contact = self.get(contact_id)
        self.get_group(group_id)
        if contact.in_group(group_id):
            return contact
        return self.update(contact_id, {"groups": contact.groups | {group_id}})

    def remove_from_group(self, contact_id: str, group_id: str) -> Contact:
        """Remove a contact from a group. Non-members are returned unchanged."""
        contact = self.get(contact_id)
        self.get_group(group_id)
        if not contact.in_group(group_id):
            return contact
        return self.update(contact_id, {"groups": contact.groups - {group_id}})

    def group_members(self, group_id: str) -> list[Contact]:
        """Members of a group, derived from contact memberships."""
        self.get_group(group_id)
        return self.get_all(ContactFilter(group=group_id))

    # =========================================================================
    # Bulk operations
    # =========================================================================

    def replace_all(self, contacts: Iterable[Contact], groups: Iterable[Group]) -> None:
        """
        Replace the whole dataset (used by recovery and initial load).

        Memberships pointing at groups that are not in ``groups`` are dropped.
        """
        group_map = {g.id: g for g in groups}
        contact_map: dict[str, Contact] = {}
        for contact in contacts:
            dangling = contact.groups - group_map.keys()
            if dangling:
                contact = contact.with_changes(
                    now=contact.updated_at, groups=contact.groups & group_map.keys()
                )
            contact_map[contact.id] = contact

        self._groups = group_map
        self._contacts = contact_map
        self._touch()

    def load(self, snapshot: Snapshot) -> None:
        """Load a persisted snapshot without marking the store dirty."""
        self.replace_all(snapshot.contacts, snapshot.groups)
        self.dirty = False

    def snapshot(
        self,
        snapshot_type: Optional[SnapshotType] = None,
        trigger: Optional[str] = None,
        source_id: str = "memory",
        timestamp: Optional[datetime] = None,
    ) -> Snapshot:
        """Capture the current dataset as an immutable snapshot."""
        from contact_vault.backup.snapshot import Snapshot

        return Snapshot(
            contacts=tuple(self.get_all()),
            groups=tuple(self.get_groups()),
            timestamp=timestamp or self._clock(),
            type=snapshot_type,
            trigger=trigger,
            source_id=source_id,
            metadata={
                "lastModified": self.last_modified.isoformat()
                if self.last_modified
                else None
            },
        )

    def statistics(self) -> dict[str, Any]:
        """Counts and percentages describing the dataset."""
        contacts = list(self._contacts.values())
        total = len(contacts)
        with_email = sum(1 for c in contacts if c.email)
        with_phone = sum(1 for c in contacts if c.phone)
        return {
            "total": total,
            "with_email": with_email,
            "with_phone": with_phone,
            "favorites": sum(1 for c in contacts if c.favorite),
            "blocked": sum(1 for c in contacts if c.blocked),
            "groups": len(self._groups),
            "email_percentage": round(with_email / total * 100) if total else 0,
            "phone_percentage": round(with_phone / total * 100) if total else 0,
        }


__all__ = [
    "ContactStore",
    "ContactFilter",
    "ContactNotFoundError",
    "GroupNotFoundError",
]
