"""
Tests for ContactStore: contact and group operations, change tracking
and snapshots.
"""

import pytest

from contact_vault.backup.snapshot import Snapshot, SnapshotType
from contact_vault.contacts import (
    Contact,
    ContactFilter,
    ContactNotFoundError,
    ContactValidationError,
    Group,
    GroupNotFoundError,
)
from contact_vault.contacts.group import MAX_LABEL_LENGTH


class TestAddContact:
    """Tests for ContactStore.add."""

    def test_add_assigns_id_and_timestamps(self, contact_store, clock):
        """Test that add assigns an id and stamps both timestamps."""
        contact = contact_store.add({"name": "Ada Lovelace", "email": "ada@example.com"})
        assert contact.id
        assert contact.created_at == clock.now
        assert contact.updated_at == clock.now
        assert contact_store.get(contact.id) == contact

    def test_add_requires_name(self, contact_store):
        """Test that a contact needs a name."""
        with pytest.raises(ContactValidationError) as exc_info:
            contact_store.add({"email": "ada@example.com"})
        assert "name" in exc_info.value.errors
        assert len(contact_store) == 0

    def test_add_ignores_unknown_fields(self, contact_store):
        """Test that id and timestamps in the input are ignored."""
        contact = contact_store.add({"name": "Ada", "id": "forced", "createdAt": "x"})
        assert contact.id != "forced"

    def test_add_rejects_unknown_group(self, contact_store):
        """Test that memberships must reference existing groups."""
        with pytest.raises(ContactValidationError) as exc_info:
            contact_store.add({"name": "Ada", "groups": ["nope"]})
        assert "groups" in exc_info.value.errors

    def test_add_normalizes_phone(self, contact_store):
        """Test that phone separators are stripped on add."""
        contact = contact_store.add({"name": "Ada", "phone": "+1 (555) 123-4567"})
        assert contact.phone == "+15551234567"

    def test_ids_are_unique(self, contact_store):
        """Test that generated ids do not collide."""
        ids = {contact_store.add({"name": f"Person {i}"}).id for i in range(50)}
        assert len(ids) == 50


class TestUpdateContact:
    """Tests for ContactStore.update and toggles."""

    def test_update_replaces_fields(self, contact_store, clock):
        """Test that update replaces fields and refreshes updated_at."""
        contact = contact_store.add({"name": "Ada"})
        clock.advance(minutes=5)
        updated = contact_store.update(contact.id, {"email": "ada@example.com"})
        assert updated.email == "ada@example.com"
        assert updated.created_at == contact.created_at
        assert updated.updated_at == clock.now

    def test_update_unknown_contact(self, contact_store):
        """Test that updating an unknown id raises."""
        with pytest.raises(ContactNotFoundError):
            contact_store.update("missing", {"name": "X"})

    def test_update_immutable_field_rejected(self, contact_store):
        """Test that id and createdAt cannot be patched."""
        contact = contact_store.add({"name": "Ada"})
        with pytest.raises(ContactValidationError) as exc_info:
            contact_store.update(contact.id, {"id": "other"})
        assert "id" in exc_info.value.errors
        assert contact_store.get(contact.id) == contact

    def test_invalid_update_leaves_store_unchanged(self, contact_store):
        """Test that a rejected update changes nothing."""
        contact = contact_store.add({"name": "Ada"})
        revision = contact_store.revision
        with pytest.raises(ContactValidationError):
            contact_store.update(contact.id, {"email": "broken"})
        assert contact_store.get(contact.id).email is None
        assert contact_store.revision == revision

    def test_update_can_clear_optional_field(self, contact_store):
        """Test that an empty phone clears the field."""
        contact = contact_store.add({"name": "Ada", "phone": "5551234"})
        assert contact_store.update(contact.id, {"phone": ""}).phone is None

    def test_toggle_favorite_and_block(self, contact_store):
        """Test that the favorite and block toggles flip their flags."""
        contact = contact_store.add({"name": "Ada"})
        assert contact_store.toggle_favorite(contact.id).favorite is True
        assert contact_store.toggle_favorite(contact.id).favorite is False
        assert contact_store.toggle_block(contact.id).blocked is True


class TestDeleteAndQuery:
    """Tests for delete, get_all and filtering."""

    @pytest.fixture
    def populated(self, contact_store):
        contact_store.add({"name": "charlie", "email": "charlie@example.com"})
        contact_store.add({"name": "Ada", "phone": "5551234567", "favorite": True})
        contact_store.add({"name": "Bob", "blocked": True})
        return contact_store

    def test_delete(self, contact_store):
        """Test that deleted contacts are gone."""
        contact = contact_store.add({"name": "Ada"})
        contact_store.delete(contact.id)
        assert len(contact_store) == 0
        with pytest.raises(ContactNotFoundError):
            contact_store.get(contact.id)

    def test_delete_unknown(self, contact_store):
        """Test that deleting an unknown id raises."""
        with pytest.raises(ContactNotFoundError):
            contact_store.delete("missing")

    def test_get_all_sorted_case_insensitively(self, populated):
        """Test that listings are sorted by name ignoring case."""
        assert [c.name for c in populated.get_all()] == ["Ada", "Bob", "charlie"]

    def test_get_all_returns_new_list(self, populated):
        """Test that callers cannot mutate the store through a listing."""
        listing = populated.get_all()
        listing.clear()
        assert len(populated.get_all()) == 3

    def test_filter_search_matches_email(self, populated):
        """Test that search matches email addresses ignoring case."""
        result = populated.get_all(ContactFilter(search="CHARLIE@"))
        assert [c.name for c in result] == ["charlie"]

    def test_filter_search_matches_phone_with_separators(self, populated):
        """Test that search ignores phone separators."""
        result = populated.get_all(ContactFilter(search="555-123"))
        assert [c.name for c in result] == ["Ada"]

    def test_filter_favorites_only(self, populated):
        """Test the favorites-only filter."""
        assert [c.name for c in populated.get_all(ContactFilter(favorites_only=True))] == [
            "Ada"
        ]

    def test_filter_hides_blocked(self, populated):
        """Test that blocked contacts can be hidden."""
        names = [c.name for c in populated.get_all(ContactFilter(include_blocked=False))]
        assert "Bob" not in names

    def test_statistics(self, populated):
        """Test the statistics summary."""
        stats = populated.statistics()
        assert stats["total"] == 3
        assert stats["with_email"] == 1
        assert stats["email_percentage"] == 33
        assert stats["favorites"] == 1
        assert stats["blocked"] == 1

    def test_statistics_empty(self, contact_store):
        """Test that statistics of an empty store avoid division by zero."""
        stats = contact_store.statistics()
        assert stats["total"] == 0
        assert stats["email_percentage"] == 0


class TestGroups:
    """Tests for group operations and membership."""

    def test_add_group(self, contact_store):
        """Test that group labels are trimmed."""
        group = contact_store.add_group("  Family ")
        assert group.label == "Family"
        assert contact_store.get_group(group.id) == group

    @pytest.mark.parametrize("label", ["", "   ", "x" * (MAX_LABEL_LENGTH + 1)])
    def test_add_group_invalid_label(self, contact_store, label):
        """Test that blank and overlong labels are rejected."""
        with pytest.raises(ContactValidationError):
            contact_store.add_group(label)

    def test_add_group_duplicate_label_rejected(self, contact_store):
        """Test that labels must be unique ignoring case and whitespace."""
        contact_store.add_group("Work")
        with pytest.raises(ContactValidationError) as excinfo:
            contact_store.add_group("  work ")
        assert "label" in excinfo.value.errors
        assert len(contact_store.get_groups()) == 1

    def test_rename_group_to_existing_label_rejected(self, contact_store):
        """Test that renaming onto another group's label is refused."""
        contact_store.add_group("Family")
        work = contact_store.add_group("Work")
        with pytest.raises(ContactValidationError):
            contact_store.rename_group(work.id, "FAMILY")
        assert contact_store.get_group(work.id).label == "Work"

    def test_rename_group_changes_own_case(self, contact_store):
        """Test that a group can be renamed to a different case of its own label."""
        work = contact_store.add_group("work")
        assert contact_store.rename_group(work.id, "Work").label == "Work"

    def test_find_group_by_label_case_insensitive(self, contact_store):
        """Test that groups are found by label ignoring case."""
        group = contact_store.add_group("Work")
        assert contact_store.find_group("work") == group
        assert contact_store.find_group(group.id) == group
        with pytest.raises(GroupNotFoundError):
            contact_store.find_group("Gym")

    def test_membership(self, contact_store):
        """Test adding and removing group members."""
        ada = contact_store.add({"name": "Ada"})
        bob = contact_store.add({"name": "Bob"})
        family = contact_store.add_group("Family")

        contact_store.add_to_group(ada.id, family.id)
        contact_store.add_to_group(ada.id, family.id)

        assert [c.id for c in contact_store.group_members(family.id)] == [ada.id]
        contact_store.remove_from_group(ada.id, family.id)
        contact_store.remove_from_group(bob.id, family.id)
        assert contact_store.group_members(family.id) == []

    def test_add_to_unknown_group(self, contact_store):
        """Test that joining an unknown group raises."""
        ada = contact_store.add({"name": "Ada"})
        with pytest.raises(GroupNotFoundError):
            contact_store.add_to_group(ada.id, "missing")

    def test_delete_group_strips_memberships(self, contact_store):
        """Test that deleting a group removes it from every member."""
        family = contact_store.add_group("Family")
        work = contact_store.add_group("Work")
        ada = contact_store.add({"name": "Ada", "groups": [family.id, work.id]})

        assert contact_store.delete_group(family.id) == 1
        assert contact_store.get(ada.id).groups == frozenset({work.id})
        with pytest.raises(GroupNotFoundError):
            contact_store.get_group(family.id)

    def test_rename_group_keeps_members(self, contact_store):
        """Test that renaming keeps the membership."""
        family = contact_store.add_group("Family")
        ada = contact_store.add({"name": "Ada", "groups": [family.id]})
        renamed = contact_store.rename_group(family.id, "Relatives")
        assert renamed.id == family.id
        assert renamed.label == "Relatives"
        assert contact_store.get(ada.id).in_group(family.id)


class TestChangeTracking:
    """Tests for dirty flag, revision and bulk replacement."""

    def test_mutations_mark_dirty_and_bump_revision(self, contact_store, clock):
        """Test that every mutation marks the store dirty and bumps the revision."""
        assert contact_store.dirty is False
        contact_store.add({"name": "Ada"})
        assert contact_store.dirty is True
        assert contact_store.revision == 1
        assert contact_store.last_modified == clock.now

    def test_mark_clean_only_for_current_revision(self, contact_store):
        """Test that mark_clean ignores a stale revision."""
        contact_store.add({"name": "Ada"})
        stale = contact_store.revision
        contact_store.add({"name": "Bob"})
        assert contact_store.mark_clean(stale) is False
        assert contact_store.dirty is True
        assert contact_store.mark_clean(contact_store.revision) is True
        assert contact_store.dirty is False

    def test_replace_all_drops_dangling_memberships(self, contact_store):
        """Test that replace_all drops memberships to unknown groups."""
        group = Group(id="g1", label="Family")
        contacts = [
            Contact(id="c1", name="Ada", groups=frozenset({"g1", "gone"})),
            Contact(id="c2", name="Bob"),
        ]
        contact_store.replace_all(contacts, [group])
        assert contact_store.get("c1").groups == frozenset({"g1"})
        assert len(contact_store) == 2
        assert contact_store.dirty is True

    def test_load_does_not_mark_dirty(self, contact_store):
        """Test that loading a snapshot leaves the store clean."""
        snapshot = Snapshot(contacts=(Contact(id="c1", name="Ada"),))
        contact_store.load(snapshot)
        assert len(contact_store) == 1
        assert contact_store.dirty is False

    def test_snapshot_captures_contacts_and_groups(self, contact_store, clock):
        """Test that snapshot captures contacts and groups."""
        family = contact_store.add_group("Family")
        contact_store.add({"name": "Ada", "groups": [family.id]})
        snapshot = contact_store.snapshot(SnapshotType.FULL, source_id="contacts.full.x")
        assert snapshot.record_count == 1
        assert snapshot.group_count == 1
        assert snapshot.timestamp == clock.now
        assert snapshot.type is SnapshotType.FULL
