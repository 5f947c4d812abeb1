"""
Tests for contact import and export.
"""

import csv
import io
import json

import pytest

from contact_vault.contacts import ImportFormatError, export_csv, export_json, import_json
from contact_vault.contacts.transfer import CSV_HEADERS


@pytest.fixture
def populated(contact_store):
    family = contact_store.add_group("Family")
    contact_store.add(
        {"name": "Ada Lovelace", "email": "ada@example.com", "groups": [family.id]}
    )
    contact_store.add({"name": 'Bob "The Builder"', "phone": "5551234567"})
    return contact_store


class TestExport:
    """Tests for export_json and export_csv."""

    def test_export_json_contains_contacts_and_groups(self, populated):
        """Test the JSON export holds contacts and groups."""
        document = json.loads(export_json(populated))
        assert "exportedAt" in document
        assert [c["name"] for c in document["contacts"]] == [
            "Ada Lovelace",
            'Bob "The Builder"',
        ]
        assert [g["label"] for g in document["groups"]] == ["Family"]

    def test_export_csv_quotes_every_field(self, populated):
        """Test that CSV output quotes every field."""
        text = export_csv(populated)
        lines = text.splitlines()
        assert lines[0] == ",".join(f'"{h}"' for h in CSV_HEADERS)
        rows = list(csv.reader(io.StringIO(text)))
        assert rows[2][0] == 'Bob "The Builder"'
        assert rows[2][1] == ""
        assert rows[2][2] == "5551234567"

    def test_export_empty_store(self, contact_store):
        assert json.loads(export_json(contact_store))["contacts"] == []
        assert export_csv(contact_store).splitlines() == [
            ",".join(f'"{h}"' for h in CSV_HEADERS)
        ]


class TestImport:
    """Tests for import_json."""

    def test_import_export_document_remaps_groups(self, populated, clock):
        """Test that imported groups get new ids and memberships follow them."""
        from contact_vault.contacts import ContactStore

        target = ContactStore(clock=clock)
        result = import_json(target, export_json(populated))

        assert result.imported == 2
        assert result.groups_created == 1
        family = target.find_group("Family")
        members = target.group_members(family.id)
        assert [c.name for c in members] == ["Ada Lovelace"]

    def test_import_reuses_existing_group_by_label(self, contact_store):
        """Test that an existing group with the same label is reused."""
        existing = contact_store.add_group("family")
        payload = {
            "contacts": [{"name": "Ada", "groups": ["old-id"]}],
            "groups": [{"id": "old-id", "label": "Family"}],
        }
        result = import_json(contact_store, json.dumps(payload))
        assert result.groups_created == 0
        assert contact_store.group_members(existing.id)[0].name == "Ada"

    def test_import_bare_list(self, contact_store):
        """Test importing a bare list of contacts."""
        result = import_json(contact_store, json.dumps([{"name": "Ada"}, {"name": "Bob"}]))
        assert result.imported == 2
        assert len(contact_store) == 2

    def test_import_skips_invalid_records(self, contact_store):
        """Test that invalid records are skipped and reported."""
        payload = [{"name": "Ada", "email": "bad"}, "junk", {"name": "Bob"}]
        result = import_json(contact_store, json.dumps(payload))
        assert result.imported == 1
        assert result.skipped == 2
        assert len(result.errors) == 2

    def test_import_ignores_unknown_memberships(self, contact_store):
        """Test that memberships to unknown groups are dropped."""
        result = import_json(contact_store, json.dumps([{"name": "Ada", "groups": ["x"]}]))
        assert result.imported == 1
        assert contact_store.get_all()[0].groups == frozenset()

    def test_import_invalid_json(self, contact_store):
        """Test that non-JSON input is rejected."""
        with pytest.raises(ImportFormatError, match="not valid JSON"):
            import_json(contact_store, "{oops")

    def test_import_without_contact_list(self, contact_store):
        """Test that a document without a contact list is rejected."""
        with pytest.raises(ImportFormatError):
            import_json(contact_store, json.dumps({"people": []}))
