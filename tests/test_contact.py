"""
Tests for the contact and group data models and input validation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from contact_vault.contacts import Contact, ContactValidationError, Group, parse_timestamp
from contact_vault.contacts.validation import (
    MAX_NAME_LENGTH,
    clean_contact_fields,
    is_valid_email,
    is_valid_phone,
)

CREATED = datetime(2024, 1, 10, 8, 30, tzinfo=timezone.utc)


class TestParseTimestamp:
    """Tests for parse_timestamp."""

    def test_iso_with_z_suffix(self):
        """Test ISO strings with a Z suffix."""
        assert parse_timestamp("2024-01-10T08:30:00Z") == CREATED

    def test_iso_with_offset_converted_to_utc(self):
        """Test that offsets are converted to UTC."""
        assert parse_timestamp("2024-01-10T10:30:00+02:00") == CREATED

    def test_naive_assumed_utc(self):
        """Test that naive timestamps are treated as UTC."""
        assert parse_timestamp("2024-01-10T08:30:00") == CREATED

    def test_epoch_milliseconds(self):
        """Test epoch milliseconds as written by older exports."""
        assert parse_timestamp(int(CREATED.timestamp() * 1000)) == CREATED

    def test_datetime_passthrough(self):
        assert parse_timestamp(CREATED) == CREATED

    def test_unparseable_returns_none(self):
        """Test that garbage parses to None instead of raising."""
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp(True) is None


class TestContact:
    """Tests for the Contact dataclass."""

    def test_to_dict_uses_camel_case_and_sorted_groups(self):
        """Test the serialized form uses camelCase keys and sorted group ids."""
        contact = Contact(
            id="c1",
            name="Ada Lovelace",
            email="ada@example.com",
            groups=frozenset({"g2", "g1"}),
            created_at=CREATED,
            updated_at=CREATED,
        )
        data = contact.to_dict()
        assert data["groups"] == ["g1", "g2"]
        assert data["createdAt"] == CREATED.isoformat()
        assert data["updatedAt"] == CREATED.isoformat()
        assert data["favorite"] is False

    def test_from_dict_accepts_snake_case(self):
        """Test that snake_case keys are accepted as well."""
        contact = Contact.from_dict(
            {"id": "c1", "name": "Ada", "created_at": "2024-01-10T08:30:00Z"}
        )
        assert contact.created_at == CREATED
        assert contact.updated_at == CREATED

    def test_from_dict_without_name_raises(self):
        """Test that a record without a name is rejected."""
        with pytest.raises(ValueError, match="no name"):
            Contact.from_dict({"id": "c1", "name": "  "})

    @pytest.mark.parametrize("groups", [5, "g1", {"g1": True}])
    def test_from_dict_non_list_groups_raises(self, groups):
        """Test that a groups field that is not a list is rejected."""
        with pytest.raises(ValueError, match="groups"):
            Contact.from_dict({"name": "Ada", "groups": groups})

    def test_from_dict_ignores_non_string_email_and_phone(self):
        """Test that non-string email and phone values read as missing."""
        contact = Contact.from_dict({"name": "Ada", "email": 42, "phone": ["555"]})
        assert contact.email is None
        assert contact.phone is None

    def test_from_dict_assigns_id_when_missing(self):
        """Test that records without an id get a fresh one."""
        contact = Contact.from_dict({"name": "Ada"})
        assert contact.id

    def test_from_dict_clamps_updated_before_created(self):
        """Test that updatedAt is never earlier than createdAt."""
        contact = Contact.from_dict(
            {
                "name": "Ada",
                "createdAt": "2024-01-10T08:30:00Z",
                "updatedAt": "2024-01-01T00:00:00Z",
            }
        )
        assert contact.updated_at == contact.created_at

    def test_with_changes_refreshes_updated_at(self):
        """Test that with_changes stamps a new updated_at."""
        contact = Contact(id="c1", name="Ada", created_at=CREATED, updated_at=CREATED)
        later = CREATED + timedelta(hours=1)
        changed = contact.with_changes(now=later, favorite=True)
        assert changed.favorite is True
        assert changed.updated_at == later
        assert contact.favorite is False

    def test_with_changes_never_before_created(self):
        """Test that a clock behind created_at cannot move updated_at earlier."""
        contact = Contact(id="c1", name="Ada", created_at=CREATED, updated_at=CREATED)
        changed = contact.with_changes(now=CREATED - timedelta(days=1), name="Ada L")
        assert changed.updated_at == CREATED

    def test_with_changes_converts_groups_to_frozenset(self):
        """Test that group lists become frozensets."""
        contact = Contact(id="c1", name="Ada")
        assert contact.with_changes(groups=["g1"]).groups == frozenset({"g1"})

    def test_contact_is_immutable(self):
        """Test that contacts cannot be mutated in place."""
        contact = Contact(id="c1", name="Ada")
        with pytest.raises(AttributeError):
            contact.name = "Eve"


class TestGroup:
    """Tests for the Group dataclass."""

    def test_from_dict_accepts_legacy_name_key(self):
        """Test that older records with 'name' instead of 'label' still load."""
        group = Group.from_dict({"id": "g1", "name": "Family"})
        assert group.label == "Family"

    def test_from_dict_without_label_raises(self):
        """Test that a group without a label is rejected."""
        with pytest.raises(ValueError):
            Group.from_dict({"id": "g1"})

    def test_to_dict(self):
        group = Group(id="g1", label="Work", created_at=CREATED)
        assert group.to_dict() == {
            "id": "g1",
            "label": "Work",
            "createdAt": CREATED.isoformat(),
        }


class TestValidation:
    """Tests for field validation rules."""

    @pytest.mark.parametrize(
        "email", ["ada@example.com", "a.b+c@mail.example.org"]
    )
    def test_valid_emails(self, email):
        """Test addresses the email check accepts."""
        assert is_valid_email(email)

    @pytest.mark.parametrize("email", ["ada", "ada@example", "ada @example.com", "@x.io"])
    def test_invalid_emails(self, email):
        """Test addresses the email check rejects."""
        assert not is_valid_email(email)

    @pytest.mark.parametrize(
        "phone", ["+44 20 7946 0000", "(555) 123-4567", "5551234", "+123456789012345"]
    )
    def test_valid_phones(self, phone):
        """Test phone numbers the phone check accepts."""
        assert is_valid_phone(phone)

    @pytest.mark.parametrize("phone", ["123456", "+1234567890123456", "555-CALL-NOW"])
    def test_invalid_phones(self, phone):
        """Test phone numbers the phone check rejects."""
        assert not is_valid_phone(phone)

    def test_clean_trims_name_and_strips_phone_separators(self):
        """Test that names are trimmed and phone separators dropped."""
        cleaned = clean_contact_fields({"name": "  Ada  ", "phone": "(555) 123-4567"})
        assert cleaned == {"name": "Ada", "phone": "5551234567"}

    def test_clean_turns_blank_optionals_into_none(self):
        """Test that blank email and phone become None."""
        cleaned = clean_contact_fields({"name": "Ada", "email": "  ", "phone": ""})
        assert cleaned["email"] is None
        assert cleaned["phone"] is None

    def test_clean_collects_every_field_error(self):
        """Test that every invalid field is reported at once."""
        with pytest.raises(ContactValidationError) as exc_info:
            clean_contact_fields(
                {"name": "", "email": "not-an-email", "phone": "12", "favorite": "yes"}
            )
        assert set(exc_info.value.errors) == {"name", "email", "phone", "favorite"}

    def test_name_length_limit(self):
        """Test the maximum name length boundary."""
        clean_contact_fields({"name": "x" * MAX_NAME_LENGTH})
        with pytest.raises(ContactValidationError) as exc_info:
            clean_contact_fields({"name": "x" * (MAX_NAME_LENGTH + 1)})
        assert "name" in exc_info.value.errors

    def test_only_present_fields_checked(self):
        """Test that absent fields are not validated."""
        assert clean_contact_fields({"favorite": True}) == {"favorite": True}
