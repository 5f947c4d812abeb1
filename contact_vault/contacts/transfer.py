"""
JSON and CSV export, and JSON import, for a ContactStore.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from contact_vault.contacts.contact import utc_now
from contact_vault.contacts.store import ContactStore, GroupNotFoundError
from contact_vault.contacts.validation import ContactValidationError

logger = logging.getLogger(__name__)

CSV_HEADERS = ["Name", "Email", "Phone", "Created At"]


class ImportFormatError(ValueError):
    """Raised when import data is not a contact export at all."""

    pass


@dataclass
class ImportResult:
    """
    Outcome of an import.

    Attributes:
        imported: Number of contacts added
        skipped: Number of records rejected
        groups_created: Number of groups created
        errors: One message per skipped record
    """

    imported: int = 0
    skipped: int = 0
    groups_created: int = 0
    errors: list[str] = field(default_factory=list)


def export_json(store: ContactStore, indent: int = 2) -> str:
    """Export all contacts and groups as a JSON document."""
    document = {
        "exportedAt": utc_now().isoformat(),
        "contacts": [c.to_dict() for c in store.get_all()],
        "groups": [g.to_dict() for g in store.get_groups()],
    }
    return json.dumps(document, indent=indent, ensure_ascii=False)


def export_csv(store: ContactStore) -> str:
    """Export contacts as CSV with every field quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for contact in store.get_all():
        writer.writerow(
            [
                contact.name,
                contact.email or "",
                contact.phone or "",
                contact.created_at.isoformat(),
            ]
        )
    return buffer.getvalue()


def import_json(store: ContactStore, text: str) -> ImportResult:
    """
    Import contacts from a JSON export.

    Accepts either an export document ({"contacts": [...], "groups": [...]})
    or a bare list of contact objects. Groups are recreated with new ids and
    memberships are remapped. Contacts get new ids as well; records that
    fail validation are skipped.

    Raises:
        ImportFormatError: If the text is not JSON or holds no contact list
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ImportFormatError(f"Import file is not valid JSON: {e}") from e

    if isinstance(data, list):
        contacts: Any = data
        groups: Any = []
    elif isinstance(data, dict) and isinstance(data.get("contacts"), list):
        contacts = data["contacts"]
        groups = data.get("groups") or []
    else:
        raise ImportFormatError("Import file does not contain a contact list")

    result = ImportResult()
    group_ids: dict[str, str] = {}

    for raw_group in groups if isinstance(groups, list) else []:
        if not isinstance(raw_group, dict):
            continue
        label = raw_group.get("label", raw_group.get("name"))
        try:
            existing = store.find_group(label) if isinstance(label, str) else None
        except GroupNotFoundError:
            existing = None
        try:
            group = existing or store.add_group(label)
        except ContactValidationError as e:
            result.errors.append(f"Group {label!r}: {e}")
            continue
        if existing is None:
            result.groups_created += 1
        if raw_group.get("id"):
            group_ids[str(raw_group["id"])] = group.id

    for index, raw in enumerate(contacts):
        if not isinstance(raw, dict):
            result.skipped += 1
            result.errors.append(f"Record {index}: not an object")
            continue

        memberships = [group_ids[g] for g in raw.get("groups") or [] if g in group_ids]
        fields = {
            "name": raw.get("name"),
            "email": raw.get("email"),
            "phone": raw.get("phone"),
            "favorite": bool(raw.get("favorite", False)),
            "blocked": bool(raw.get("blocked", False)),
            "groups": memberships,
        }
        try:
            store.add(fields)
        except ContactValidationError as e:
            result.skipped += 1
            result.errors.append(f"Record {index}: {e}")
            continue
        result.imported += 1

    logger.info(
        f"Imported {result.imported} contact(s), skipped {result.skipped}, "
        f"created {result.groups_created} group(s)"
    )
    return result


__all__ = [
    "ImportResult",
    "ImportFormatError",
    "export_json",
    "export_csv",
    "import_json",
    "CSV_HEADERS",
]
