"""Contact and group domain model, validation and the authoritative store."""

from contact_vault.contacts.contact import Contact, new_id, parse_timestamp, utc_now
from contact_vault.contacts.group import Group
from contact_vault.contacts.store import (
    ContactFilter,
    ContactNotFoundError,
    ContactStore,
    GroupNotFoundError,
)
from contact_vault.contacts.transfer import (
    ImportFormatError,
    ImportResult,
    export_csv,
    export_json,
    import_json,
)
from contact_vault.contacts.validation import (
    ContactStoreError,
    ContactValidationError,
    clean_contact_fields,
)

__all__ = [
    "Contact",
    "Group",
    "ContactStore",
    "ContactFilter",
    "ContactStoreError",
    "ContactValidationError",
    "ContactNotFoundError",
    "GroupNotFoundError",
    "ImportResult",
    "ImportFormatError",
    "clean_contact_fields",
    "export_csv",
    "export_json",
    "import_json",
    "new_id",
    "parse_timestamp",
    "utc_now",
]
