"""
Validation rules for contact input.

Every caller (CLI, importers, device integrations) goes through the same
rules. Errors are collected per field instead of stopping at the first one.
"""

from __future__ import annotations

import re
from typing import Any

from contact_vault.utils import normalize_phone

MAX_NAME_LENGTH = 100
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?\d+$")


class ContactStoreError(Exception):
    """Base exception for contact store errors."""

    pass


class ContactValidationError(ContactStoreError):
    """
    Raised when contact input fails validation.

    Attributes:
        errors: Mapping of field name to a human-readable message
    """

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        details = "; ".join(f"{name}: {message}" for name, message in self.errors.items())
        super().__init__(f"Invalid contact data ({details})")


def is_valid_email(email: str) -> bool:
    """Check an email against the basic local@domain.tld shape."""
    return bool(EMAIL_PATTERN.match(email))


def is_valid_phone(phone: str) -> bool:
    """
    Check a phone number after separators have been stripped.

    Accepts an optional leading "+" followed by 7-15 digits.
    """
    normalized = normalize_phone(phone)
    if not PHONE_PATTERN.match(normalized):
        return False
    digits = normalized.lstrip("+")
    return MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS


def clean_contact_fields(data: dict[str, Any]) -> dict[str, Any]:
    """
    Validate and normalize the user-editable fields of a contact.

    Only keys present in ``data`` are checked, so the same function serves
    both full records (add) and merged patches (update).

    Args:
        data: Raw field values

    Returns:
        A copy of ``data`` with name trimmed, empty optionals set to None,
        and phone separators stripped

    Raises:
        ContactValidationError: With one message per offending field
    """
    errors: dict[str, str] = {}
    cleaned = dict(data)

    if "name" in data:
        name = data["name"]
        if not isinstance(name, str) or not name.strip():
            errors["name"] = "Name is required"
        elif len(name.strip()) > MAX_NAME_LENGTH:
            errors["name"] = f"Name must be at most {MAX_NAME_LENGTH} characters"
        else:
            cleaned["name"] = name.strip()

    if "email" in data:
        email = data["email"]
        if email is None or (isinstance(email, str) and not email.strip()):
            cleaned["email"] = None
        elif not isinstance(email, str) or not is_valid_email(email.strip()):
            errors["email"] = "Invalid email format"
        else:
            cleaned["email"] = email.strip()

    if "phone" in data:
        phone = data["phone"]
        if phone is None or (isinstance(phone, str) and not phone.strip()):
            cleaned["phone"] = None
        elif not isinstance(phone, str) or not is_valid_phone(phone):
            errors["phone"] = (
                f"Phone must contain {MIN_PHONE_DIGITS}-{MAX_PHONE_DIGITS} digits"
            )
        else:
            cleaned["phone"] = normalize_phone(phone)

    for flag in ("favorite", "blocked"):
        if flag in data and not isinstance(data[flag], bool):
            errors[flag] = f"{flag} must be true or false"

    if errors:
        raise ContactValidationError(errors)

    return cleaned


__all__ = [
    "ContactStoreError",
    "ContactValidationError",
    "clean_contact_fields",
    "is_valid_email",
    "is_valid_phone",
    "MAX_NAME_LENGTH",
    "MIN_PHONE_DIGITS",
    "MAX_PHONE_DIGITS",
]
