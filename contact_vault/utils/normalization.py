"""
String normalization utilities for contact searching, sorting and validation.

Provides consistent folding of names for case-insensitive ordering and
search, plus phone number separator stripping.
"""

from __future__ import annotations

import re
import unicodedata

# Characters treated as visual separators inside phone numbers
PHONE_SEPARATORS = re.compile(r"[\s\-().]")


def normalize_string(value: str | None) -> str:
    """
    Normalize a string for case-insensitive comparison.

    Unicode is decomposed and combining marks are dropped, so "Zoë" and
    "Zoe" compare equal. Runs of whitespace collapse to a single space.

    Args:
        value: String to normalize

    Returns:
        Casefolded string with whitespace normalized
    """
    if not value:
        return ""

    # Normalize unicode (decompose accents, etc.)
    normalized = unicodedata.normalize("NFKD", value)
    normalized = "".join(c for c in normalized if not unicodedata.combining(c))

    normalized = normalized.casefold()
    return re.sub(r"\s+", " ", normalized).strip()


def normalize_phone(value: str | None) -> str:
    """
    Strip visual separators (spaces, dashes, dots, parentheses) from a phone.

    A leading "+" is preserved. No other characters are removed, so invalid
    input stays invalid for the validator to reject.

    Args:
        value: Raw phone number as typed or imported

    Returns:
        Phone number without separators, or "" for empty input
    """
    if not value:
        return ""
    return PHONE_SEPARATORS.sub("", value.strip())


def name_sort_key(name: str) -> str:
    """Sort key used for ordering contacts by name, case-insensitively."""
    return normalize_string(name)
