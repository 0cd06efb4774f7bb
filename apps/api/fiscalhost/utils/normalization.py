"""Data normalization utilities for emails, names, slugs and locations."""

import re
import unicodedata
from typing import Optional


MAX_SLUG_LENGTH = 255
_SLUG_INVALID_CHARS = re.compile(r"[^a-z0-9]+")


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Args:
        email: Raw email input

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    normalized = email.strip().lower()
    return normalized or None


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize name by stripping whitespace and collapsing multiple spaces.

    Args:
        name: Raw name input

    Returns:
        Cleaned name or None if empty
    """
    if not name:
        return None
    # Strip leading/trailing whitespace and collapse internal spaces
    return " ".join(name.split()) or None


def normalize_country(country: Optional[str]) -> Optional[str]:
    """Uppercase ISO 3166-1 alpha-2 code, or None if not two letters."""
    if not country:
        return None
    code = country.strip().upper()
    if len(code) != 2 or not code.isalpha():
        return None
    return code


def _strip_accents(value: str) -> str:
    """Remove diacritics for accent-insensitive matching."""
    return "".join(
        ch for ch in unicodedata.normalize("NFKD", value) if not unicodedata.combining(ch)
    )


def slugify(value: Optional[str]) -> str:
    """
    Turn free text into a URL-safe slug.

    - Strip accents
    - Lowercase
    - Runs of anything but [a-z0-9] become a single "-"
    """
    if not value:
        return ""
    ascii_value = _strip_accents(value).lower()
    slug = _SLUG_INVALID_CHARS.sub("-", ascii_value).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")
