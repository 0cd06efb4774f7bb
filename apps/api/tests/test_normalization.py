"""Tests for normalization and PII-safe logging helpers."""

import pytest

from fiscalhost.core.structured_logging import build_log_context, hash_email
from fiscalhost.utils.normalization import (
    normalize_country,
    normalize_email,
    normalize_name,
    slugify,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("  Jane@Example.COM ", "jane@example.com"),
        ("", None),
        ("   ", None),
        (None, None),
    ],
)
def test_normalize_email(raw, expected):
    assert normalize_email(raw) == expected


def test_normalize_name_collapses_spaces():
    assert normalize_name("  Jane   Doe ") == "Jane Doe"
    assert normalize_name("   ") is None


@pytest.mark.parametrize(
    "raw,expected",
    [("fr", "FR"), (" be ", "BE"), ("FRA", None), ("1A", None), (None, None)],
)
def test_normalize_country(raw, expected):
    assert normalize_country(raw) == expected


def test_slugify():
    assert slugify("Frank Zappa") == "frank-zappa"
    assert slugify("Crème Brûlée!!") == "creme-brulee"
    assert slugify("---") == ""
    assert len(slugify("a" * 400)) == 255


def test_hash_email_hides_address():
    hashed = hash_email("jane.doe@example.com")
    assert hashed.startswith("jan...@[hash:")
    assert "example.com" not in hashed
    assert hash_email("JANE.DOE@example.com").split("[hash:")[1] == hashed.split("[hash:")[1]


def test_build_log_context_skips_empty_values():
    context = build_log_context(user_id="u1", email="jane@example.com")
    assert context["user_id"] == "u1"
    assert "email" not in context
    assert "email_hash" in context
    assert "account_id" not in context
