"""Tests for import data coercion."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from taskimport.imports.coercers import (
    coerce_value,
    coerce_date,
    coerce_string,
    coerce_uuid,
)


class TestDateCoercion:
    """Tests for date coercion."""

    def test_coerce_date_iso_format(self):
        result = coerce_date("2024-01-15")
        assert result.success
        assert result.coerced_value == date(2024, 1, 15)

    def test_coerce_date_dd_mm_yyyy(self):
        """Day-first like the rest of the coercers."""
        result = coerce_date("03/01/2024")
        assert result.success
        assert result.coerced_value == date(2024, 1, 3)

    def test_coerce_date_month_name(self):
        result = coerce_date("15 January 2024")
        assert result.success
        assert result.coerced_value == date(2024, 1, 15)

    def test_coerce_date_invalid(self):
        result = coerce_date("invalid-date")
        assert not result.success
        assert result.error is not None

    def test_coerce_date_bare_number_rejected(self):
        assert not coerce_date("12").success

    def test_coerce_date_partial_rejected(self):
        for value in ("March", "Monday", "March 2024", "15 March"):
            result = coerce_date(value)
            assert not result.success, value
            assert "Incomplete" in result.error

    def test_coerce_date_free_text_full_date(self):
        assert coerce_date("Jan 3 2024").coerced_value == date(2024, 1, 3)

    def test_coerce_date_empty(self):
        result = coerce_date("")
        assert not result.success


class TestUUIDCoercion:
    def test_canonical_uuid(self):
        value = "6f1c2d3e-4a5b-4c6d-8e9f-0a1b2c3d4e5f"
        result = coerce_uuid(value)
        assert result.success
        assert result.coerced_value == UUID(value)

    def test_non_canonical_rejected(self):
        assert not coerce_uuid("6f1c2d3e4a5b4c6d8e9f0a1b2c3d4e5f").success
        assert not coerce_uuid("TASK-12").success


def test_coerce_string_max_length():
    assert coerce_string("abc", {"max_length": 3}).success
    assert not coerce_string("abcd", {"max_length": 3}).success


def test_coerce_value_dispatch():
    assert coerce_value("2024-02-29", "date").coerced_value == date(2024, 2, 29)
    assert coerce_value(" x ", "unknown").coerced_value == "x"
