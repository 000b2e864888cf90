"""Data type coercion for import values."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from dateutil import parser as date_parser


@dataclass
class CoercionResult:
    """Result of coercion operation."""

    success: bool
    coerced_value: Any = None
    warnings: list[str] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.warnings is None:
            self.warnings = []


# Unambiguous patterns are tried before the day-first dateutil fallback
DATE_PATTERNS = [
    "%Y-%m-%d",  # ISO format
    "%Y/%m/%d",  # YYYY/MM/DD
    "%d/%m/%Y",  # DD/MM/YYYY
    "%d-%m-%Y",  # DD-MM-YYYY
    "%d.%m.%Y",  # DD.MM.YYYY
    "%d %B %Y",  # DD Month YYYY
    "%B %d, %Y",  # Month DD, YYYY
]

_PARSE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def coerce_date(value: Any, hints: Optional[dict] = None) -> CoercionResult:
    """Coerce value to a calendar date."""
    if value is None or value == "":
        return CoercionResult(success=False, error="Empty value")

    str_value = str(value).strip()

    for pattern in DATE_PATTERNS:
        try:
            return CoercionResult(
                success=True, coerced_value=datetime.strptime(str_value, pattern).date()
            )
        except (ValueError, TypeError):
            continue

    # Bare numbers would be read as a day of the current month
    if str_value.isdigit():
        return CoercionResult(success=False, error=f"Could not parse date: {str_value}")

    # Parts missing from the value are filled from `default`; two different
    # defaults only agree when day, month and year were all given
    try:
        first, second = (
            date_parser.parse(str_value, dayfirst=True, yearfirst=False, default=default)
            for default in _PARSE_DEFAULTS
        )
    except (ValueError, TypeError, OverflowError):
        pass
    else:
        if first.date() == second.date():
            return CoercionResult(success=True, coerced_value=first.date())
        return CoercionResult(success=False, error=f"Incomplete date: {str_value}")

    return CoercionResult(
        success=False,
        error=f"Could not parse date: {str_value}",
    )


def coerce_uuid(value: Any, hints: Optional[dict] = None) -> CoercionResult:
    """Coerce value to a UUID, accepting only the canonical 8-4-4-4-12 shape."""
    if value is None or value == "":
        return CoercionResult(success=False, error="Empty value")

    str_value = str(value).strip()
    if not UUID_PATTERN.match(str_value):
        return CoercionResult(success=False, error=f"Not a canonical UUID: {str_value}")

    return CoercionResult(success=True, coerced_value=UUID(str_value))


def coerce_string(value: Any, hints: Optional[dict] = None) -> CoercionResult:
    """Coerce value to string, enforcing an optional max_length hint."""
    if value is None:
        return CoercionResult(success=True, coerced_value="")

    str_value = str(value).strip()
    max_length = (hints or {}).get("max_length")
    if max_length and len(str_value) > max_length:
        return CoercionResult(
            success=False,
            error=f"String too long: {len(str_value)} > {max_length}",
        )

    return CoercionResult(success=True, coerced_value=str_value)


COERCION_FUNCTIONS = {
    "date": coerce_date,
    "uuid": coerce_uuid,
    "string": coerce_string,
}


def coerce_value(
    value: Any, target_type: str, hints: Optional[dict] = None
) -> CoercionResult:
    """
    Coerce value to target type.

    Args:
        value: Value to coerce
        target_type: Target type name ("date", "uuid", "string")
        hints: Additional hints for coercion (e.g., {"max_length": 500})

    Returns:
        CoercionResult with success status and coerced value
    """
    coercion_func = COERCION_FUNCTIONS.get(target_type, coerce_string)
    return coercion_func(value, hints)
