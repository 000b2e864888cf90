"""Mapping model for task imports: column, value and identity mappings."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class MappingError(ValueError):
    """Mapping arrays have an invalid shape."""


class TargetField(str, Enum):
    """Task fields a source column can be mapped onto."""

    NAME = "name"
    DESCRIPTION = "description"
    ASSIGNEE = "assignee"
    DUE_DATE = "due_date"
    STATUS = "status"
    PRIORITY = "priority"
    ID = "id"


class ValueFieldType(str, Enum):
    """Enumerated task fields whose values go through a value mapping."""

    PRIORITY = "priority"
    STATUS = "status"


class IdentityAction(str, Enum):
    """What to do with a source identity found in the assignee column."""

    CREATE = "create"
    MAP = "map"
    SKIP = "skip"


EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and EMAIL_PATTERN.match(value.strip()) is not None


def normalize_identity(value: Optional[str]) -> str:
    """Identity strings compare case-insensitively and ignore outer whitespace."""
    return (value or "").strip().lower()


@dataclass(frozen=True)
class FieldMapping:
    """Source column to task field mapping."""

    source_column: str
    target_field: TargetField
    required: bool = False
    mapped: bool = True
    fixed_value: Optional[str] = None


@dataclass(frozen=True)
class ValueMapping:
    """Source literal to target literal translation for one field type."""

    source_value: str
    target_value: str
    field_type: ValueFieldType

    @property
    def key(self) -> tuple[str, ValueFieldType]:
        return (self.source_value.strip(), self.field_type)


@dataclass(frozen=True)
class IdentityMapping:
    """Per source identity decision: create a user, map to a member, or skip."""

    source_identity: str
    action: IdentityAction
    target_identity_email: Optional[str] = None
    target_member_ref: Optional[str] = None

    @property
    def key(self) -> str:
        return normalize_identity(self.source_identity)

    @property
    def resolution_email(self) -> Optional[str]:
        """Email the identity resolves by, if any."""
        if self.action == IdentityAction.SKIP:
            return None
        if is_valid_email(self.target_identity_email):
            return normalize_identity(self.target_identity_email)
        return None


def check_mapping_shapes(
    field_mappings: list[FieldMapping],
    value_mappings: list[ValueMapping],
    identity_mappings: list[IdentityMapping],
) -> None:
    """
    Re-check mapping shapes the wizard is expected to enforce.

    Raises:
        MappingError: On the first shape violation found
    """
    check_field_mappings(field_mappings)

    seen_values: set[tuple[str, ValueFieldType]] = set()
    for mapping in value_mappings:
        if not mapping.source_value.strip():
            raise MappingError(f"Empty source value in {mapping.field_type.value} value mapping")
        if not mapping.target_value.strip():
            raise MappingError(
                f"Value mapping for '{mapping.source_value}' ({mapping.field_type.value}) has no target value"
            )
        if mapping.key in seen_values:
            raise MappingError(
                f"Duplicate {mapping.field_type.value} value mapping for '{mapping.source_value}'"
            )
        seen_values.add(mapping.key)

    seen_identities: set[str] = set()
    for mapping in identity_mappings:
        if not mapping.key:
            raise MappingError("Identity mapping has an empty source identity")
        if mapping.key in seen_identities:
            raise MappingError(f"Duplicate identity mapping for '{mapping.source_identity}'")
        seen_identities.add(mapping.key)

        if mapping.action == IdentityAction.CREATE and not is_valid_email(mapping.target_identity_email):
            raise MappingError(
                f"Identity '{mapping.source_identity}' is marked for creation without a valid email"
            )
        if mapping.action == IdentityAction.MAP and not (
            mapping.target_member_ref or mapping.target_identity_email
        ):
            raise MappingError(
                f"Identity '{mapping.source_identity}' is mapped without a target member"
            )


def check_field_mappings(field_mappings: list[FieldMapping]) -> None:
    """At most one mapped column per target field."""
    targets: dict[TargetField, str] = {}
    for mapping in field_mappings:
        if not mapping.mapped:
            continue
        if mapping.target_field in targets:
            raise MappingError(
                f"Columns '{targets[mapping.target_field]}' and '{mapping.source_column}' "
                f"are both mapped to '{mapping.target_field.value}'"
            )
        targets[mapping.target_field] = mapping.source_column
