"""Projection of raw CSV rows onto candidate tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional
from uuid import UUID

from taskimport.core.config import settings
from taskimport.imports.mapping import (
    FieldMapping,
    TargetField,
    ValueFieldType,
    ValueMapping,
    check_field_mappings,
)


@dataclass
class CandidateTask:
    """A projected, not yet persisted task built from one source row."""

    source_row_index: int
    name: str
    description: Optional[str] = None
    priority: str = ""
    status: str = ""
    due_date: Optional[str] = None
    assignee_identity: Optional[str] = None
    suggested_id: Optional[str] = None

    # Set by the validation gate
    due_date_value: Optional[date] = None
    stable_id: Optional[UUID] = None

    # Set by the identity resolver
    team_member_id: Optional[UUID] = None
    project_member_id: Optional[UUID] = None

    @property
    def row_number(self) -> int:
        """1-based data row number as shown to the operator."""
        return self.source_row_index + 1

    @property
    def is_assignable(self) -> bool:
        return self.team_member_id is not None and self.project_member_id is not None


@dataclass(frozen=True)
class UnmappedValue:
    """A priority/status literal with no value mapping."""

    row_number: int
    field_type: ValueFieldType
    source_value: str


@dataclass
class ProjectionResult:
    """Candidates in source order plus aggregated projection defects."""

    candidates: list[CandidateTask] = field(default_factory=list)
    defects: list[UnmappedValue] = field(default_factory=list)
    skipped_rows: int = 0
    total_rows: int = 0


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def project_rows(
    rows: list[dict[str, str]],
    field_mappings: list[FieldMapping],
    value_mappings: list[ValueMapping],
) -> ProjectionResult:
    """
    Apply field and value mappings to raw rows.

    Rows without a name are dropped. A priority/status value with no
    value mapping is recorded as a defect and the field keeps its default.

    Args:
        rows: Raw rows keyed by source column name
        field_mappings: Column to task field mappings
        value_mappings: Priority/status value translations

    Returns:
        ProjectionResult with candidates in source row order

    Raises:
        MappingError: If two mapped columns target the same task field
    """
    check_field_mappings(field_mappings)

    active = [m for m in field_mappings if m.mapped]
    value_lookup = {m.key: m.target_value.strip() for m in value_mappings}
    pinned = {m.target_field for m in active if _clean(m.fixed_value)}

    result = ProjectionResult(total_rows=len(rows))

    for index, row in enumerate(rows):
        values: dict[TargetField, str] = {}
        for mapping in active:
            raw = mapping.fixed_value if _clean(mapping.fixed_value) else row.get(mapping.source_column)
            cleaned = _clean(raw)
            if cleaned is not None:
                values[mapping.target_field] = cleaned

        name = values.get(TargetField.NAME)
        if not name:
            result.skipped_rows += 1
            continue

        candidate = CandidateTask(
            source_row_index=index,
            name=name,
            description=values.get(TargetField.DESCRIPTION),
            priority=settings.default_task_priority,
            status=settings.default_task_status,
            due_date=values.get(TargetField.DUE_DATE),
            assignee_identity=values.get(TargetField.ASSIGNEE),
            suggested_id=values.get(TargetField.ID),
        )

        for target, field_type in (
            (TargetField.PRIORITY, ValueFieldType.PRIORITY),
            (TargetField.STATUS, ValueFieldType.STATUS),
        ):
            source_value = values.get(target)
            if source_value is None:
                continue

            if target in pinned:
                # Pinned values are already target literals
                translated: Optional[str] = source_value
            else:
                translated = value_lookup.get((source_value, field_type))

            if translated is None:
                result.defects.append(
                    UnmappedValue(
                        row_number=candidate.row_number,
                        field_type=field_type,
                        source_value=source_value,
                    )
                )
                continue

            setattr(candidate, target.value, translated)

        result.candidates.append(candidate)

    return result
