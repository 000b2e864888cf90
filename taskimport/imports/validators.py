"""Validation rules for task import batches."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import Session

from taskimport.core.config import settings
from taskimport.imports.coercers import coerce_string, coerce_value
from taskimport.imports.projector import ProjectionResult
from taskimport.imports.store import ProjectContext, fetch_priority_ids, fetch_status_names


@dataclass
class ImportIssue:
    """A validation error or warning."""

    field: str
    message: str
    issue_type: str  # "required", "format", "mapping", "reference", "constraint", "business", "identity"
    row_number: Optional[int] = None
    original_value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationResult:
    """Outcome of the validation gate for a whole batch."""

    is_valid: bool
    errors: list[ImportIssue] = field(default_factory=list)
    warnings: list[ImportIssue] = field(default_factory=list)
    total_tasks: int = 0
    valid_tasks: int = 0
    skipped_rows: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "total_tasks": self.total_tasks,
            "valid_tasks": self.valid_tasks,
            "skipped_rows": self.skipped_rows,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def validate_required(value: Any, field_name: str) -> Optional[str]:
    """Validate that required field is not empty."""
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return f"Required field '{field_name}' is missing or empty"
    return None


def validate_string_length(value: Optional[str], max_length: int) -> Optional[str]:
    """Validate string length."""
    return coerce_string(value, {"max_length": max_length}).error


def validate_candidates(
    db: Session,
    projection: ProjectionResult,
    project: ProjectContext,
    today: Optional[date] = None,
) -> ValidationResult:
    """
    Decide whether a projected batch may be imported.

    Structural checks run locally. The project's status vocabulary is read in
    a single query. Parsed due dates and stable ids are written back onto the
    candidates. Nothing is written to the store.

    Args:
        db: Database session
        projection: Output of the row projector
        project: Target project
        today: Reference date for the past-due warning (defaults to today)

    Returns:
        ValidationResult; is_valid is False when any error was found
    """
    today = today or date.today()
    candidates = projection.candidates
    errors: list[ImportIssue] = []
    warnings: list[ImportIssue] = []
    invalid_rows: set[int] = set()

    if not candidates:
        errors.append(
            ImportIssue(
                field="name",
                issue_type="required",
                message="No rows with a task name were found",
            )
        )

    for defect in projection.defects:
        errors.append(
            ImportIssue(
                field=defect.field_type.value,
                issue_type="mapping",
                row_number=defect.row_number,
                original_value=defect.source_value,
                message=f"No {defect.field_type.value} mapping for value '{defect.source_value}'",
            )
        )
        invalid_rows.add(defect.row_number)

    priority_ids = fetch_priority_ids(db, [c.priority for c in candidates])
    status_names = fetch_status_names(db, project.id)
    seen_ids: dict[str, int] = {}

    for candidate in candidates:
        row = candidate.row_number

        message = validate_required(candidate.name, "name") or validate_string_length(
            candidate.name, settings.max_task_name_length
        )
        if message:
            errors.append(
                ImportIssue(
                    field="name",
                    issue_type="required" if not candidate.name else "constraint",
                    row_number=row,
                    original_value=candidate.name,
                    message=message,
                )
            )
            invalid_rows.add(row)

        if candidate.due_date:
            result = coerce_value(candidate.due_date, "date")
            if result.success:
                candidate.due_date_value = result.coerced_value
                if candidate.due_date_value < today:
                    warnings.append(
                        ImportIssue(
                            field="due_date",
                            issue_type="business",
                            row_number=row,
                            original_value=candidate.due_date,
                            message=f"Due date {candidate.due_date_value.isoformat()} is in the past",
                        )
                    )
            else:
                errors.append(
                    ImportIssue(
                        field="due_date",
                        issue_type="format",
                        row_number=row,
                        original_value=candidate.due_date,
                        message=result.error or "Invalid date",
                    )
                )
                invalid_rows.add(row)

        if candidate.priority.lower() not in priority_ids:
            errors.append(
                ImportIssue(
                    field="priority",
                    issue_type="reference",
                    row_number=row,
                    original_value=candidate.priority,
                    message=f"Priority '{candidate.priority}' is not defined",
                )
            )
            invalid_rows.add(row)

        if candidate.status.lower() not in status_names:
            errors.append(
                ImportIssue(
                    field="status",
                    issue_type="reference",
                    row_number=row,
                    original_value=candidate.status,
                    message=f"Status '{candidate.status}' does not exist in project '{project.name}'",
                )
            )
            invalid_rows.add(row)

        if candidate.suggested_id:
            result = coerce_value(candidate.suggested_id, "uuid")
            if not result.success:
                warnings.append(
                    ImportIssue(
                        field="id",
                        issue_type="format",
                        row_number=row,
                        original_value=candidate.suggested_id,
                        message="Task id is not a UUID; a new id will be generated",
                    )
                )
            else:
                key = str(result.coerced_value)
                if key in seen_ids:
                    errors.append(
                        ImportIssue(
                            field="id",
                            issue_type="constraint",
                            row_number=row,
                            original_value=candidate.suggested_id,
                            message=f"Task id also used on row {seen_ids[key]}",
                        )
                    )
                    invalid_rows.add(row)
                else:
                    seen_ids[key] = row
                    candidate.stable_id = result.coerced_value

    valid_tasks = sum(1 for c in candidates if c.row_number not in invalid_rows)

    return ValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        total_tasks=len(candidates),
        valid_tasks=valid_tasks,
        skipped_rows=projection.skipped_rows,
    )
