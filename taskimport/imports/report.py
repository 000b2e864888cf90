"""Import report: one result schema for both commit strategies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID

from taskimport.imports.validators import ImportIssue


@dataclass(frozen=True)
class ImportReport:
    imported_count: int
    project_name: str
    message: str
    strategy: str
    inserted_task_ids: tuple[str, ...] = field(default_factory=tuple)
    warnings: tuple[Any, ...] = field(default_factory=tuple)
    errors: tuple[Any, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "imported_count": self.imported_count,
            "inserted_task_ids": list(self.inserted_task_ids),
            "validation_warnings": list(self.warnings),
            "import_errors": list(self.errors),
            "project_name": self.project_name,
            "strategy": self.strategy,
        }


def _default_message(count: int, project_name: str) -> str:
    return f"Successfully imported {count} tasks to {project_name}"


def _issues(items: Optional[list[ImportIssue]]) -> tuple[dict[str, Any], ...]:
    return tuple(item.to_dict() for item in items or [])


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def report_from_accelerated(
    payload: dict[str, Any],
    project_name: str,
    warnings: Optional[list[ImportIssue]] = None,
) -> ImportReport:
    """
    Normalise the bulk routine's result.

    The routine has returned its fields under several names over time:
    imported_count / body.imported_count / inserted_count,
    task_ids / inserted_task_ids, import_errors / errors and
    validation_warnings / warnings.
    """
    body = payload.get("body") if isinstance(payload.get("body"), dict) else {}

    count = body.get("imported_count")
    if count is None:
        count = payload.get("imported_count", payload.get("inserted_count"))
    try:
        imported_count = int(count or 0)
    except (TypeError, ValueError):
        imported_count = 0

    task_ids = payload.get("inserted_task_ids") or payload.get("task_ids") or body.get("task_ids")
    errors = payload.get("import_errors") or payload.get("errors")
    routine_warnings = payload.get("validation_warnings") or payload.get("warnings")

    return ImportReport(
        imported_count=imported_count,
        project_name=project_name,
        message=payload.get("message") or _default_message(imported_count, project_name),
        strategy="accelerated",
        inserted_task_ids=tuple(str(task_id) for task_id in _as_list(task_ids)),
        warnings=_issues(warnings) + tuple(_as_list(routine_warnings)),
        errors=tuple(_as_list(errors)),
    )


def report_from_direct(
    task_ids: list[UUID],
    project_name: str,
    warnings: Optional[list[ImportIssue]] = None,
) -> ImportReport:
    return ImportReport(
        imported_count=len(task_ids),
        project_name=project_name,
        message=_default_message(len(task_ids), project_name),
        strategy="direct",
        inserted_task_ids=tuple(str(task_id) for task_id in task_ids),
        warnings=_issues(warnings),
    )
