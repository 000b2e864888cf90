"""Task CSV import service layer."""

from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from taskimport.common.audit import create_audit_log
from taskimport.core.business_metrics import BusinessMetric
from taskimport.core.config import settings
from taskimport.core.errors import (
    APIError,
    BadRequestError,
    ForbiddenError,
    ImportFailedError,
    ImportRejectedError,
)
from taskimport.core.metrics_service import MetricsService
from taskimport.imports.identity import IdentityResolver
from taskimport.imports.mappers import (
    auto_map_columns,
    suggest_identity_mappings,
    suggest_mappings,
    suggest_value_mappings,
)
from taskimport.imports.mapping import (
    FieldMapping,
    IdentityMapping,
    MappingError,
    ValueMapping,
    check_mapping_shapes,
)
from taskimport.imports.projector import ProjectionResult, project_rows
from taskimport.imports.report import (
    ImportReport,
    report_from_accelerated,
    report_from_direct,
)
from taskimport.imports.store import (
    ProjectContext,
    fetch_template,
    load_project_for_actor,
)
from taskimport.imports.strategies import (
    CommitCoordinator,
    ImportBatch,
    ImportWriteError,
    StrategyResult,
)
from taskimport.imports.validators import ValidationResult, validate_candidates

logger = logging.getLogger(__name__)


class TaskImportService:
    """Service for previewing and committing task CSV imports."""

    @staticmethod
    def _get_project(db: Session, project_id: UUID, actor_id: UUID) -> ProjectContext:
        project = load_project_for_actor(db, project_id, actor_id)
        if project is None:
            raise ForbiddenError("Project not found or access denied")
        return project

    @staticmethod
    def _check_rows(rows: Optional[list[dict[str, Any]]]) -> list[dict[str, Any]]:
        if rows is None:
            raise BadRequestError("Rows are required")
        if len(rows) > settings.max_import_rows:
            raise BadRequestError(
                f"Too many rows: {len(rows)} > {settings.max_import_rows}",
                details={"max_import_rows": settings.max_import_rows},
            )
        return rows

    @staticmethod
    def _project_and_validate(
        db: Session,
        project: ProjectContext,
        rows: list[dict[str, Any]],
        field_mappings: list[FieldMapping],
        value_mappings: list[ValueMapping],
        identity_mappings: list[IdentityMapping],
    ) -> tuple[ProjectionResult, ValidationResult]:
        try:
            check_mapping_shapes(field_mappings, value_mappings, identity_mappings)
            projection = project_rows(rows, field_mappings, value_mappings)
        except MappingError as e:
            raise BadRequestError(str(e)) from e

        return projection, validate_candidates(db, projection, project)

    @staticmethod
    def validate_only(
        db: Session,
        project_id: UUID,
        actor_id: UUID,
        rows: Optional[list[dict[str, Any]]],
        field_mappings: list[FieldMapping],
        value_mappings: list[ValueMapping],
        identity_mappings: Optional[list[IdentityMapping]] = None,
    ) -> ValidationResult:
        """
        Run projection and validation without touching the store.

        Returns:
            ValidationResult for preview
        """
        rows = TaskImportService._check_rows(rows)
        project = TaskImportService._get_project(db, project_id, actor_id)

        try:
            _, validation = TaskImportService._project_and_validate(
                db, project, rows, field_mappings, value_mappings, identity_mappings or []
            )
        finally:
            db.rollback()

        return validation

    @staticmethod
    def import_tasks(
        db: Session,
        project_id: UUID,
        actor_id: UUID,
        rows: Optional[list[dict[str, Any]]],
        field_mappings: list[FieldMapping],
        value_mappings: list[ValueMapping],
        identity_mappings: list[IdentityMapping],
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        coordinator: Optional[CommitCoordinator] = None,
    ) -> ImportReport:
        """
        Validate, resolve assignees and commit a batch of tasks atomically.

        Args:
            db: Database session; its transaction covers the whole import
            project_id: Target project
            actor_id: User performing the import (reporter and audit actor)
            rows: Parsed CSV rows
            field_mappings: Column to task field mappings
            value_mappings: Priority/status literal translations
            identity_mappings: Assignee decisions
            ip: Request IP for the audit row
            user_agent: Request user agent for the audit row
            coordinator: Commit coordinator (defaults to accelerated + direct)

        Returns:
            ImportReport for the committed batch

        Raises:
            BadRequestError: Rows missing or mappings malformed
            ForbiddenError: Project not in the actor's team
            ImportRejectedError: Validation failed; nothing was written
            ImportFailedError: Commit failed and was rolled back
        """
        rows = TaskImportService._check_rows(rows)
        project = TaskImportService._get_project(db, project_id, actor_id)

        MetricsService.emit_import_metric(
            metric_name=BusinessMetric.IMPORT_STARTED,
            project_id=project.id,
            user_id=actor_id,
        )

        projection, validation = TaskImportService._project_and_validate(
            db, project, rows, field_mappings, value_mappings, identity_mappings
        )

        if not validation.is_valid:
            db.rollback()
            MetricsService.emit_import_metric(
                metric_name=BusinessMetric.IMPORT_VALIDATION_ERROR,
                project_id=project.id,
                user_id=actor_id,
                error_count=len(validation.errors),
            )
            raise ImportRejectedError(
                errors=[e.to_dict() for e in validation.errors],
                warnings=[w.to_dict() for w in validation.warnings],
            )

        reports: list[ImportReport] = []

        def _finalize(result: StrategyResult) -> None:
            report = TaskImportService._build_report(result, project, batch.warnings)
            create_audit_log(
                db,
                team_id=project.team_id,
                actor_id=actor_id,
                action="import",
                entity_type="tasks",
                entity_id=project.id,
                after_json={
                    "imported_count": report.imported_count,
                    "strategy": report.strategy,
                    "task_ids": list(report.inserted_task_ids),
                },
                ip=ip,
                user_agent=user_agent,
            )
            reports.append(report)

        try:
            resolution = IdentityResolver(db, project, actor_id).resolve(
                projection.candidates, identity_mappings
            )
            batch = ImportBatch(
                project=project,
                actor_id=actor_id,
                candidates=projection.candidates,
                warnings=validation.warnings + resolution.warnings,
            )
            (coordinator or CommitCoordinator()).execute(db, batch, before_commit=_finalize)
        except APIError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(
                f"Task import failed for project {project.id}: {type(e).__name__}",
                extra={"project_id": str(project.id), "user_id": str(actor_id)},
                exc_info=True,
            )
            MetricsService.emit_import_metric(
                metric_name=BusinessMetric.IMPORT_FAILED,
                project_id=project.id,
                user_id=actor_id,
                error_type=type(e).__name__,
            )
            diagnostic = str(e) if isinstance(e, ImportWriteError) else type(e).__name__
            raise ImportFailedError(diagnostic) from e

        report = reports[0]

        MetricsService.emit_import_metric(
            metric_name=BusinessMetric.IMPORT_COMPLETED,
            project_id=project.id,
            user_id=actor_id,
            strategy=report.strategy,
        )
        MetricsService.emit_import_metric(
            metric_name=BusinessMetric.IMPORT_ROWS_PROCESSED,
            project_id=project.id,
            user_id=actor_id,
            rows_processed=report.imported_count,
        )

        logger.info(
            f"Imported {report.imported_count} tasks into project {project.id}",
            extra={
                "project_id": str(project.id),
                "strategy": report.strategy,
                "skipped_rows": projection.skipped_rows,
                "warnings": len(report.warnings),
            },
        )

        return report

    @staticmethod
    def _build_report(result: StrategyResult, project: ProjectContext, warnings) -> ImportReport:
        if result.payload is not None:
            return report_from_accelerated(result.payload, project.name, warnings)
        return report_from_direct(result.task_ids, project.name, warnings)

    @staticmethod
    def get_template(db: Session, project_id: UUID, actor_id: UUID) -> dict[str, Any]:
        """Statuses, priorities and team members for the import wizard."""
        project = TaskImportService._get_project(db, project_id, actor_id)
        return fetch_template(db, project)

    @staticmethod
    def suggest(
        db: Session,
        project_id: UUID,
        actor_id: UUID,
        headers: list[str],
        rows: list[dict[str, Any]],
        field_mappings: Optional[list[FieldMapping]] = None,
    ) -> dict[str, Any]:
        """
        Build wizard defaults for a parsed CSV.

        Column mappings are auto-detected when not given. Value and identity
        mappings are proposed from the distinct values in the mapped columns.
        """
        project = TaskImportService._get_project(db, project_id, actor_id)
        template = fetch_template(db, project)

        mappings = field_mappings if field_mappings is not None else auto_map_columns(headers)

        return {
            "field_mappings": mappings,
            "column_suggestions": suggest_mappings(headers),
            "value_mappings": suggest_value_mappings(
                rows,
                mappings,
                default_priority=settings.default_task_priority,
                default_status=settings.default_task_status,
            ),
            "identity_mappings": suggest_identity_mappings(
                rows, mappings, [m["email"] for m in template["team_members"]]
            ),
        }
