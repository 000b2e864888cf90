"""Commit strategies for task imports.

An import is committed either through the server-side bulk routine
(accelerated) or through direct per-task inserts. Both run inside the
caller's transaction; the coordinator decides which one produced the
result and whether the transaction commits or rolls back.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from taskimport.core.business_metrics import BusinessMetric
from taskimport.core.config import settings
from taskimport.core.metrics_service import MetricsService
from taskimport.imports.projector import CandidateTask
from taskimport.imports.store import (
    ProjectContext,
    call_json_routine,
    fetch_priority_ids,
    fetch_status_ids,
    insert_assignee,
    insert_task,
    next_sort_order,
    routine_exists,
)
from taskimport.imports.validators import ImportIssue

logger = logging.getLogger(__name__)


class AcceleratorError(Exception):
    """The accelerated path could not produce a result; the direct path takes over."""


class ImportWriteError(Exception):
    """A direct insert failed; the whole batch is rolled back."""


@dataclass
class ImportBatch:
    """Everything a commit strategy needs for one invocation."""

    project: ProjectContext
    actor_id: UUID
    candidates: list[CandidateTask]
    warnings: list[ImportIssue] = field(default_factory=list)


@dataclass
class StrategyResult:
    """Raw outcome of a commit strategy, before normalisation into a report."""

    strategy: str
    task_ids: list[UUID] = field(default_factory=list)
    sort_orders: list[int] = field(default_factory=list)
    payload: Optional[Any] = None


class ImportStrategy(ABC):
    """Interface shared by the accelerated and direct commit paths."""

    name: str = ""

    @abstractmethod
    def is_available(self, db: Session) -> bool:
        """Whether this strategy can run against the current store."""

    @abstractmethod
    def attempt_import(self, db: Session, batch: ImportBatch) -> StrategyResult:
        """Write the batch. Must not commit."""


def serialize_candidate(candidate: CandidateTask) -> dict[str, Any]:
    """Candidate shape passed to the bulk import routine."""
    return {
        "row_number": candidate.row_number,
        "name": candidate.name,
        "description": candidate.description,
        "priority": candidate.priority,
        "status": candidate.status,
        "due_date": candidate.due_date_value.isoformat() if candidate.due_date_value else None,
        "assignee": candidate.assignee_identity,
        "id": str(candidate.stable_id) if candidate.stable_id else None,
        "team_member_id": str(candidate.team_member_id) if candidate.is_assignable else None,
        "project_member_id": str(candidate.project_member_id) if candidate.is_assignable else None,
    }


class AcceleratedImportStrategy(ImportStrategy):
    """Hand the whole batch to the server-side bulk import routine."""

    name = "accelerated"

    def __init__(self, routine: Optional[str] = None):
        self.routine = routine or settings.task_import_routine

    def is_available(self, db: Session) -> bool:
        return routine_exists(db, self.routine)

    def attempt_import(self, db: Session, batch: ImportBatch) -> StrategyResult:
        payload = call_json_routine(
            db,
            self.routine,
            batch.project.id,
            [serialize_candidate(c) for c in batch.candidates],
            batch.actor_id,
        )
        if not isinstance(payload, dict) or not payload:
            raise AcceleratorError(
                f"{self.routine} returned no usable result ({type(payload).__name__})"
            )
        return StrategyResult(strategy=self.name, payload=payload)


class DirectImportStrategy(ImportStrategy):
    """Insert tasks and assignee links one by one, in input order."""

    name = "direct"

    def is_available(self, db: Session) -> bool:
        return True

    def attempt_import(self, db: Session, batch: ImportBatch) -> StrategyResult:
        project_id = batch.project.id
        candidates = batch.candidates

        priority_ids = fetch_priority_ids(
            db, [c.priority for c in candidates] + [settings.default_task_priority]
        )
        status_ids = fetch_status_ids(
            db, project_id, [c.status for c in candidates] + [settings.default_task_status]
        )
        default_priority_id = priority_ids.get(settings.default_task_priority.lower())
        default_status_id = status_ids.get(settings.default_task_status.lower())

        # Positions continue from the project's current maximum
        start = next_sort_order(db, project_id)

        result = StrategyResult(strategy=self.name)
        for offset, candidate in enumerate(candidates):
            sort_order = start + offset
            try:
                task_id = insert_task(
                    db,
                    project_id=project_id,
                    name=candidate.name,
                    description=candidate.description,
                    priority_id=priority_ids.get(candidate.priority.lower(), default_priority_id),
                    status_id=status_ids.get(candidate.status.lower(), default_status_id),
                    sort_order=sort_order,
                    end_date=candidate.due_date_value,
                    reporter_id=batch.actor_id,
                    task_id=candidate.stable_id,
                )
                if candidate.is_assignable:
                    insert_assignee(
                        db,
                        task_id=task_id,
                        project_member_id=candidate.project_member_id,
                        team_member_id=candidate.team_member_id,
                        assigned_by=batch.actor_id,
                    )
            except Exception as e:
                raise ImportWriteError(
                    f"Row {candidate.row_number}: could not insert task ({type(e).__name__})"
                ) from e

            result.task_ids.append(task_id)
            result.sort_orders.append(sort_order)

        return result


class CommitCoordinator:
    """
    Run one import batch to Committed or RolledBack.

    The accelerated strategy runs inside a savepoint. If it is disabled,
    absent, or fails, the savepoint is rolled back and the direct strategy
    runs in the same transaction. Any error from the direct strategy rolls
    back the whole transaction, including earlier identity provisioning.
    """

    def __init__(
        self,
        accelerated: Optional[ImportStrategy] = None,
        direct: Optional[ImportStrategy] = None,
    ):
        self.accelerated = accelerated or AcceleratedImportStrategy()
        self.direct = direct or DirectImportStrategy()

    def execute(
        self,
        db: Session,
        batch: ImportBatch,
        before_commit: Optional[Callable[[StrategyResult], None]] = None,
    ) -> StrategyResult:
        """
        Write the batch and commit.

        Args:
            db: Session whose transaction covers the whole invocation
            batch: Validated and identity-enriched candidates
            before_commit: Called with the result inside the transaction,
                e.g. to write the audit row

        Raises:
            ImportWriteError: A direct insert failed; nothing was committed
        """
        try:
            result = self._try_accelerated(db, batch)
            if result is None:
                result = self.direct.attempt_import(db, batch)
            if before_commit is not None:
                before_commit(result)
            db.commit()
        except Exception:
            db.rollback()
            logger.error(
                "Import rolled back",
                extra={"project_id": str(batch.project.id), "tasks": len(batch.candidates)},
                exc_info=True,
            )
            raise

        logger.info(
            "Import committed",
            extra={
                "project_id": str(batch.project.id),
                "strategy": result.strategy,
                "tasks": len(batch.candidates),
            },
        )
        return result

    def _try_accelerated(self, db: Session, batch: ImportBatch) -> Optional[StrategyResult]:
        if not settings.enable_import_accelerator:
            return None
        if not self.accelerated.is_available(db):
            logger.debug("Bulk import routine not available, using direct inserts")
            return None

        savepoint = db.begin_nested()
        try:
            result = self.accelerated.attempt_import(db, batch)
            savepoint.commit()
            return result
        except Exception as e:
            savepoint.rollback()
            logger.warning(
                f"Accelerated import failed, falling back to direct inserts: {type(e).__name__}: {e}",
                extra={"project_id": str(batch.project.id)},
            )
            MetricsService.emit_import_metric(
                BusinessMetric.IMPORT_ACCELERATOR_FALLBACK,
                project_id=batch.project.id,
                user_id=batch.actor_id,
                reason=type(e).__name__,
            )
            return None
