"""Tests for commit strategies and the commit coordinator."""

from __future__ import annotations

from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from taskimport.common.models import Project, Task, TaskAssignee, TaskPriority, TaskStatus, User
from taskimport.core.config import settings
from taskimport.core.metrics_service import MetricsService
from taskimport.imports import strategies as strategies_module
from taskimport.imports.identity import IdentityResolver
from taskimport.imports.mapping import (
    FieldMapping,
    TargetField,
    ValueFieldType,
    ValueMapping,
)
from taskimport.imports.projector import CandidateTask, project_rows
from taskimport.imports.store import ProjectContext, insert_task
from taskimport.imports.strategies import (
    AcceleratedImportStrategy,
    AcceleratorError,
    CommitCoordinator,
    DirectImportStrategy,
    ImportBatch,
    ImportStrategy,
    ImportWriteError,
    StrategyResult,
)
from taskimport.imports.validators import validate_candidates

FIELDS = [
    FieldMapping("Title", TargetField.NAME),
    FieldMapping("Owner", TargetField.ASSIGNEE),
    FieldMapping("Sev", TargetField.PRIORITY),
    FieldMapping("Key", TargetField.ID),
]
VALUES = [ValueMapping("P1", "High", ValueFieldType.PRIORITY)]

ROWS = [
    {"Title": "First", "Owner": "a@x.com", "Sev": "P1"},
    {"Title": ""},
    {"Title": "Second", "Sev": "P1"},
    {"Title": "Third", "Owner": "b@x.com"},
]


def _batch(db, project: ProjectContext, actor_id: UUID, rows=ROWS) -> ImportBatch:
    projection = project_rows(rows, FIELDS, VALUES)
    validation = validate_candidates(db, projection, project)
    assert validation.is_valid
    resolution = IdentityResolver(db, project, actor_id).resolve(projection.candidates, [])
    return ImportBatch(
        project=project,
        actor_id=actor_id,
        candidates=projection.candidates,
        warnings=resolution.warnings,
    )


def _project_tasks(db, project_id):
    return db.execute(
        select(Task).where(Task.project_id == project_id).order_by(Task.sort_order)
    ).scalars().all()


class FailingAccelerator(ImportStrategy):
    """Writes part of the batch, then fails."""

    name = "accelerated"

    def is_available(self, db):
        return True

    def attempt_import(self, db, batch):
        insert_task(
            db,
            project_id=batch.project.id,
            name="partial",
            description=None,
            priority_id=None,
            status_id=None,
            sort_order=99,
            end_date=None,
            reporter_id=batch.actor_id,
        )
        raise RuntimeError("function create_tasks_from_csv_import(uuid, json, uuid) failed")


class StaticAccelerator(ImportStrategy):
    name = "accelerated"

    def __init__(self, payload):
        self.payload = payload
        self.calls = 0

    def is_available(self, db):
        return True

    def attempt_import(self, db, batch):
        self.calls += 1
        if not self.payload:
            raise AcceleratorError("returned no data")
        return StrategyResult(strategy=self.name, payload=self.payload)


class AvailableAccelerator(AcceleratedImportStrategy):
    """The bulk routine reported as installed."""

    def is_available(self, db):
        return True


@pytest.fixture
def fallback_metrics(monkeypatch):
    emitted = []
    monkeypatch.setattr(
        MetricsService,
        "emit_import_metric",
        staticmethod(lambda metric_name, **kwargs: emitted.append(metric_name)),
    )
    return emitted


class TestDirectImportStrategy:
    def test_inserts_in_order_with_increasing_positions(self, db, import_setup, project_context):
        actor = import_setup["user"]
        existing = insert_task(
            db, project_context.id, "Existing", None, None, None, 4, None, actor.id
        )
        db.commit()

        batch = _batch(db, project_context, actor.id)
        result = CommitCoordinator().execute(db, batch)

        assert result.strategy == "direct"
        assert result.sort_orders == [5, 6, 7]
        tasks = _project_tasks(db, project_context.id)
        assert [t.id for t in tasks][0] == existing
        assert [(t.name, t.sort_order) for t in tasks[1:]] == [
            ("First", 5),
            ("Second", 6),
            ("Third", 7),
        ]
        assert [t.id for t in tasks[1:]] == result.task_ids

    def test_positions_start_at_zero_in_empty_project(self, db, import_setup, project_context):
        batch = _batch(db, project_context, import_setup["user"].id)

        result = CommitCoordinator().execute(db, batch)

        assert result.sort_orders == [0, 1, 2]

    def test_priority_status_and_reporter(self, db, import_setup, project_context):
        priorities = import_setup["priorities"]
        todo = db.execute(
            select(TaskStatus).where(
                TaskStatus.project_id == project_context.id, TaskStatus.name == "To Do"
            )
        ).scalar_one()

        CommitCoordinator().execute(db, _batch(db, project_context, import_setup["user"].id))

        tasks = _project_tasks(db, project_context.id)
        assert [t.priority_id for t in tasks] == [
            priorities["High"].id,
            priorities["High"].id,
            priorities["Medium"].id,
        ]
        assert {t.status_id for t in tasks} == {todo.id}
        assert {t.reporter_id for t in tasks} == {import_setup["user"].id}

    def test_assignee_linked_only_when_assignable(self, db, import_setup, project_context):
        team_member, project_member = import_setup["project_member"]

        result = CommitCoordinator().execute(
            db, _batch(db, project_context, import_setup["user"].id)
        )

        links = db.execute(select(TaskAssignee)).scalars().all()
        assert len(links) == 1
        assert links[0].task_id == result.task_ids[0]
        assert links[0].team_member_id == team_member.id
        assert links[0].project_member_id == project_member.id
        assert links[0].assigned_by == import_setup["user"].id

    def test_canonical_suggested_id_used_verbatim(self, db, import_setup, project_context):
        key = uuid4()
        rows = [{"Title": "Keyed", "Key": str(key)}, {"Title": "Unkeyed", "Key": "T-2"}]

        result = CommitCoordinator().execute(
            db, _batch(db, project_context, import_setup["user"].id, rows)
        )

        assert result.task_ids[0] == key
        assert result.task_ids[1] != key
        assert db.get(Task, key).name == "Keyed"

    def test_unknown_vocabulary_falls_back_to_defaults(self, db, import_setup, project_context):
        priorities = import_setup["priorities"]
        todo = db.execute(
            select(TaskStatus).where(
                TaskStatus.project_id == project_context.id, TaskStatus.name == "To Do"
            )
        ).scalar_one()
        candidates = [
            CandidateTask(source_row_index=0, name="Known", priority="High", status="Done"),
            CandidateTask(source_row_index=1, name="Unknown", priority="Ghost", status="Limbo"),
        ]
        batch = ImportBatch(
            project=project_context, actor_id=import_setup["user"].id, candidates=candidates
        )

        DirectImportStrategy().attempt_import(db, batch)

        tasks = _project_tasks(db, project_context.id)
        assert tasks[0].priority_id == priorities["High"].id
        assert tasks[1].priority_id == priorities["Medium"].id
        assert tasks[1].status_id == todo.id

    def test_store_defined_priority_stored(self, db, import_setup, project_context):
        urgent = TaskPriority(id=uuid4(), name="Urgent", value=3)
        db.add(urgent)
        db.commit()
        candidates = [CandidateTask(source_row_index=0, name="Hotfix", priority="urgent", status="To Do")]
        batch = ImportBatch(
            project=project_context, actor_id=import_setup["user"].id, candidates=candidates
        )

        DirectImportStrategy().attempt_import(db, batch)

        assert _project_tasks(db, project_context.id)[0].priority_id == urgent.id


class TestAtomicity:
    def test_insert_failure_rolls_back_everything(self, db, import_setup, project_context):
        actor = import_setup["user"]
        key = uuid4()
        insert_task(db, project_context.id, "Already there", None, None, None, 0, None, actor.id, task_id=key)
        db.commit()

        rows = [{"Title": "New one"}, {"Title": "Clash", "Key": str(key)}]
        batch = _batch(db, project_context, actor.id, rows)
        # Written earlier in the same transaction, e.g. by identity provisioning
        db.add(User(id=uuid4(), email="provisioned@x.com", is_active=True))
        db.flush()

        with pytest.raises(ImportWriteError, match="Row 2"):
            CommitCoordinator().execute(db, batch)

        assert [t.name for t in _project_tasks(db, project_context.id)] == ["Already there"]
        assert db.execute(
            select(User).where(User.email == "provisioned@x.com")
        ).scalar_one_or_none() is None
        assert db.execute(select(TaskAssignee)).scalars().all() == []


class TestAcceleratedPath:
    def test_probe_is_false_outside_postgresql(self, db):
        assert AcceleratedImportStrategy().is_available(db) is False

    def test_routine_called_with_enriched_batch(self, db, import_setup, project_context, monkeypatch):
        received = {}

        def routine(session, name, project_id, tasks, actor_id):
            received.update(name=name, project_id=project_id, tasks=tasks, actor_id=actor_id)
            return {"imported_count": len(tasks)}

        monkeypatch.setattr(strategies_module, "call_json_routine", routine)
        batch = _batch(db, project_context, import_setup["user"].id)

        result = AcceleratedImportStrategy().attempt_import(db, batch)

        team_member, project_member = import_setup["project_member"]
        assert result.payload == {"imported_count": 3}
        assert received["name"] == "create_tasks_from_csv_import"
        assert received["project_id"] == project_context.id
        assert [t["name"] for t in received["tasks"]] == ["First", "Second", "Third"]
        assert received["tasks"][0]["team_member_id"] == str(team_member.id)
        assert received["tasks"][0]["project_member_id"] == str(project_member.id)
        assert received["tasks"][2]["team_member_id"] is None

    def test_empty_result_raises(self, db, import_setup, project_context, monkeypatch):
        monkeypatch.setattr(strategies_module, "call_json_routine", lambda *args: None)
        batch = _batch(db, project_context, import_setup["user"].id)

        with pytest.raises(AcceleratorError):
            AcceleratedImportStrategy().attempt_import(db, batch)

    @pytest.mark.parametrize("payload", [[{"imported_count": 3}], 3, "ok"])
    def test_non_object_result_raises(self, db, import_setup, project_context, monkeypatch, payload):
        monkeypatch.setattr(strategies_module, "call_json_routine", lambda *args: payload)
        batch = _batch(db, project_context, import_setup["user"].id)

        with pytest.raises(AcceleratorError, match="no usable result"):
            AcceleratedImportStrategy().attempt_import(db, batch)

    def test_non_object_result_falls_back(
        self, db, import_setup, project_context, monkeypatch, fallback_metrics
    ):
        monkeypatch.setattr(
            strategies_module, "call_json_routine", lambda *args: [{"imported_count": 3}]
        )

        result = CommitCoordinator(accelerated=AvailableAccelerator()).execute(
            db, _batch(db, project_context, import_setup["user"].id)
        )

        assert result.strategy == "direct"
        assert [t.name for t in _project_tasks(db, project_context.id)] == ["First", "Second", "Third"]
        assert fallback_metrics == ["ImportAcceleratorFallback"]

    def test_accelerated_result_used_when_available(self, db, import_setup, project_context, fallback_metrics):
        accelerator = StaticAccelerator({"body": {"imported_count": 3}})

        result = CommitCoordinator(accelerated=accelerator).execute(
            db, _batch(db, project_context, import_setup["user"].id)
        )

        assert result.strategy == "accelerated"
        assert result.payload == {"body": {"imported_count": 3}}
        assert _project_tasks(db, project_context.id) == []
        assert fallback_metrics == []

    def test_accelerator_disabled_by_setting(self, db, import_setup, project_context, monkeypatch):
        monkeypatch.setattr(settings, "enable_import_accelerator", False)
        accelerator = StaticAccelerator({"imported_count": 3})

        result = CommitCoordinator(accelerated=accelerator).execute(
            db, _batch(db, project_context, import_setup["user"].id)
        )

        assert accelerator.calls == 0
        assert result.strategy == "direct"

    def test_empty_result_falls_back(self, db, import_setup, project_context, fallback_metrics):
        result = CommitCoordinator(accelerated=StaticAccelerator({})).execute(
            db, _batch(db, project_context, import_setup["user"].id)
        )

        assert result.strategy == "direct"
        assert len(result.task_ids) == 3
        assert fallback_metrics == ["ImportAcceleratorFallback"]

    def test_failure_falls_back_and_discards_partial_writes(
        self, db, import_setup, project_context, fallback_metrics
    ):
        result = CommitCoordinator(accelerated=FailingAccelerator()).execute(
            db, _batch(db, project_context, import_setup["user"].id)
        )

        assert result.strategy == "direct"
        names = [t.name for t in _project_tasks(db, project_context.id)]
        assert names == ["First", "Second", "Third"]
        assert fallback_metrics == ["ImportAcceleratorFallback"]

    def test_fallback_matches_direct_only(self, db, import_setup, project_context, fallback_metrics):
        actor = import_setup["user"]
        other = Project(id=uuid4(), team_id=project_context.team_id, name="Second Project")
        db.add(other)
        db.flush()
        db.add(TaskStatus(id=uuid4(), project_id=other.id, name="To Do"))
        db.commit()
        other_context = ProjectContext(id=other.id, team_id=other.team_id, name=other.name)

        CommitCoordinator().execute(db, _batch(db, project_context, actor.id))
        CommitCoordinator(accelerated=FailingAccelerator()).execute(
            db, _batch(db, other_context, actor.id)
        )

        def shape(project_id):
            return [
                (t.name, t.sort_order, t.priority_id, t.description, t.end_date)
                for t in _project_tasks(db, project_id)
            ]

        assert shape(project_context.id) == shape(other.id)
