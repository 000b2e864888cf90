"""Store access for task imports: lookups, routine probes and inserts."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import func, or_, select, text
from sqlalchemy.orm import Session

from taskimport.common.db import is_postgresql
from taskimport.common.models import (
    Project,
    ProjectMember,
    Task,
    TaskAssignee,
    TaskPriority,
    TaskStatus,
    TeamMember,
    User,
)
from taskimport.core.config import settings

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class ProjectContext:
    """Target project of one import invocation."""

    id: UUID
    team_id: UUID
    name: str


@dataclass(frozen=True)
class MemberRow:
    """Team member of the project's team, with project membership if any."""

    team_member_id: UUID
    project_member_id: Optional[UUID]
    email: str


def load_project_for_actor(
    db: Session, project_id: UUID, actor_id: UUID
) -> Optional[ProjectContext]:
    """Return the project if the actor is an active member of its team."""
    row = db.execute(
        select(Project.id, Project.team_id, Project.name)
        .join(TeamMember, TeamMember.team_id == Project.team_id)
        .where(
            Project.id == project_id,
            TeamMember.user_id == actor_id,
            TeamMember.active.is_(True),
        )
        .limit(1)
    ).first()
    if row is None:
        return None
    return ProjectContext(id=row.id, team_id=row.team_id, name=row.name)


def fetch_status_names(db: Session, project_id: UUID) -> dict[str, str]:
    """Lower-cased status name -> display name for one project."""
    rows = db.execute(
        select(TaskStatus.name).where(TaskStatus.project_id == project_id)
    ).scalars().all()
    return {name.lower(): name for name in rows}


def fetch_priority_ids(db: Session, names: Iterable[str]) -> dict[str, UUID]:
    lowered = sorted({name.strip().lower() for name in names if name})
    if not lowered:
        return {}
    rows = db.execute(
        select(func.lower(TaskPriority.name), TaskPriority.id).where(
            func.lower(TaskPriority.name).in_(lowered)
        )
    ).all()
    return {name: priority_id for name, priority_id in rows}


def fetch_status_ids(
    db: Session, project_id: UUID, names: Iterable[str]
) -> dict[str, UUID]:
    lowered = sorted({name.strip().lower() for name in names if name})
    if not lowered:
        return {}
    rows = db.execute(
        select(func.lower(TaskStatus.name), TaskStatus.id).where(
            TaskStatus.project_id == project_id,
            func.lower(TaskStatus.name).in_(lowered),
        )
    ).all()
    return {name: status_id for name, status_id in rows}


def fetch_team_members(
    db: Session,
    project: ProjectContext,
    emails: Iterable[str],
    member_refs: Iterable[UUID],
) -> list[MemberRow]:
    """
    Resolve emails and team member ids within the project's team in one query.

    Project membership comes from an outer join, so team members that are not
    on the project are returned with project_member_id=None.
    """
    emails = sorted({e.lower() for e in emails if e})
    member_refs = sorted(set(member_refs), key=str)
    if not emails and not member_refs:
        return []

    conditions = []
    if emails:
        conditions.append(func.lower(User.email).in_(emails))
    if member_refs:
        conditions.append(TeamMember.id.in_(member_refs))

    rows = db.execute(
        select(TeamMember.id, ProjectMember.id, func.lower(User.email))
        .join(User, User.id == TeamMember.user_id)
        .outerjoin(
            ProjectMember,
            (ProjectMember.team_member_id == TeamMember.id)
            & (ProjectMember.project_id == project.id),
        )
        .where(TeamMember.team_id == project.team_id, or_(*conditions))
    ).all()

    return [
        MemberRow(team_member_id=tm_id, project_member_id=pm_id, email=email)
        for tm_id, pm_id, email in rows
    ]


def next_sort_order(db: Session, project_id: UUID) -> int:
    current = db.execute(
        select(func.coalesce(func.max(Task.sort_order), -1)).where(
            Task.project_id == project_id
        )
    ).scalar_one()
    return int(current) + 1


def insert_task(
    db: Session,
    project_id: UUID,
    name: str,
    description: Optional[str],
    priority_id: Optional[UUID],
    status_id: Optional[UUID],
    sort_order: int,
    end_date: Optional[date],
    reporter_id: UUID,
    task_id: Optional[UUID] = None,
) -> UUID:
    task = Task(
        project_id=project_id,
        name=name,
        description=description,
        priority_id=priority_id,
        status_id=status_id,
        sort_order=sort_order,
        end_date=end_date,
        reporter_id=reporter_id,
    )
    if task_id is not None:
        task.id = task_id
    db.add(task)
    db.flush()
    return task.id


def insert_assignee(
    db: Session,
    task_id: UUID,
    project_member_id: UUID,
    team_member_id: UUID,
    assigned_by: UUID,
) -> None:
    db.add(
        TaskAssignee(
            task_id=task_id,
            project_member_id=project_member_id,
            team_member_id=team_member_id,
            assigned_by=assigned_by,
        )
    )
    db.flush()


def _qualified_routine(name: str) -> str:
    schema = settings.import_routine_schema
    if not _IDENTIFIER.match(name) or not _IDENTIFIER.match(schema):
        raise ValueError(f"Invalid routine name: {schema}.{name}")
    return f"{schema}.{name}"


def routine_exists(db: Session, name: str) -> bool:
    """
    Probe for a server-side routine.

    Only PostgreSQL can host the import routines; any other dialect reports
    the routine as absent without issuing a query.
    """
    if not is_postgresql(db):
        return False

    return bool(
        db.execute(
            text(
                "SELECT EXISTS("
                " SELECT 1 FROM pg_proc p"
                " JOIN pg_namespace n ON n.oid = p.pronamespace"
                " WHERE p.proname = :name AND n.nspname = :schema"
                ")"
            ),
            {"name": name, "schema": settings.import_routine_schema},
        ).scalar()
    )


def call_json_routine(db: Session, name: str, *args: Any) -> Any:
    """
    Call a routine that takes scalar/JSON arguments and returns JSON.

    dict and list arguments are serialized and cast to json.
    """
    placeholders = []
    params: dict[str, Any] = {}
    for index, arg in enumerate(args):
        key = f"p{index}"
        if isinstance(arg, (dict, list)):
            placeholders.append(f"CAST(:{key} AS json)")
            params[key] = json.dumps(arg, default=str)
        else:
            placeholders.append(f":{key}")
            params[key] = str(arg) if isinstance(arg, UUID) else arg

    statement = text(f"SELECT {_qualified_routine(name)}({', '.join(placeholders)})")
    result = db.execute(statement, params).scalar()
    if isinstance(result, str):
        return json.loads(result)
    return result


def fetch_template(db: Session, project: ProjectContext) -> dict[str, Any]:
    """Statuses, priorities and team members the import wizard offers."""
    statuses = db.execute(
        select(TaskStatus)
        .where(TaskStatus.project_id == project.id)
        .order_by(TaskStatus.sort_order, TaskStatus.name)
    ).scalars().all()
    priorities = db.execute(
        select(TaskPriority).order_by(TaskPriority.value)
    ).scalars().all()
    members = db.execute(
        select(TeamMember.id, User.name, User.email, User.avatar_url)
        .join(User, User.id == TeamMember.user_id)
        .where(TeamMember.team_id == project.team_id, TeamMember.active.is_(True))
        .order_by(User.email)
    ).all()

    return {
        "project_statuses": [
            {
                "id": s.id,
                "name": s.name,
                "category": s.category,
                "sort_order": s.sort_order,
                "is_done": s.is_done,
            }
            for s in statuses
        ],
        "priorities": [
            {"id": p.id, "name": p.name, "value": p.value, "color": p.color_code}
            for p in priorities
        ],
        "team_members": [
            {"id": m.id, "name": m.name or m.email, "email": m.email, "avatar_url": m.avatar_url}
            for m in members
        ],
    }
