"""Models package - exports all models.

Models are organized into:
- base: Base class and metadata
- iam: teams, users, team membership, audit log
- projects: projects, project members, task vocabulary, tasks
"""

from __future__ import annotations

from taskimport.common.models.base import Base, metadata, NAMING_CONVENTION
from taskimport.common.models.iam import Team, User, TeamMember, AuditLog
from taskimport.common.models.projects import (
    Project,
    ProjectMember,
    TaskPriority,
    TaskStatus,
    Task,
    TaskAssignee,
)

__all__ = [
    "Base",
    "metadata",
    "NAMING_CONVENTION",
    "Team",
    "User",
    "TeamMember",
    "AuditLog",
    "Project",
    "ProjectMember",
    "TaskPriority",
    "TaskStatus",
    "Task",
    "TaskAssignee",
]
