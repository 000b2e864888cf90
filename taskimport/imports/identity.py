"""Assignee identity resolution for task imports."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from taskimport.core.config import settings
from taskimport.imports.coercers import coerce_uuid
from taskimport.imports.mapping import (
    IdentityAction,
    IdentityMapping,
    is_valid_email,
    normalize_identity,
)
from taskimport.imports.projector import CandidateTask
from taskimport.imports.store import (
    MemberRow,
    ProjectContext,
    call_json_routine,
    fetch_team_members,
    routine_exists,
)
from taskimport.imports.validators import ImportIssue

logger = logging.getLogger(__name__)


@dataclass
class IdentityResolution:
    """Per-invocation identity maps plus resolution warnings."""

    team_member_refs: dict[str, UUID] = field(default_factory=dict)
    project_member_refs: dict[str, UUID] = field(default_factory=dict)
    warnings: list[ImportIssue] = field(default_factory=list)
    provisioned: list[str] = field(default_factory=list)

    def is_assignable(self, identity: Optional[str]) -> bool:
        key = normalize_identity(identity)
        return key in self.team_member_refs and key in self.project_member_refs


@dataclass
class _Lookup:
    """How one identity is looked up in the team."""

    email: Optional[str] = None
    member_ref: Optional[UUID] = None


class IdentityResolver:
    """
    Resolve assignee identities to team and project memberships.

    All identities are resolved with a single member query after optional
    provisioning of identities marked for creation.
    """

    def __init__(self, db: Session, project: ProjectContext, actor_id: UUID):
        self.db = db
        self.project = project
        self.actor_id = actor_id

    def resolve(
        self,
        candidates: list[CandidateTask],
        identity_mappings: list[IdentityMapping],
    ) -> IdentityResolution:
        resolution = IdentityResolution()
        mappings = {m.key: m for m in identity_mappings}

        referenced: dict[str, int] = {}
        for candidate in candidates:
            key = normalize_identity(candidate.assignee_identity)
            if key and key not in referenced:
                referenced[key] = candidate.row_number

        identities = list(referenced) + [key for key in mappings if key not in referenced]

        lookups: dict[str, _Lookup] = {}
        to_create: list[IdentityMapping] = []

        for key in identities:
            mapping = mappings.get(key)

            if mapping is None:
                if is_valid_email(key):
                    lookups[key] = _Lookup(email=key)
                else:
                    resolution.warnings.append(
                        _identity_warning(
                            key,
                            referenced.get(key),
                            f"No identity mapping for assignee '{key}'; task imported unassigned",
                        )
                    )
                continue

            if mapping.action == IdentityAction.SKIP:
                continue

            if mapping.action == IdentityAction.CREATE:
                to_create.append(mapping)
                lookups[key] = _Lookup(email=mapping.resolution_email)
                continue

            member_ref = None
            if mapping.target_member_ref:
                ref = coerce_uuid(mapping.target_member_ref)
                if ref.success:
                    member_ref = ref.coerced_value
            email = mapping.resolution_email

            if member_ref is None and email is None:
                resolution.warnings.append(
                    _identity_warning(
                        key,
                        referenced.get(key),
                        f"Mapped member for '{mapping.source_identity}' is not a valid reference",
                    )
                )
                continue
            lookups[key] = _Lookup(email=email, member_ref=member_ref)

        if to_create:
            resolution.provisioned = self._provision(to_create)

        rows = fetch_team_members(
            self.db,
            self.project,
            emails=[lookup.email for lookup in lookups.values() if lookup.email],
            member_refs=[lookup.member_ref for lookup in lookups.values() if lookup.member_ref],
        )
        by_ref = {row.team_member_id: row for row in rows}
        by_email = {row.email: row for row in rows}
        created = {m.key for m in to_create}

        for key, lookup in lookups.items():
            row: Optional[MemberRow] = None
            if lookup.member_ref is not None:
                row = by_ref.get(lookup.member_ref)
            if row is None and lookup.email:
                row = by_email.get(lookup.email)

            if row is None and key in created:
                # Provisioning was skipped or failed; already logged
                continue
            if row is None:
                resolution.warnings.append(
                    _identity_warning(
                        key,
                        referenced.get(key),
                        f"Assignee '{key}' is not a member of the team; task imported unassigned",
                    )
                )
                continue

            resolution.team_member_refs[key] = row.team_member_id
            if row.project_member_id is None:
                resolution.warnings.append(
                    _identity_warning(
                        key,
                        referenced.get(key),
                        f"Assignee '{key}' is not a member of project '{self.project.name}'; task imported unassigned",
                    )
                )
                continue
            resolution.project_member_refs[key] = row.project_member_id

        for candidate in candidates:
            key = normalize_identity(candidate.assignee_identity)
            if key and resolution.is_assignable(key):
                candidate.team_member_id = resolution.team_member_refs[key]
                candidate.project_member_id = resolution.project_member_refs[key]

        return resolution

    def _provision(self, mappings: list[IdentityMapping]) -> list[str]:
        """
        Create users for identities marked 'create' through the store routine.

        Provisioning never fails the import: an absent or failing routine is
        logged and the affected identities stay unassigned.
        """
        routine = settings.user_provision_routine
        if not routine_exists(self.db, routine):
            logger.info(
                "User provisioning routine not available, skipping creation",
                extra={"project_id": str(self.project.id), "count": len(mappings)},
            )
            return []

        payload = [
            {
                "csv_user": m.source_identity,
                "email": m.resolution_email,
                "action": m.action.value,
            }
            for m in mappings
        ]

        savepoint = self.db.begin_nested()
        try:
            result = call_json_routine(
                self.db, routine, self.project.team_id, payload, self.actor_id
            )
            savepoint.commit()
        except Exception as e:
            savepoint.rollback()
            logger.warning(
                f"User provisioning skipped due to store error: {type(e).__name__}",
                extra={"project_id": str(self.project.id)},
            )
            return []

        if isinstance(result, dict) and result.get("errors"):
            logger.info(
                "User provisioning reported errors",
                extra={"project_id": str(self.project.id), "errors": len(result["errors"])},
            )

        return [p["email"] for p in payload]


def _identity_warning(identity: str, row_number: Optional[int], message: str) -> ImportIssue:
    return ImportIssue(
        field="assignee",
        issue_type="identity",
        row_number=row_number,
        original_value=identity,
        message=message,
    )
