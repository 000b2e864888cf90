"""Tests for assignee identity resolution."""

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import select

from taskimport.common.models import ProjectMember, TeamMember, User
from taskimport.imports import identity as identity_module
from taskimport.imports.identity import IdentityResolver
from taskimport.imports.mapping import (
    FieldMapping,
    IdentityAction,
    IdentityMapping,
    TargetField,
)
from taskimport.imports.projector import project_rows

FIELDS = [
    FieldMapping("Title", TargetField.NAME),
    FieldMapping("Owner", TargetField.ASSIGNEE),
]


def _candidates(*owners):
    rows = [{"Title": f"Task {i}", "Owner": owner} for i, owner in enumerate(owners)]
    return project_rows(rows, FIELDS, []).candidates


@pytest.fixture
def resolver(db, import_setup, project_context):
    return IdentityResolver(db, project_context, import_setup["user"].id)


class TestIdentityResolver:
    def test_email_without_mapping_resolves(self, resolver, import_setup):
        team_member, project_member = import_setup["project_member"]
        candidates = _candidates("A@X.com", None)

        resolution = resolver.resolve(candidates, [])

        assert resolution.warnings == []
        assert candidates[0].is_assignable
        assert candidates[0].team_member_id == team_member.id
        assert candidates[0].project_member_id == project_member.id
        assert not candidates[1].is_assignable

    def test_non_email_without_mapping_warns(self, resolver):
        candidates = _candidates("Alice")

        resolution = resolver.resolve(candidates, [])

        assert not candidates[0].is_assignable
        assert len(resolution.warnings) == 1
        assert resolution.warnings[0].field == "assignee"
        assert resolution.warnings[0].row_number == 1

    def test_skip_leaves_unassigned_without_warning(self, resolver):
        candidates = _candidates("a@x.com")

        resolution = resolver.resolve(
            candidates, [IdentityMapping("a@x.com", IdentityAction.SKIP)]
        )

        assert resolution.warnings == []
        assert not candidates[0].is_assignable

    def test_map_by_member_ref(self, resolver, import_setup):
        team_member, _ = import_setup["project_member"]
        candidates = _candidates("Alice", "alice")

        resolution = resolver.resolve(
            candidates,
            [IdentityMapping("Alice", IdentityAction.MAP, target_member_ref=str(team_member.id))],
        )

        assert resolution.warnings == []
        assert all(c.team_member_id == team_member.id for c in candidates)

    def test_map_by_email(self, resolver, import_setup):
        team_member, _ = import_setup["project_member"]
        candidates = _candidates("Alice")

        resolver.resolve(
            candidates,
            [IdentityMapping("Alice", IdentityAction.MAP, target_identity_email="a@x.com")],
        )

        assert candidates[0].team_member_id == team_member.id

    def test_unresolved_map_warns(self, resolver):
        candidates = _candidates("Alice")

        resolution = resolver.resolve(
            candidates,
            [IdentityMapping("Alice", IdentityAction.MAP, target_identity_email="nobody@x.com")],
        )

        assert not candidates[0].is_assignable
        assert "not a member of the team" in resolution.warnings[0].message

    def test_member_of_other_team_not_resolved(self, db, resolver):
        other_user = User(id=uuid4(), email="c@x.com", is_active=True)
        db.add(other_user)
        db.commit()
        candidates = _candidates("c@x.com")

        resolution = resolver.resolve(candidates, [])

        assert not candidates[0].is_assignable
        assert len(resolution.warnings) == 1

    def test_team_member_outside_project_warns(self, resolver, import_setup):
        team_member, _ = import_setup["team_only_member"]
        candidates = _candidates("b@x.com")

        resolution = resolver.resolve(candidates, [])

        assert resolution.team_member_refs["b@x.com"] == team_member.id
        assert "b@x.com" not in resolution.project_member_refs
        assert not candidates[0].is_assignable
        assert "not a member of project" in resolution.warnings[0].message

    def test_single_member_query(self, resolver, monkeypatch):
        calls = []
        original = identity_module.fetch_team_members

        def counting(*args, **kwargs):
            calls.append(kwargs)
            return original(*args, **kwargs)

        monkeypatch.setattr(identity_module, "fetch_team_members", counting)

        resolver.resolve(_candidates("a@x.com", "b@x.com", "a@x.com", "c@x.com"), [])

        assert len(calls) == 1
        assert sorted(calls[0]["emails"]) == ["a@x.com", "b@x.com", "c@x.com"]


class TestProvisioning:
    def test_create_skipped_silently_when_routine_absent(self, resolver):
        candidates = _candidates("new@x.com")

        resolution = resolver.resolve(
            candidates,
            [IdentityMapping("new@x.com", IdentityAction.CREATE, "new@x.com")],
        )

        assert resolution.provisioned == []
        assert resolution.warnings == []
        assert not candidates[0].is_assignable

    def test_create_failure_is_swallowed(self, db, resolver, monkeypatch):
        def failing_routine(*args):
            raise RuntimeError("column users.display_name does not exist")

        monkeypatch.setattr(identity_module, "routine_exists", lambda db, name: True)
        monkeypatch.setattr(identity_module, "call_json_routine", failing_routine)
        candidates = _candidates("new@x.com")

        resolution = resolver.resolve(
            candidates,
            [IdentityMapping("new@x.com", IdentityAction.CREATE, "new@x.com")],
        )

        assert resolution.provisioned == []
        assert not candidates[0].is_assignable
        # Session remains usable
        assert db.execute(select(User).where(User.email == "a@x.com")).scalar_one()

    def test_create_through_routine(self, db, resolver, import_setup, monkeypatch):
        project = import_setup["project"]
        received = {}

        def provision(session, name, team_id, payload, actor_id):
            received.update(name=name, team_id=team_id, payload=payload, actor_id=actor_id)
            for item in payload:
                user = User(id=uuid4(), email=item["email"], is_active=True)
                session.add(user)
                session.flush()
                team_member = TeamMember(id=uuid4(), team_id=team_id, user_id=user.id)
                session.add(team_member)
                session.flush()
                session.add(
                    ProjectMember(id=uuid4(), project_id=project.id, team_member_id=team_member.id)
                )
            session.flush()
            return {"created": len(payload), "errors": []}

        monkeypatch.setattr(identity_module, "routine_exists", lambda db, name: True)
        monkeypatch.setattr(identity_module, "call_json_routine", provision)
        candidates = _candidates("New Person")

        resolution = resolver.resolve(
            candidates,
            [IdentityMapping("New Person", IdentityAction.CREATE, "new@x.com")],
        )

        assert received["name"] == "create_users_from_csv_import"
        assert received["team_id"] == project.team_id
        assert received["actor_id"] == import_setup["user"].id
        assert received["payload"] == [
            {"csv_user": "New Person", "email": "new@x.com", "action": "create"}
        ]
        assert resolution.provisioned == ["new@x.com"]
        assert candidates[0].is_assignable
