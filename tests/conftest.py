from __future__ import annotations

from typing import Generator
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from taskimport.main import app
from taskimport.common.models import (
    Base,
    Team,
    User,
    TeamMember,
    Project,
    ProjectMember,
    TaskPriority,
    TaskStatus,
)
from taskimport.imports.store import ProjectContext

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite:///:memory:"
engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite defers BEGIN until the first DML statement, which breaks SAVEPOINT.
# Let SQLAlchemy emit BEGIN itself.
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with dependency overrides."""

    def get_test_db():
        yield db

    from taskimport.common.db import get_db

    app.dependency_overrides[get_db] = get_test_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def test_team(db: Session) -> Team:
    team = Team(id=uuid4(), name="Test Team")
    db.add(team)
    db.commit()
    db.refresh(team)
    return team


@pytest.fixture
def test_user(db: Session, test_team: Team) -> User:
    """Create the importing user as an active member of the team."""
    user = User(id=uuid4(), email="owner@example.com", name="Owner", is_active=True)
    db.add(user)
    db.flush()

    db.add(TeamMember(id=uuid4(), team_id=test_team.id, user_id=user.id, active=True))
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_project(db: Session, test_team: Team) -> Project:
    project = Project(id=uuid4(), team_id=test_team.id, name="Launch Plan")
    db.add(project)
    db.flush()

    for index, (name, category, is_done) in enumerate(
        [("To Do", "todo", False), ("In Progress", "doing", False), ("Done", "done", True)]
    ):
        db.add(
            TaskStatus(
                id=uuid4(),
                project_id=project.id,
                name=name,
                category=category,
                is_done=is_done,
                sort_order=index,
            )
        )

    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def project_context(test_project: Project, priorities) -> ProjectContext:
    """Target project; the priority vocabulary is seeded alongside it."""
    return ProjectContext(id=test_project.id, team_id=test_project.team_id, name=test_project.name)


@pytest.fixture
def priorities(db: Session) -> dict[str, TaskPriority]:
    created = {}
    for value, (name, color) in enumerate(
        [("Low", "#75c997"), ("Medium", "#fbc84c"), ("High", "#f37070")]
    ):
        priority = TaskPriority(id=uuid4(), name=name, value=value, color_code=color)
        db.add(priority)
        created[name] = priority
    db.commit()
    return created


def _add_member(
    db: Session, team: Team, email: str, project: Project | None = None
) -> tuple[TeamMember, ProjectMember | None]:
    user = User(id=uuid4(), email=email, name=email.split("@")[0], is_active=True)
    db.add(user)
    db.flush()

    team_member = TeamMember(id=uuid4(), team_id=team.id, user_id=user.id, active=True)
    db.add(team_member)
    db.flush()

    project_member = None
    if project is not None:
        project_member = ProjectMember(
            id=uuid4(), project_id=project.id, team_member_id=team_member.id
        )
        db.add(project_member)

    db.commit()
    return team_member, project_member


@pytest.fixture
def project_member(db: Session, test_team: Team, test_project: Project):
    """Team member a@x.com, also a member of the project (M1)."""
    return _add_member(db, test_team, "a@x.com", test_project)


@pytest.fixture
def team_only_member(db: Session, test_team: Team):
    """Team member b@x.com who is not on the project."""
    return _add_member(db, test_team, "b@x.com")


@pytest.fixture
def import_setup(test_user, test_project, priorities, project_member, team_only_member):
    """Everything an import needs: actor, project, vocabulary, members."""
    return {
        "user": test_user,
        "project": test_project,
        "priorities": priorities,
        "project_member": project_member,
        "team_only_member": team_only_member,
    }


@pytest.fixture
def authenticated_user_token(test_user: User) -> str:
    from taskimport.auth.utils import create_access_token

    return create_access_token({"sub": str(test_user.id), "user_id": str(test_user.id)})


@pytest.fixture
def auth_headers(authenticated_user_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {authenticated_user_token}"}
