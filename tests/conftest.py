"""
Pytest fixtures for the Case & Rehabilitation Progress Engine tests.
Uses fresh in-memory SQLite for each test function.

Strategy:
- Each test gets a completely fresh database
- No shared state between tests
- Simple and reliable isolation
"""
import os
import sys
import pytest
from typing import Generator

from starlette.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from dates import add_days, today
from main import app
from models import (
    ExceptionType,
    PlanStatus,
    RehabilitationExercise,
    RehabilitationPlan,
    Team,
    User,
    UserRole,
    WorkerException,
)


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite:///:memory:"


# =============================================================================
# Database Engine & Session (Function Scope - fresh for each test)
# =============================================================================

@pytest.fixture(scope="function")
def test_engine():
    """
    Create a fresh test database engine for each test.
    Tables are created fresh, ensuring complete isolation.
    """
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # Required for in-memory SQLite to share connection
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a session for the test."""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine,
    )
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# FastAPI Test Client with DB Override
# =============================================================================

@pytest.fixture(scope="function")
def client(db_session) -> Generator[TestClient, None, None]:
    """
    Create a test client with overridden database dependency.
    All API requests use the test session.
    """
    def override_get_db():
        # DO NOT close here - fixture finalizer handles cleanup
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def test_db(db_session) -> Session:
    """Alias for db_session."""
    return db_session


# =============================================================================
# User Fixtures
# =============================================================================

def make_user(db_session: Session, username: str, role: UserRole, **kwargs) -> User:
    user = User(
        username=username,
        api_key=f"{username}_key",
        role=role,
        is_active=kwargs.pop("is_active", True),
        **kwargs,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def admin_user(db_session) -> User:
    return make_user(db_session, "test_admin", UserRole.ADMIN)


@pytest.fixture(scope="function")
def whs_user(db_session) -> User:
    return make_user(db_session, "test_whs", UserRole.WHS_CONTROL_CENTER, full_name="Jordan Blake")


@pytest.fixture(scope="function")
def clinician_user(db_session) -> User:
    return make_user(db_session, "test_clinician", UserRole.CLINICIAN, full_name="Dana Reyes")


@pytest.fixture(scope="function")
def other_clinician(db_session) -> User:
    return make_user(db_session, "other_clinician", UserRole.CLINICIAN)


@pytest.fixture(scope="function")
def supervisor_user(db_session) -> User:
    return make_user(db_session, "test_supervisor", UserRole.SUPERVISOR)


@pytest.fixture(scope="function")
def team_leader_user(db_session) -> User:
    return make_user(db_session, "test_leader", UserRole.TEAM_LEADER)


@pytest.fixture(scope="function")
def inactive_user(db_session) -> User:
    return make_user(db_session, "test_inactive", UserRole.WORKER, is_active=False)


# =============================================================================
# Team Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def test_team(db_session, team_leader_user, supervisor_user) -> Team:
    """Team led by team_leader_user and supervised by supervisor_user."""
    team = Team(
        name="Warehouse A",
        supervisor_id=supervisor_user.id,
        team_leader_id=team_leader_user.id,
    )
    db_session.add(team)
    db_session.commit()
    team_leader_user.team_id = team.id
    db_session.commit()
    db_session.refresh(team)
    return team


@pytest.fixture(scope="function")
def other_team(db_session) -> Team:
    leader = make_user(db_session, "other_leader", UserRole.TEAM_LEADER)
    team = Team(name="Warehouse B", team_leader_id=leader.id)
    db_session.add(team)
    db_session.commit()
    db_session.refresh(team)
    return team


@pytest.fixture(scope="function")
def worker_user(db_session, test_team) -> User:
    """Worker in test_team."""
    return make_user(
        db_session, "test_worker", UserRole.WORKER, full_name="Alex Chen", team_id=test_team.id
    )


# =============================================================================
# Case & Plan Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def test_case(db_session, worker_user, clinician_user, team_leader_user) -> WorkerException:
    """Injury case assigned to clinician_user, no status yet."""
    case = WorkerException(
        user_id=worker_user.id,
        team_id=worker_user.team_id,
        exception_type=ExceptionType.INJURY,
        reason="Lower back strain",
        start_date=add_days(today(), -3),
        is_active=True,
        clinician_id=clinician_user.id,
        created_by=team_leader_user.id,
    )
    db_session.add(case)
    db_session.commit()
    db_session.refresh(case)
    return case


@pytest.fixture(scope="function")
def active_plan(db_session, test_case, clinician_user) -> RehabilitationPlan:
    """Seven-day plan with two exercises that started two days ago."""
    start = add_days(today(), -2)
    plan = RehabilitationPlan(
        exception_id=test_case.id,
        clinician_id=clinician_user.id,
        plan_name="Back recovery",
        start_date=start,
        end_date=add_days(start, 6),
        status=PlanStatus.ACTIVE,
    )
    plan.exercises = [
        RehabilitationExercise(exercise_name="Cat-cow stretch", repetitions="10 reps", exercise_order=0),
        RehabilitationExercise(exercise_name="Bird dog", repetitions="3 x 8", exercise_order=1),
    ]
    db_session.add(plan)
    db_session.commit()
    db_session.refresh(plan)
    return plan


# =============================================================================
# Helper Functions for Tests
# =============================================================================

def headers(user: User) -> dict:
    """Get headers for API key authentication."""
    return {"X-API-Key": user.api_key}


def admin_headers(admin_user: User) -> dict:
    """Get headers for admin authentication."""
    return headers(admin_user)


def worker_headers(worker_user: User) -> dict:
    """Get headers for worker authentication."""
    return headers(worker_user)
