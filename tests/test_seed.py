"""
Tests for the seed script.
"""
import pytest

from models import Team, User, UserRole, WorkerException
from seed import seed_sample_case, seed_users


class TestSeed:
    """Seeding runs once and creates one user per role."""

    def test_seed_users(self, db_session):
        assert seed_users(db_session) is True

        roles = {user.role for user in db_session.query(User).all()}
        assert roles == set(UserRole)

        team = db_session.query(Team).one()
        worker = db_session.query(User).filter(User.username == "worker1").one()
        assert worker.team_id == team.id
        assert team.team_leader.username == "leader1"

    def test_seed_is_idempotent(self, db_session):
        seed_users(db_session)
        assert seed_users(db_session) is False

    def test_seed_sample_case(self, db_session):
        seed_users(db_session)

        assert seed_sample_case(db_session) is True
        case = db_session.query(WorkerException).one()
        assert case.clinician.username == "clinician1"
        assert seed_sample_case(db_session) is False
