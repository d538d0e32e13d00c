"""
Tests for rehabilitation plan, progress and completion endpoints.
"""
import pytest
from sqlalchemy import update
from starlette.testclient import TestClient

import services
from dates import add_days, today
from errors import ConflictError
from models import ExerciseCompletion, PlanStatus, RehabilitationPlan, User, UserRole, WorkerException
from schemas import PlanCreateRequest
from tests.conftest import headers, make_user


def plan_payload(case_id, **overrides):
    payload = {
        "exception_id": case_id,
        "plan_name": "Shoulder recovery",
        "duration_days": 7,
        "exercises": [
            {"exercise_name": "Pendulum swings", "repetitions": "2 x 10"},
            {"exercise_name": "Wall slides", "repetitions": "3 x 8"},
        ],
    }
    payload.update(overrides)
    return payload


def complete(client, worker, plan_id, exercise_id, day=None):
    body = {"exercise_id": exercise_id}
    if day is not None:
        body["completion_date"] = day.isoformat()
    return client.post(
        f"/api/worker/rehabilitation-plans/{plan_id}/completions",
        json=body,
        headers=headers(worker),
    )


class TestCreatePlan:
    """Test POST /api/clinician/rehabilitation-plans."""

    def test_create_plan_defaults_to_today(self, client: TestClient, clinician_user: User, test_case):
        """
        Expected Response:
        {
            "start_date": "<today>",
            "end_date": "<today + 6>",
            "status": "active",
            "exercises": [{"exercise_order": 0, ...}, {"exercise_order": 1, ...}]
        }
        """
        response = client.post(
            "/api/clinician/rehabilitation-plans",
            json=plan_payload(test_case.id),
            headers=headers(clinician_user),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["start_date"] == today().isoformat()
        assert data["end_date"] == add_days(today(), 6).isoformat()
        assert data["status"] == "active"
        assert data["clinician_id"] == clinician_user.id
        assert [e["exercise_order"] for e in data["exercises"]] == [0, 1]
        assert data["exercises"][0]["exercise_name"] == "Pendulum swings"

    def test_create_plan_with_start_date(self, client: TestClient, clinician_user: User, test_case):
        response = client.post(
            "/api/clinician/rehabilitation-plans",
            json=plan_payload(test_case.id, start_date="2024-01-01", duration_days=1),
            headers=headers(clinician_user),
        )

        assert response.status_code == 200
        assert response.json()["end_date"] == "2024-01-01"

    def test_second_active_plan_conflicts(
        self, client: TestClient, clinician_user: User, test_case, active_plan
    ):
        response = client.post(
            "/api/clinician/rehabilitation-plans",
            json=plan_payload(test_case.id),
            headers=headers(clinician_user),
        )
        assert response.status_code == 409

    @pytest.mark.parametrize(
        "overrides",
        [
            {"duration_days": 0},
            {"duration_days": 366},
            {"exercises": []},
            {"plan_name": ""},
            {"plan_name": "   "},
            {"exercises": [{"exercise_name": "   "}]},
            {"exercises": [{"exercise_name": "Wall slides"}, {"exercise_name": "\t"}]},
        ],
    )
    def test_invalid_payload(self, client: TestClient, clinician_user: User, test_case, overrides):
        response = client.post(
            "/api/clinician/rehabilitation-plans",
            json=plan_payload(test_case.id, **overrides),
            headers=headers(clinician_user),
        )
        assert response.status_code == 422

    def test_names_are_stripped(self, client: TestClient, clinician_user: User, test_case):
        response = client.post(
            "/api/clinician/rehabilitation-plans",
            json=plan_payload(
                test_case.id,
                plan_name="  Shoulder recovery ",
                exercises=[{"exercise_name": " Pendulum swings\n"}],
            ),
            headers=headers(clinician_user),
        )

        assert response.status_code == 200
        assert response.json()["plan_name"] == "Shoulder recovery"
        assert response.json()["exercises"][0]["exercise_name"] == "Pendulum swings"

    def test_not_assigned_clinician(self, client: TestClient, other_clinician: User, test_case):
        response = client.post(
            "/api/clinician/rehabilitation-plans",
            json=plan_payload(test_case.id),
            headers=headers(other_clinician),
        )
        assert response.status_code == 403


class TestUpdatePlan:
    """Test PATCH /api/clinician/rehabilitation-plans/{id}."""

    def test_complete_plan_unblocks_closure(
        self, client: TestClient, clinician_user: User, test_case, active_plan
    ):
        response = client.patch(
            f"/api/clinician/rehabilitation-plans/{active_plan.id}",
            json={"status": "completed", "notes": "Full range of motion restored"},
            headers=headers(clinician_user),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["notes"] == "Full range of motion restored"

        closed = client.patch(
            f"/api/clinician/cases/{test_case.id}/status",
            json={"status": "closed"},
            headers=headers(clinician_user),
        )
        assert closed.status_code == 200

    def test_end_before_start(self, client: TestClient, clinician_user: User, active_plan):
        response = client.patch(
            f"/api/clinician/rehabilitation-plans/{active_plan.id}",
            json={"end_date": add_days(active_plan.start_date, -1).isoformat()},
            headers=headers(clinician_user),
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_DATE_RANGE"

    def test_extend_plan(self, client: TestClient, clinician_user: User, active_plan):
        new_end = add_days(active_plan.end_date, 7).isoformat()
        response = client.patch(
            f"/api/clinician/rehabilitation-plans/{active_plan.id}",
            json={"end_date": new_end},
            headers=headers(clinician_user),
        )

        assert response.status_code == 200
        assert response.json()["end_date"] == new_end


class TestPlanProgress:
    """Test progress endpoints for clinicians and workers."""

    def test_progress_without_completions(
        self, client: TestClient, clinician_user: User, active_plan
    ):
        response = client.get(
            f"/api/clinician/rehabilitation-plans/{active_plan.id}/progress",
            headers=headers(clinician_user),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["duration"] == 7
        assert data["current_day"] == 1
        assert data["days_completed"] == 0
        assert data["progress"] == 0
        assert data["worker_name"] == "Alex Chen"
        assert data["case_number"].startswith("CASE-")
        assert len(data["daily_progress"]) == 7
        assert [d["status"] for d in data["daily_progress"]] == ["current"] + ["pending"] * 6

    def test_worker_sees_active_plan(self, client: TestClient, worker_user: User, active_plan):
        response = client.get("/api/worker/rehabilitation-plan", headers=headers(worker_user))

        assert response.status_code == 200
        assert response.json()["plan"]["id"] == active_plan.id

    def test_worker_without_plan(self, client: TestClient, worker_user: User, test_case):
        response = client.get("/api/worker/rehabilitation-plan", headers=headers(worker_user))
        assert response.status_code == 404

    def test_completed_day_advances(self, client: TestClient, worker_user: User, active_plan):
        """Day 1 finished two days ago: the 06:00 gate has passed, day 2 is current."""
        day_one = active_plan.start_date
        for exercise in active_plan.exercises:
            assert complete(client, worker_user, active_plan.id, exercise.id, day_one).status_code == 200

        data = client.get("/api/worker/rehabilitation-plan", headers=headers(worker_user)).json()

        assert data["current_day"] == 2
        assert data["days_completed"] == 1
        assert data["progress"] == 14
        assert data["daily_progress"][0]["status"] == "completed"
        assert data["daily_progress"][0]["exercises_completed"] == 2
        assert data["daily_progress"][1]["status"] == "current"


class TestCompletions:
    """Test POST /api/worker/rehabilitation-plans/{id}/completions."""

    def test_complete_today(self, client: TestClient, worker_user: User, active_plan, test_db):
        exercise_id = active_plan.exercises[0].id
        response = complete(client, worker_user, active_plan.id, exercise_id)

        assert response.status_code == 200
        data = response.json()
        assert data["completion_date"] == today().isoformat()
        assert data["created"] is True
        assert test_db.query(ExerciseCompletion).count() == 1

    def test_duplicate_is_noop(self, client: TestClient, worker_user: User, active_plan, test_db):
        exercise_id = active_plan.exercises[0].id
        complete(client, worker_user, active_plan.id, exercise_id)
        response = complete(client, worker_user, active_plan.id, exercise_id)

        assert response.status_code == 200
        assert response.json()["created"] is False
        assert test_db.query(ExerciseCompletion).count() == 1

    def test_future_day_rejected(self, client: TestClient, worker_user: User, active_plan):
        exercise_id = active_plan.exercises[0].id
        response = complete(client, worker_user, active_plan.id, exercise_id, add_days(today(), 1))
        assert response.status_code == 400

    def test_before_plan_start_rejected(self, client: TestClient, worker_user: User, active_plan):
        exercise_id = active_plan.exercises[0].id
        response = complete(
            client, worker_user, active_plan.id, exercise_id, add_days(active_plan.start_date, -1)
        )
        assert response.status_code == 400

    def test_unknown_exercise(self, client: TestClient, worker_user: User, active_plan):
        response = complete(client, worker_user, active_plan.id, "no-such-exercise")
        assert response.status_code == 404

    def test_other_worker_forbidden(self, client: TestClient, db_session, active_plan):
        stranger = make_user(db_session, "stranger", UserRole.WORKER)
        response = complete(client, stranger, active_plan.id, active_plan.exercises[0].id)
        assert response.status_code == 403

    def test_inactive_plan_rejected(
        self, client: TestClient, worker_user: User, active_plan, test_db
    ):
        active_plan.status = PlanStatus.CANCELLED
        test_db.commit()

        response = complete(client, worker_user, active_plan.id, active_plan.exercises[0].id)
        assert response.status_code == 400

    def test_concurrent_duplicate_is_noop(
        self, client: TestClient, worker_user: User, active_plan, test_db, monkeypatch
    ):
        """The same mark is stored by another request between the lookup and the insert."""
        exercise_id = active_plan.exercises[0].id
        assert complete(client, worker_user, active_plan.id, exercise_id).json()["created"] is True

        monkeypatch.setattr(services, "find_completion", lambda *args: None)
        response = complete(client, worker_user, active_plan.id, exercise_id)

        assert response.status_code == 200
        assert response.json()["created"] is False
        assert test_db.query(ExerciseCompletion).count() == 1

        # The session is usable after the rollback
        other = complete(client, worker_user, active_plan.id, active_plan.exercises[1].id)
        assert other.json()["created"] is True


class TestPlanRevision:
    """Plan writes share the case revision with status transitions."""

    def case_revision(self, client, clinician, case_id):
        response = client.get(f"/api/clinician/cases/{case_id}", headers=headers(clinician))
        return response.json()["revision"]

    def test_create_plan_bumps_revision(self, client: TestClient, clinician_user: User, test_case):
        client.post(
            "/api/clinician/rehabilitation-plans",
            json=plan_payload(test_case.id, expected_revision=1),
            headers=headers(clinician_user),
        )
        assert self.case_revision(client, clinician_user, test_case.id) == 2

    def test_status_change_after_plan_created_conflicts(
        self, client: TestClient, clinician_user: User, test_case
    ):
        """A writer that saw revision 1 loses once a plan has been added."""
        client.post(
            "/api/clinician/rehabilitation-plans",
            json=plan_payload(test_case.id),
            headers=headers(clinician_user),
        )

        response = client.patch(
            f"/api/clinician/cases/{test_case.id}/status",
            json={"status": "closed", "expected_revision": 1},
            headers=headers(clinician_user),
        )
        assert response.status_code == 409

    def test_create_plan_with_stale_revision(
        self, client: TestClient, clinician_user: User, test_case, test_db
    ):
        client.patch(
            f"/api/clinician/cases/{test_case.id}/status",
            json={"status": "triaged"},
            headers=headers(clinician_user),
        )

        response = client.post(
            "/api/clinician/rehabilitation-plans",
            json=plan_payload(test_case.id, expected_revision=1),
            headers=headers(clinician_user),
        )

        assert response.status_code == 409
        assert test_db.query(RehabilitationPlan).count() == 0

    def test_plan_status_change_bumps_revision(
        self, client: TestClient, clinician_user: User, test_case, active_plan
    ):
        cancelled = client.patch(
            f"/api/clinician/rehabilitation-plans/{active_plan.id}",
            json={"status": "cancelled", "expected_revision": 1},
            headers=headers(clinician_user),
        )
        reactivated = client.patch(
            f"/api/clinician/rehabilitation-plans/{active_plan.id}",
            json={"status": "active", "expected_revision": 1},
            headers=headers(clinician_user),
        )

        assert cancelled.status_code == 200
        assert reactivated.status_code == 409
        assert self.case_revision(client, clinician_user, test_case.id) == 2

    def test_notes_edit_keeps_revision(
        self, client: TestClient, clinician_user: User, test_case, active_plan
    ):
        client.patch(
            f"/api/clinician/rehabilitation-plans/{active_plan.id}",
            json={"notes": "Going well"},
            headers=headers(clinician_user),
        )
        assert self.case_revision(client, clinician_user, test_case.id) == 1

    def test_concurrent_writer_loses(self, db_session, clinician_user: User, test_case):
        """Another writer bumps the revision after this one has read the case."""
        seen = test_case.revision
        db_session.execute(
            update(WorkerException)
            .where(WorkerException.id == test_case.id)
            .values(revision=seen + 1)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(ConflictError):
            services.create_plan(
                db_session, PlanCreateRequest(**plan_payload(test_case.id)), clinician_user
            )
        assert db_session.query(RehabilitationPlan).count() == 0
