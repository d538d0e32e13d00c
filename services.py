"""
Business logic services.
Each workflow loads a consistent snapshot, hands it to the rule modules
(availability, case_status, rehab_progress) and persists their output.
Case status changes go through case_status.apply_transition only.
"""
import json
import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from availability import (
    active_exceptions_on,
    find_conflict,
    get_exception_type_label,
    is_active_on,
    ranges_overlap,
    workers_with_active_exceptions,
)
from case_status import (
    Actor,
    Audience,
    CaseRecord,
    JournalEntry,
    ReturnToWork,
    apply_transition,
    derive_status,
    format_case_number,
)
from dates import add_days, ensure_tz_aware, now_local, today, validate_date_range
from errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from models import (
    CaseStatusEntry,
    ExceptionType,
    ExerciseCompletion,
    Notification,
    PlanStatus,
    RehabilitationExercise,
    RehabilitationPlan,
    Team,
    User,
    UserRole,
    WorkerException,
    WorkerSchedule,
)
from rehab_progress import compute_progress, group_completions
from schemas import (
    CaseDetailResponse,
    CaseStatusUpdateRequest,
    CaseStatusUpdateResponse,
    CompletionCreateRequest,
    CompletionResponse,
    DayProgressItem,
    ExceptionCreateRequest,
    ExceptionCreateResponse,
    ExceptionListResponse,
    ExceptionResponse,
    ExceptionUpdateRequest,
    JournalEntryItem,
    NotificationItem,
    NotificationListResponse,
    PlanCreateRequest,
    PlanProgressResponse,
    PlanResponse,
    PlanUpdateRequest,
    ScheduleCreateRequest,
    ScheduleListResponse,
    ScheduleResponse,
    ScheduleUpdateRequest,
    UnavailableWorkerItem,
    UnavailableWorkersResponse,
)

logger = logging.getLogger(__name__)


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def get_case_or_404(db: Session, case_id: str) -> WorkerException:
    case = db.query(WorkerException).filter(WorkerException.id == case_id).first()
    if not case:
        raise NotFoundError(f"Case {case_id} not found")
    return case


def get_plan_or_404(db: Session, plan_id: str) -> RehabilitationPlan:
    plan = db.query(RehabilitationPlan).filter(RehabilitationPlan.id == plan_id).first()
    if not plan:
        raise NotFoundError(f"Rehabilitation plan {plan_id} not found")
    return plan


def ensure_team_leader_of(worker: User, current_user: User) -> None:
    """Only the leader of the worker's team (or ADMIN) may manage the worker."""
    if current_user.role == UserRole.ADMIN:
        return
    if worker.team is None or worker.team.team_leader_id != current_user.id:
        raise ForbiddenError("You can only manage workers in your own team")


def ensure_assigned_clinician(case: WorkerException, current_user: User) -> None:
    if current_user.role == UserRole.ADMIN:
        return
    if case.clinician_id != current_user.id:
        raise ForbiddenError("Case is not assigned to you")


def check_expected_revision(case: WorkerException, expected_revision: Optional[int]) -> None:
    if expected_revision is not None and expected_revision != case.revision:
        raise ConflictError(
            f"Revision conflict: expected {expected_revision}, got {case.revision}"
        )


def bump_case_revision(db: Session, case: WorkerException, seen_revision: int) -> None:
    """
    Compare-and-set the case revision from seen_revision to seen_revision + 1.
    Status transitions and plan writes both go through here, so of two
    concurrent writers on one case only the first passes; the other gets
    ConflictError and its session is rolled back.
    """
    case_id = case.id
    bumped = db.execute(
        update(WorkerException)
        .where(WorkerException.id == case_id, WorkerException.revision == seen_revision)
        .values(revision=seen_revision + 1)
        .execution_options(synchronize_session=False)
    )
    if bumped.rowcount != 1:
        db.rollback()
        logger.warning("Case %s revision %d is stale", case_id, seen_revision)
        raise ConflictError(f"Case {case_id} was modified concurrently")
    case.revision = seen_revision + 1


def normalize_time(value: str) -> str:
    """HH:MM:SS -> HH:MM, zero-padded."""
    hours, minutes = value.split(":")[:2]
    return f"{int(hours):02d}:{minutes}"


# ============================================================
# Worker Exception Services
# ============================================================

def to_exception_response(exception: WorkerException) -> ExceptionResponse:
    return ExceptionResponse(
        id=exception.id,
        worker_id=exception.user_id,
        team_id=exception.team_id,
        exception_type=exception.exception_type,
        exception_type_label=get_exception_type_label(exception.exception_type),
        reason=exception.reason,
        start_date=exception.start_date,
        end_date=exception.end_date,
        is_active=exception.is_active,
        deactivated_at=exception.deactivated_at,
        created_at=exception.created_at,
    )


def deactivate_worker_schedules(db: Session, worker_id: int) -> int:
    """Soft-deactivate every active schedule of a worker. Returns the count."""
    schedules = (
        db.query(WorkerSchedule)
        .filter(WorkerSchedule.worker_id == worker_id, WorkerSchedule.is_active == True)
        .all()
    )
    for schedule in schedules:
        schedule.is_active = False
    return len(schedules)


def create_exception(
    db: Session,
    request: ExceptionCreateRequest,
    current_user: User,
    now: Optional[datetime] = None,
) -> ExceptionCreateResponse:
    """
    Record a new exception for a worker.
    Any exception still active for the worker is deactivated first, and the
    worker's active schedules are deactivated.
    """
    now = now or now_local()
    worker = get_user_or_404(db, request.worker_id)
    if worker.role != UserRole.WORKER:
        raise ValidationError(f"User {worker.id} is not a worker")
    ensure_team_leader_of(worker, current_user)

    validate_date_range(request.start_date, request.end_date)

    team_id = worker.team_id
    transferred = False
    if request.exception_type == ExceptionType.TRANSFER:
        if request.transfer_to_team_id is None:
            raise ValidationError("Transfer requires selecting a target team")
        if request.transfer_to_team_id == worker.team_id:
            raise ValidationError("Cannot transfer worker to the same team")
        target = db.query(Team).filter(Team.id == request.transfer_to_team_id).first()
        if not target:
            raise NotFoundError(f"Team {request.transfer_to_team_id} not found")
        worker.team_id = target.id
        team_id = target.id
        transferred = True

    previous = (
        db.query(WorkerException)
        .filter(WorkerException.user_id == worker.id, WorkerException.is_active == True)
        .all()
    )
    for existing in previous:
        existing.is_active = False
        existing.deactivated_at = now
        existing.updated_at = now

    deactivated_schedules = deactivate_worker_schedules(db, worker.id)

    exception = WorkerException(
        user_id=worker.id,
        team_id=team_id,
        exception_type=request.exception_type,
        reason=request.reason,
        start_date=request.start_date,
        end_date=request.end_date,
        is_active=True,
        created_by=current_user.id,
        created_at=now,
    )
    db.add(exception)
    db.commit()
    db.refresh(exception)

    logger.info(
        "Exception %s (%s) recorded for worker %s; %d previous exception(s) and %d schedule(s) deactivated",
        exception.id,
        exception.exception_type.value,
        worker.id,
        len(previous),
        deactivated_schedules,
    )

    return ExceptionCreateResponse(
        exception=to_exception_response(exception),
        transferred=transferred,
        deactivated_schedules=deactivated_schedules,
    )


def update_exception(
    db: Session,
    exception_id: str,
    request: ExceptionUpdateRequest,
    current_user: User,
    now: Optional[datetime] = None,
) -> ExceptionResponse:
    """
    Edit an exception's type, reason or dates.
    Deactivating stamps deactivated_at; reactivating clears it.
    """
    now = now or now_local()
    exception = db.query(WorkerException).filter(WorkerException.id == exception_id).first()
    if not exception:
        raise NotFoundError(f"Exception {exception_id} not found")
    ensure_team_leader_of(exception.worker, current_user)

    fields = request.model_fields_set
    start_date = request.start_date if "start_date" in fields and request.start_date else exception.start_date
    end_date = request.end_date if "end_date" in fields else exception.end_date
    validate_date_range(start_date, end_date)

    if request.exception_type is not None:
        exception.exception_type = request.exception_type
    if "reason" in fields:
        exception.reason = request.reason
    exception.start_date = start_date
    exception.end_date = end_date

    if request.is_active is False:
        exception.is_active = False
        exception.deactivated_at = now
    elif request.is_active is True:
        exception.is_active = True
        exception.deactivated_at = None
        deactivate_worker_schedules(db, exception.user_id)

    exception.updated_at = now
    db.commit()
    db.refresh(exception)
    return to_exception_response(exception)


def visible_exceptions(db: Session, current_user: User) -> list[WorkerException]:
    """
    Exceptions the user may see.
    Team leaders and supervisors see their own teams; control centre and
    admins see everything.
    """
    query = db.query(WorkerException)

    if current_user.role in (UserRole.TEAM_LEADER, UserRole.SUPERVISOR):
        team_ids = [
            team.id
            for team in db.query(Team).filter(
                or_(Team.team_leader_id == current_user.id, Team.supervisor_id == current_user.id)
            )
        ]
        query = query.filter(WorkerException.team_id.in_(team_ids))
    elif current_user.role not in (UserRole.WHS_CONTROL_CENTER, UserRole.ADMIN):
        raise ForbiddenError("Not allowed to list exceptions")

    return query.order_by(WorkerException.start_date).all()


def get_active_exceptions(db: Session, current_user: User, on: date) -> ExceptionListResponse:
    """Exceptions active on a day, scoped as in visible_exceptions."""
    exceptions = visible_exceptions(db, current_user)
    return ExceptionListResponse(
        on=on,
        exceptions=[to_exception_response(e) for e in active_exceptions_on(exceptions, on)],
    )


def get_unavailable_workers(db: Session, current_user: User, on: date) -> UnavailableWorkersResponse:
    """
    Roster of workers who are unavailable on a day: each worker with at
    least one exception active that day, shown with the latest-starting one.
    """
    exceptions = visible_exceptions(db, current_user)
    worker_ids = workers_with_active_exceptions(exceptions, on)

    current: dict[int, WorkerException] = {}
    for exception in active_exceptions_on(exceptions, on):
        # exceptions are ordered by start_date, so the last one wins
        current[exception.user_id] = exception

    workers = db.query(User).filter(User.id.in_(sorted(worker_ids))).all() if worker_ids else []
    items = [
        UnavailableWorkerItem(
            worker_id=worker.id,
            worker_name=worker.display_name,
            team_id=current[worker.id].team_id,
            exception_id=current[worker.id].id,
            exception_type=current[worker.id].exception_type,
            exception_type_label=get_exception_type_label(current[worker.id].exception_type),
            start_date=current[worker.id].start_date,
            end_date=current[worker.id].end_date,
        )
        for worker in sorted(workers, key=lambda w: (w.display_name.lower(), w.id))
    ]
    return UnavailableWorkersResponse(on=on, workers=items)


# ============================================================
# Worker Schedule Services
# ============================================================

def create_schedule(
    db: Session, request: ScheduleCreateRequest, current_user: User
) -> ScheduleResponse:
    """
    Create a schedule for a worker over a date range.
    Rejected when one of the worker's exceptions conflicts with the range.
    """
    worker = get_user_or_404(db, request.worker_id)
    if worker.role != UserRole.WORKER:
        raise ValidationError(f"User {worker.id} is not a worker")
    ensure_team_leader_of(worker, current_user)

    validate_date_range(request.start_date, request.end_date)

    start_time = normalize_time(request.start_time)
    end_time = normalize_time(request.end_time)
    if end_time <= start_time:
        raise ValidationError("end_time must be after start_time")

    exceptions = db.query(WorkerException).filter(WorkerException.user_id == worker.id).all()
    conflict = find_conflict(exceptions, request.start_date, request.end_date)
    if conflict is not None:
        label = get_exception_type_label(conflict.exception_type)
        logger.warning(
            "Schedule for worker %s blocked by exception %s (%s)",
            worker.id,
            conflict.id,
            label,
        )
        raise ConflictError(
            f"Cannot create schedule: worker has an active {label} exception "
            f"during {request.start_date.isoformat()} ~ {request.end_date.isoformat()}"
        )

    schedule = WorkerSchedule(
        worker_id=worker.id,
        team_id=worker.team_id,
        start_date=request.start_date,
        end_date=request.end_date,
        start_time=start_time,
        end_time=end_time,
        notes=request.notes,
        is_active=True,
        created_by=current_user.id,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return ScheduleResponse.model_validate(schedule)


def get_schedule_or_404(db: Session, schedule_id: int) -> WorkerSchedule:
    schedule = db.query(WorkerSchedule).filter(WorkerSchedule.id == schedule_id).first()
    if not schedule:
        raise NotFoundError(f"Schedule {schedule_id} not found")
    return schedule


def list_schedules(
    db: Session, current_user: User, worker_id: Optional[int] = None
) -> ScheduleListResponse:
    """
    Schedules of the teams the user leads (all teams for ADMIN).
    Inactive schedules are included so they can be switched back on.
    """
    query = db.query(WorkerSchedule)
    if current_user.role != UserRole.ADMIN:
        team_ids = [
            team.id for team in db.query(Team).filter(Team.team_leader_id == current_user.id)
        ]
        if not team_ids:
            raise NotFoundError("Team not found")
        query = query.filter(WorkerSchedule.team_id.in_(team_ids))
    if worker_id is not None:
        query = query.filter(WorkerSchedule.worker_id == worker_id)

    schedules = query.order_by(
        WorkerSchedule.start_date, WorkerSchedule.start_time, WorkerSchedule.id
    ).all()
    return ScheduleListResponse(
        schedules=[ScheduleResponse.model_validate(s) for s in schedules]
    )


def get_my_schedules(
    db: Session,
    current_user: User,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> ScheduleListResponse:
    """A worker's active schedules overlapping [start_date, end_date] (default: the next 7 days)."""
    start_date = start_date or today(now)
    end_date = end_date or add_days(start_date, 7)
    validate_date_range(start_date, end_date)

    schedules = (
        db.query(WorkerSchedule)
        .filter(WorkerSchedule.worker_id == current_user.id, WorkerSchedule.is_active == True)
        .order_by(WorkerSchedule.start_date, WorkerSchedule.start_time, WorkerSchedule.id)
        .all()
    )
    return ScheduleListResponse(
        schedules=[
            ScheduleResponse.model_validate(s)
            for s in schedules
            if ranges_overlap(s.start_date, s.end_date, start_date, end_date)
        ]
    )


def update_schedule(
    db: Session,
    schedule_id: int,
    request: ScheduleUpdateRequest,
    current_user: User,
    now: Optional[datetime] = None,
) -> ScheduleResponse:
    """
    Edit or toggle a schedule.
    A schedule that stays (or becomes) active is rejected while the worker
    has an exception active today or one conflicting with the new range.
    Deactivating is always allowed.
    """
    now = now or now_local()
    schedule = get_schedule_or_404(db, schedule_id)
    ensure_team_leader_of(schedule.worker, current_user)

    fields = request.model_fields_set
    start_date = request.start_date or schedule.start_date
    end_date = request.end_date or schedule.end_date
    validate_date_range(start_date, end_date)

    start_time = normalize_time(request.start_time) if request.start_time else schedule.start_time
    end_time = normalize_time(request.end_time) if request.end_time else schedule.end_time
    if end_time <= start_time:
        raise ValidationError("end_time must be after start_time")

    is_active = schedule.is_active if request.is_active is None else request.is_active
    if is_active:
        exceptions = (
            db.query(WorkerException).filter(WorkerException.user_id == schedule.worker_id).all()
        )
        current_date = today(now)
        blocking = next((e for e in exceptions if is_active_on(e, current_date)), None)
        if blocking is None:
            blocking = find_conflict(exceptions, start_date, end_date)
        if blocking is not None:
            label = get_exception_type_label(blocking.exception_type)
            logger.warning(
                "Update of schedule %s blocked by exception %s (%s)",
                schedule.id,
                blocking.id,
                label,
            )
            raise ConflictError(
                f"Cannot update schedule: worker has an active {label} exception. "
                "Remove or close the exception first."
            )

    schedule.start_date = start_date
    schedule.end_date = end_date
    schedule.start_time = start_time
    schedule.end_time = end_time
    if "notes" in fields:
        schedule.notes = request.notes
    schedule.is_active = is_active
    schedule.updated_at = now

    db.commit()
    db.refresh(schedule)
    return ScheduleResponse.model_validate(schedule)


# ============================================================
# Case Services
# ============================================================

def assign_clinician(
    db: Session, case_id: str, clinician_id: int, current_user: User
) -> CaseDetailResponse:
    """Escalate an exception to medical tracking by assigning a clinician."""
    case = get_case_or_404(db, case_id)
    clinician = get_user_or_404(db, clinician_id)
    if clinician.role != UserRole.CLINICIAN:
        raise ValidationError(f"User {clinician_id} is not a clinician")

    case.clinician_id = clinician.id
    case.updated_at = now_local()
    db.commit()
    db.refresh(case)

    logger.info("Case %s assigned to clinician %s by %s", case.id, clinician.id, current_user.id)
    return to_case_detail(case)


def build_case_record(db: Session, case: WorkerException) -> CaseRecord:
    """Snapshot a case, its journal, its plans and its audience."""
    team = case.team or case.worker.team
    admin_ids = tuple(
        user_id
        for (user_id,) in db.query(User.id)
        .filter(User.role == UserRole.WHS_CONTROL_CENTER, User.is_active == True)
        .order_by(User.id)
    )

    return CaseRecord(
        id=case.id,
        worker_id=case.user_id,
        created_at=ensure_tz_aware(case.created_at),
        start_date=case.start_date,
        end_date=case.end_date,
        is_active=case.is_active,
        journal=tuple(
            JournalEntry(
                status=entry.status,
                updated_at=ensure_tz_aware(entry.updated_at),
                updated_by=entry.updated_by,
                updated_by_id=entry.updated_by_id,
                approved_by=entry.approved_by,
                approved_at=ensure_tz_aware(entry.approved_at),
            )
            for entry in case.status_entries
        ),
        plan_statuses=tuple(plan.status for plan in case.rehabilitation_plans),
        return_to_work_duty_type=case.return_to_work_duty_type,
        return_to_work_date=case.return_to_work_date,
        worker_name=case.worker.display_name,
        audience=Audience(
            admin_ids=admin_ids,
            supervisor_id=team.supervisor_id if team else None,
            team_leader_id=team.team_leader_id if team else None,
        ),
    )


def to_case_detail(case: WorkerException) -> CaseDetailResponse:
    entries = case.status_entries
    return CaseDetailResponse(
        id=case.id,
        case_number=format_case_number(case.id, case.created_at),
        worker_id=case.user_id,
        worker_name=case.worker.display_name,
        team_id=case.team_id,
        exception_type=case.exception_type,
        status=derive_status(entries, case.return_to_work_duty_type),
        is_active=case.is_active,
        start_date=case.start_date,
        end_date=case.end_date,
        return_to_work_duty_type=case.return_to_work_duty_type,
        return_to_work_date=case.return_to_work_date,
        revision=case.revision,
        created_at=case.created_at,
        journal=[JournalEntryItem.model_validate(entry) for entry in entries],
    )


def get_case_detail(db: Session, case_id: str, current_user: User) -> CaseDetailResponse:
    case = get_case_or_404(db, case_id)
    ensure_assigned_clinician(case, current_user)
    return to_case_detail(case)


def update_case_status(
    db: Session,
    case_id: str,
    request: CaseStatusUpdateRequest,
    current_user: User,
    now: Optional[datetime] = None,
) -> CaseStatusUpdateResponse:
    """
    Apply a status transition to a case.
    Uses optimistic locking on the case revision so two concurrent
    transitions cannot both pass the status rules.
    """
    now = now or now_local()
    case = get_case_or_404(db, case_id)
    ensure_assigned_clinician(case, current_user)

    revision = case.revision
    check_expected_revision(case, request.expected_revision)

    extra = None
    if request.return_to_work_duty_type or request.return_to_work_date:
        extra = ReturnToWork(
            duty_type=request.return_to_work_duty_type,
            return_date=request.return_to_work_date,
        )

    record = build_case_record(db, case)
    actor = Actor(id=current_user.id, name=current_user.display_name)
    try:
        result = apply_transition(record, request.status, actor, extra, now=now)
    except ValidationError as e:
        logger.warning("Case %s transition to %r rejected: %s", case.id, request.status, e.code)
        raise

    bump_case_revision(db, case, revision)

    updated = result.case
    case.is_active = updated.is_active
    case.end_date = updated.end_date
    case.return_to_work_duty_type = updated.return_to_work_duty_type
    case.return_to_work_date = updated.return_to_work_date
    case.updated_at = now

    entry = result.entry
    db.add(
        CaseStatusEntry(
            exception_id=case.id,
            status=entry.status,
            updated_at=entry.updated_at,
            updated_by=entry.updated_by,
            updated_by_id=entry.updated_by_id,
            approved_by=entry.approved_by,
            approved_at=entry.approved_at,
        )
    )

    for intent in result.notifications:
        db.add(
            Notification(
                user_id=intent.recipient_id,
                type=intent.type,
                title=intent.title,
                message=intent.message,
                data_json=json.dumps(intent.data),
                is_read=False,
                created_at=now,
            )
        )

    db.commit()
    db.refresh(case)

    logger.info(
        "Case %s moved to %s by user %s (%d notification(s))",
        case.id,
        entry.status.value,
        current_user.id,
        len(result.notifications),
    )

    return CaseStatusUpdateResponse(
        case=to_case_detail(case),
        notifications_created=len(result.notifications),
    )


# ============================================================
# Rehabilitation Plan Services
# ============================================================

def create_plan(
    db: Session,
    request: PlanCreateRequest,
    current_user: User,
    now: Optional[datetime] = None,
) -> PlanResponse:
    """
    Create a plan for a case. Day 1 is start_date (default today) and
    end_date = start_date + duration_days - 1.
    Bumps the case revision: a new active plan blocks return_to_work and
    closed, so it must not race a status transition.
    """
    now = now or now_local()
    case = get_case_or_404(db, request.exception_id)
    ensure_assigned_clinician(case, current_user)

    revision = case.revision
    check_expected_revision(case, request.expected_revision)

    existing = (
        db.query(RehabilitationPlan)
        .filter(
            RehabilitationPlan.exception_id == case.id,
            RehabilitationPlan.status == PlanStatus.ACTIVE,
        )
        .first()
    )
    if existing:
        raise ConflictError("Active rehabilitation plan already exists for this case")

    start_date = request.start_date or today(now)
    end_date = add_days(start_date, request.duration_days - 1)

    plan = RehabilitationPlan(
        exception_id=case.id,
        clinician_id=current_user.id,
        plan_name=request.plan_name,
        plan_description=request.plan_description or "Daily recovery exercises and activities",
        start_date=start_date,
        end_date=end_date,
        status=PlanStatus.ACTIVE,
        created_at=now,
    )
    plan.exercises = [
        RehabilitationExercise(
            exercise_name=exercise.exercise_name,
            repetitions=exercise.repetitions,
            instructions=exercise.instructions,
            video_url=exercise.video_url,
            exercise_order=index,
        )
        for index, exercise in enumerate(request.exercises)
    ]

    bump_case_revision(db, case, revision)
    case.updated_at = now
    db.add(plan)
    db.commit()
    db.refresh(plan)

    logger.info(
        "Plan %s created for case %s: %s ~ %s, %d exercise(s)",
        plan.id,
        case.id,
        start_date.isoformat(),
        end_date.isoformat(),
        len(plan.exercises),
    )
    return PlanResponse.model_validate(plan)


def update_plan(
    db: Session,
    plan_id: str,
    request: PlanUpdateRequest,
    current_user: User,
    now: Optional[datetime] = None,
) -> PlanResponse:
    """
    Edit a plan's dates, status or notes.
    A status change bumps the case revision, like create_plan.
    """
    now = now or now_local()
    plan = get_plan_or_404(db, plan_id)
    case = plan.case
    ensure_assigned_clinician(case, current_user)

    revision = case.revision
    check_expected_revision(case, request.expected_revision)

    start_date = request.start_date or plan.start_date
    end_date = request.end_date or plan.end_date
    validate_date_range(start_date, end_date)

    status_changed = request.status is not None and request.status != plan.status
    if status_changed and request.status == PlanStatus.ACTIVE:
        other = (
            db.query(RehabilitationPlan)
            .filter(
                RehabilitationPlan.exception_id == plan.exception_id,
                RehabilitationPlan.status == PlanStatus.ACTIVE,
                RehabilitationPlan.id != plan.id,
            )
            .first()
        )
        if other:
            raise ConflictError("Active rehabilitation plan already exists for this case")

    if status_changed:
        bump_case_revision(db, case, revision)
        case.updated_at = now

    plan.start_date = start_date
    plan.end_date = end_date
    if status_changed:
        plan.status = request.status
    if "notes" in request.model_fields_set:
        plan.notes = request.notes
    plan.updated_at = now

    db.commit()
    db.refresh(plan)
    if status_changed:
        logger.info("Plan %s set to %s on case %s", plan.id, plan.status.value, case.id)
    return PlanResponse.model_validate(plan)


def build_plan_progress(plan: RehabilitationPlan, now: datetime) -> PlanProgressResponse:
    progress = compute_progress(plan, group_completions(plan.completions), now)
    return PlanProgressResponse(
        plan=PlanResponse.model_validate(plan),
        case_number=format_case_number(plan.case.id, plan.case.created_at),
        worker_name=plan.case.worker.display_name,
        duration=progress.total_days,
        current_day=progress.current_day,
        days_completed=progress.days_completed,
        progress=progress.progress_percent,
        daily_progress=[DayProgressItem.model_validate(day) for day in progress.daily_progress],
    )


def get_plan_progress(
    db: Session, plan_id: str, current_user: User, now: Optional[datetime] = None
) -> PlanProgressResponse:
    plan = get_plan_or_404(db, plan_id)
    ensure_assigned_clinician(plan.case, current_user)
    return build_plan_progress(plan, now or now_local())


def get_worker_active_plan(
    db: Session, current_user: User, now: Optional[datetime] = None
) -> PlanProgressResponse:
    plan = (
        db.query(RehabilitationPlan)
        .join(WorkerException, RehabilitationPlan.exception_id == WorkerException.id)
        .filter(
            WorkerException.user_id == current_user.id,
            RehabilitationPlan.status == PlanStatus.ACTIVE,
        )
        .order_by(RehabilitationPlan.created_at.desc())
        .first()
    )
    if not plan:
        raise NotFoundError("No active rehabilitation plan")
    return build_plan_progress(plan, now or now_local())


def find_completion(
    db: Session, plan_id: str, exercise_id: str, day: date
) -> Optional[ExerciseCompletion]:
    return (
        db.query(ExerciseCompletion)
        .filter(
            ExerciseCompletion.plan_id == plan_id,
            ExerciseCompletion.exercise_id == exercise_id,
            ExerciseCompletion.completion_date == day,
        )
        .first()
    )


def record_completion(
    db: Session,
    plan_id: str,
    request: CompletionCreateRequest,
    current_user: User,
    now: Optional[datetime] = None,
) -> CompletionResponse:
    """
    Mark an exercise as done for a day (default today).
    Marking the same exercise twice on a day is a no-op.
    """
    now = now or now_local()
    plan = get_plan_or_404(db, plan_id)
    if plan.case.user_id != current_user.id:
        raise ForbiddenError("You can only complete exercises in your own plan")
    if plan.status != PlanStatus.ACTIVE:
        raise ValidationError(f"Plan is {plan.status.value}, not active")

    exercise_ids = {exercise.id for exercise in plan.exercises}
    if request.exercise_id not in exercise_ids:
        raise NotFoundError(f"Exercise {request.exercise_id} not found in plan {plan.id}")

    current_date = today(now)
    day = request.completion_date or current_date
    if day > current_date:
        raise ValidationError("Cannot complete exercises for a future day")
    if day < plan.start_date or day > plan.end_date:
        raise ValidationError(
            f"{day.isoformat()} is outside the plan ({plan.start_date.isoformat()} ~ {plan.end_date.isoformat()})"
        )

    plan_id = plan.id
    if find_completion(db, plan_id, request.exercise_id, day):
        return CompletionResponse(
            plan_id=plan_id, exercise_id=request.exercise_id, completion_date=day, created=False
        )

    db.add(
        ExerciseCompletion(
            plan_id=plan_id,
            exercise_id=request.exercise_id,
            user_id=current_user.id,
            completion_date=day,
            completed_at=now,
        )
    )
    try:
        db.commit()
    except IntegrityError:
        # Another request stored the same mark after the lookup above
        db.rollback()
        logger.info(
            "Completion of %s on %s for plan %s already recorded",
            request.exercise_id,
            day.isoformat(),
            plan_id,
        )
        return CompletionResponse(
            plan_id=plan_id, exercise_id=request.exercise_id, completion_date=day, created=False
        )
    return CompletionResponse(
        plan_id=plan_id, exercise_id=request.exercise_id, completion_date=day, created=True
    )


# ============================================================
# Notification Services
# ============================================================

def get_notifications(db: Session, current_user: User) -> NotificationListResponse:
    notifications = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .all()
    )
    return NotificationListResponse(
        notifications=[NotificationItem.model_validate(n) for n in notifications],
        unread_count=sum(1 for n in notifications if not n.is_read),
    )


def mark_notification_read(db: Session, notification_id: int, current_user: User) -> NotificationItem:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == current_user.id)
        .first()
    )
    if not notification:
        raise NotFoundError(f"Notification {notification_id} not found")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return NotificationItem.model_validate(notification)
