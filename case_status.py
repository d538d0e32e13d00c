"""
Case status transitions.

A case's status lives in an append-only journal; the latest entry is the
current status. Transitions are validated here and their side effects
(active flag, end date, return-to-work fields) are computed on an immutable
snapshot. Nothing in this module reads the clock or touches storage: callers
pass `now` and persist the returned snapshot and notification intents.

Rules:
- Unknown statuses are rejected.
- return_to_work/closed are rejected while any linked plan is active.
- Once the case is return_to_work it may only move to closed (or stay).
- closed is terminal by convention only; nothing blocks leaving it.
- Re-applying the current status is allowed and adds a journal entry.
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Optional, Sequence, Union

from dates import ensure_tz_aware, coerce_day, today
from config import TIMEZONE
from errors import (
    ActiveRehabBlocksClosure,
    InvalidDutyType,
    InvalidStatus,
    InvalidTransition,
    MissingReturnToWorkFields,
    ReturnDateInPast,
    ReturnToWorkFieldsNotAllowed,
)
from models import CaseStatus, DutyType, PlanStatus, UserRole

RESTRICTED_AFTER_RETURN_TO_WORK = frozenset(
    {CaseStatus.NEW, CaseStatus.TRIAGED, CaseStatus.ASSESSED, CaseStatus.IN_REHAB}
)
# Statuses that need no active rehabilitation plan and record an approval
APPROVAL_STATUSES = frozenset({CaseStatus.RETURN_TO_WORK, CaseStatus.CLOSED})

DUTY_TYPE_LABELS = {
    DutyType.MODIFIED: "Modified Duties",
    DutyType.FULL: "Full Duties",
}


@dataclass(frozen=True)
class Actor:
    id: Optional[int]
    name: str


@dataclass(frozen=True)
class JournalEntry:
    status: CaseStatus
    updated_at: datetime
    updated_by: str
    updated_by_id: Optional[int] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None


@dataclass(frozen=True)
class Audience:
    """Who hears about a case: control-centre users plus the worker's team leads."""

    admin_ids: tuple[int, ...] = ()
    supervisor_id: Optional[int] = None
    team_leader_id: Optional[int] = None


@dataclass(frozen=True)
class CaseRecord:
    id: Optional[str]
    worker_id: Optional[int]
    created_at: datetime
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True
    journal: tuple[JournalEntry, ...] = ()
    plan_statuses: tuple[PlanStatus, ...] = ()
    return_to_work_duty_type: Optional[DutyType] = None
    return_to_work_date: Optional[date] = None
    worker_name: str = "Unknown"
    audience: Audience = field(default_factory=Audience)

    @property
    def current_status(self) -> Optional[CaseStatus]:
        return derive_status(self.journal, self.return_to_work_duty_type)

    @property
    def has_active_plan(self) -> bool:
        return any(status == PlanStatus.ACTIVE for status in self.plan_statuses)

    @property
    def case_number(self) -> str:
        return format_case_number(self.id, self.created_at)


@dataclass(frozen=True)
class ReturnToWork:
    """Return-to-work payload; raw values are validated by apply_transition."""

    duty_type: Optional[Union[str, DutyType]] = None
    return_date: Optional[Union[str, date]] = None


@dataclass(frozen=True)
class NotificationIntent:
    recipient_id: int
    recipient_role: UserRole
    type: str
    title: str
    message: str
    data: dict


@dataclass(frozen=True)
class TransitionResult:
    case: CaseRecord
    entry: JournalEntry
    notifications: list[NotificationIntent]


def derive_status(journal: Sequence, return_to_work_duty_type=None) -> Optional[CaseStatus]:
    """
    Current status of a case: the latest journal entry's status.
    Cases recorded before the journal existed fall back to return_to_work
    when they carry a duty type, and to no status otherwise.
    """
    if journal:
        return journal[-1].status
    if return_to_work_duty_type:
        return CaseStatus.RETURN_TO_WORK
    return None


def format_case_number(case_id: Optional[str], created_at: datetime) -> str:
    """
    Display number for a case.

    Example:
        ("ab12cd34-...", 2024-03-15 14:30:22) -> "CASE-20240315-143022-AB12"
    """
    created = ensure_tz_aware(created_at).astimezone(TIMEZONE)
    prefix = case_id[:4].upper() if case_id else "CASE"
    return f"CASE-{created:%Y%m%d}-{created:%H%M%S}-{prefix}"


def status_label(status: CaseStatus) -> str:
    return status.value.replace("_", " ").upper()


def format_duty_type_label(duty_type: Optional[DutyType]) -> str:
    return DUTY_TYPE_LABELS.get(duty_type, "Unknown")


def format_return_date(day: Optional[date]) -> str:
    if day is None:
        return "Invalid Date"
    return f"{day:%b} {day.day}, {day.year}"


def parse_status(value) -> CaseStatus:
    try:
        return CaseStatus(getattr(value, "value", value))
    except ValueError:
        raise InvalidStatus(value, [s.value for s in CaseStatus]) from None


def parse_duty_type(value) -> DutyType:
    raw = getattr(value, "value", value)
    if not raw or not isinstance(raw, str):
        raise MissingReturnToWorkFields("duty type")
    try:
        return DutyType(raw.strip().lower())
    except ValueError:
        raise InvalidDutyType(value) from None


def apply_transition(
    case: CaseRecord,
    requested_status,
    actor: Actor,
    extra: Optional[ReturnToWork] = None,
    *,
    now: datetime,
) -> TransitionResult:
    """
    Validate a status change and compute its effects.

    Args:
        case: Snapshot of the case, its journal and its plans' statuses
        requested_status: Target status (CaseStatus or its string value)
        actor: Who requests the change
        extra: Return-to-work payload, only allowed with return_to_work
        now: Current instant; "today" is derived from it

    Returns:
        TransitionResult with the updated snapshot (journal included),
        the appended entry and one notification intent per recipient

    Raises:
        InvalidStatus, ReturnToWorkFieldsNotAllowed, ActiveRehabBlocksClosure,
        InvalidTransition, MissingReturnToWorkFields, InvalidDutyType,
        InvalidDate, ReturnDateInPast
    """
    status = parse_status(requested_status)

    if status != CaseStatus.RETURN_TO_WORK and extra is not None:
        if extra.duty_type or extra.return_date:
            raise ReturnToWorkFieldsNotAllowed(status.value)

    if status in APPROVAL_STATUSES and case.has_active_plan:
        raise ActiveRehabBlocksClosure()

    current = case.current_status
    if current == CaseStatus.RETURN_TO_WORK and status in RESTRICTED_AFTER_RETURN_TO_WORK:
        raise InvalidTransition(current.value, status.value)

    now = ensure_tz_aware(now)
    current_date = today(now)
    changes: dict = {}

    if status == CaseStatus.RETURN_TO_WORK:
        if extra is None:
            raise MissingReturnToWorkFields("duty type")
        duty_type = parse_duty_type(extra.duty_type)
        if not extra.return_date:
            raise MissingReturnToWorkFields("return date")
        return_date = coerce_day(extra.return_date)
        if return_date < current_date:
            raise ReturnDateInPast(return_date)

        changes.update(
            is_active=False,
            end_date=current_date,
            return_to_work_duty_type=duty_type,
            return_to_work_date=return_date,
        )
    elif status == CaseStatus.CLOSED:
        changes.update(
            is_active=False,
            end_date=case.end_date or current_date,
        )
    else:
        changes["is_active"] = True

    entry = JournalEntry(
        status=status,
        updated_at=now,
        updated_by=actor.name,
        updated_by_id=actor.id,
    )
    if status in APPROVAL_STATUSES:
        entry = replace(entry, approved_by=actor.name, approved_at=now)

    updated = replace(case, journal=case.journal + (entry,), **changes)

    return TransitionResult(
        case=updated,
        entry=entry,
        notifications=build_notifications(updated, entry, actor),
    )


def build_notifications(
    case: CaseRecord, entry: JournalEntry, actor: Actor
) -> list[NotificationIntent]:
    """
    One intent per recipient, in order: control-centre users, supervisor,
    team leader, worker.
    """
    status = entry.status
    case_number = case.case_number
    label = status_label(status)
    approving = status in APPROVAL_STATUSES

    if status == CaseStatus.CLOSED:
        action = "closed"
    elif status == CaseStatus.RETURN_TO_WORK:
        action = "marked as return to work"
    else:
        action = f"moved to {label}"
    by = f"{action} and approved by {actor.name}" if approving else f"{action} by {actor.name}"

    suffix = ""
    if status == CaseStatus.RETURN_TO_WORK:
        suffix = (
            f" Duty Type: {format_duty_type_label(case.return_to_work_duty_type)}."
            f" Return Date: {format_return_date(case.return_to_work_date)}."
        )

    data = {
        "case_id": case.id,
        "case_number": case_number,
        "worker_id": case.worker_id,
        "worker_name": case.worker_name,
        "status": status.value,
        "status_label": label,
        "updated_by": actor.name,
        "updated_by_id": actor.id,
    }
    if approving:
        data["approved_by"] = entry.approved_by
        data["approved_at"] = entry.approved_at.isoformat()
    if status == CaseStatus.RETURN_TO_WORK:
        data["return_to_work_duty_type"] = case.return_to_work_duty_type.value
        data["return_to_work_date"] = case.return_to_work_date.isoformat()

    notification_type = "case_closed" if approving else "case_status_updated"
    title = f"Case {label}"
    message = f"Case {case_number} has been {by}. Worker: {case.worker_name}.{suffix}"
    worker_message = f"Your case {case_number} has been {by}.{suffix}"

    recipients: list[tuple[int, UserRole]] = [
        (admin_id, UserRole.WHS_CONTROL_CENTER) for admin_id in case.audience.admin_ids
    ]
    if case.audience.supervisor_id is not None:
        recipients.append((case.audience.supervisor_id, UserRole.SUPERVISOR))
    if case.audience.team_leader_id is not None:
        recipients.append((case.audience.team_leader_id, UserRole.TEAM_LEADER))

    intents = [
        NotificationIntent(
            recipient_id=recipient_id,
            recipient_role=role,
            type=notification_type,
            title=title,
            message=message,
            data=data,
        )
        for recipient_id, role in recipients
    ]
    if case.worker_id is not None:
        intents.append(
            NotificationIntent(
                recipient_id=case.worker_id,
                recipient_role=UserRole.WORKER,
                type=notification_type,
                title=title,
                message=worker_message,
                data=data,
            )
        )
    return intents
