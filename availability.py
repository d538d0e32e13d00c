"""
Exception activity rules.
Decides whether a worker exception (injury, leave, transfer, ...) is active on
a calendar day, and whether it conflicts with a proposed date range.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional, Protocol, TypeVar

from dates import add_days, days_between, normalize_to_day

EXCEPTION_TYPE_LABELS: dict[str, str] = {
    "transfer": "Transfer",
    "accident": "Accident",
    "injury": "Injury",
    "medical_leave": "Medical Leave",
    "other": "Other",
}


class ExceptionLike(Protocol):
    start_date: date
    end_date: Optional[date]
    is_active: Optional[bool]
    deactivated_at: Optional[datetime]


E = TypeVar("E", bound=ExceptionLike)


@dataclass(frozen=True)
class ExceptionWindow:
    """Plain exception record for callers without an ORM row."""

    id: str
    worker_id: int
    exception_type: str
    start_date: date
    end_date: Optional[date] = None
    is_active: Optional[bool] = True
    deactivated_at: Optional[datetime] = None
    reason: Optional[str] = None


def get_exception_type_label(exception_type) -> str:
    key = getattr(exception_type, "value", exception_type)
    return EXCEPTION_TYPE_LABELS.get(key, str(key))


def is_active_on(exception: ExceptionLike, day: date) -> bool:
    """
    Check if an exception is active on a calendar day.

    Order of checks:
    - explicit is_active=False short-circuits
    - deactivated on or before the day means inactive
    - day must fall inside [start_date, end_date] (open-ended when no end_date)
    """
    if exception.is_active is False:
        return False

    if exception.deactivated_at is not None:
        if normalize_to_day(exception.deactivated_at) <= day:
            return False

    if day < exception.start_date:
        return False

    if exception.end_date is None:
        return True

    return day <= exception.end_date


def active_exceptions_on(exceptions: Iterable[E], day: date) -> list[E]:
    """Filter exceptions active on the given day, keeping input order."""
    return [exception for exception in exceptions if is_active_on(exception, day)]


def workers_with_active_exceptions(exceptions: Iterable, day: date) -> set:
    """Worker ids that have at least one exception active on the day."""
    return {exception.worker_id for exception in exceptions if is_active_on(exception, day)}


def ranges_overlap(
    start_a: date, end_a: Optional[date], start_b: date, end_b: Optional[date]
) -> bool:
    """Inclusive overlap test; a missing end means the range is open-ended."""
    if end_b is not None and start_a > end_b:
        return False
    if end_a is not None and end_a < start_b:
        return False
    return True


def sample_days(range_start: date, range_end: date) -> list[date]:
    """Start, end and midpoint days of a range."""
    midpoint = add_days(range_start, days_between(range_start, range_end) // 2)
    return [range_start, range_end, midpoint]


def find_conflict(
    exceptions: Iterable[E], range_start: date, range_end: date
) -> Optional[E]:
    """
    Return the first exception that conflicts with [range_start, range_end].

    Candidates are exceptions whose dates overlap the range. A candidate
    conflicts when it is active on the range start, end or midpoint day.

    Known approximation: the three-point sample is not an exhaustive
    day-by-day scan. A None result does not prove the worker is available on
    every day of the range.
    """
    samples = sample_days(range_start, range_end)

    for exception in exceptions:
        if not ranges_overlap(exception.start_date, exception.end_date, range_start, range_end):
            continue
        for day in samples:
            if is_active_on(exception, day):
                return exception

    return None
