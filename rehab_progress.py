"""
Rehabilitation plan day progression.
All progress is computed on-the-fly from the plan dates, its exercises and
the completion marks; nothing here is stored.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Protocol, Sequence

from config import REHAB_ROLLOVER_HOUR
from dates import (
    add_days,
    days_between,
    ensure_tz_aware,
    normalize_to_day,
    parse_day,
    start_of_day,
)
from models import DayStatus


class ExerciseLike(Protocol):
    id: str
    exercise_order: int


class PlanLike(Protocol):
    start_date: date
    end_date: date
    exercises: Sequence[ExerciseLike]


@dataclass(frozen=True)
class Exercise:
    id: str
    exercise_order: int = 0


@dataclass(frozen=True)
class PlanWindow:
    start_date: date
    end_date: date
    exercises: tuple[Exercise, ...] = ()


@dataclass
class DayProgress:
    day_number: int
    date: date
    status: DayStatus
    exercises_completed: int
    total_exercises: int
    is_fully_completed: bool


@dataclass(frozen=True)
class RehabProgress:
    daily_progress: list[DayProgress]
    current_day: int
    days_completed: int
    progress_percent: int
    total_days: int


def total_days(start_date: date, end_date: date) -> int:
    """Inclusive day count; start and end both count. Never less than 1."""
    return max(1, days_between(start_date, end_date) + 1)


def rollover_instant(day: date, rollover_hour: int = REHAB_ROLLOVER_HOUR) -> datetime:
    """Instant after which a completed day hands over to the next one."""
    return start_of_day(add_days(day, 1)) + timedelta(hours=rollover_hour)


def round_percent(part: int, whole: int) -> int:
    """Percentage rounded half up (12.5 -> 13)."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def group_completions(completions: Iterable) -> dict[date, set[str]]:
    """
    Group completion records by day.

    Accepts records with exercise_id and completion_date, where the date may
    be a date, a datetime or an ISO string. Duplicates collapse.
    """
    by_day: dict[date, set[str]] = {}
    for completion in completions:
        value = completion.completion_date
        if isinstance(value, datetime):
            day = normalize_to_day(value)
        elif isinstance(value, date):
            day = value
        else:
            day = parse_day(str(value).split("T")[0])
        by_day.setdefault(day, set()).add(completion.exercise_id)
    return by_day


def compute_progress(
    plan: PlanLike,
    completions: Mapping[date, Iterable[str]],
    now: datetime,
    rollover_hour: int = REHAB_ROLLOVER_HOUR,
) -> RehabProgress:
    """
    Compute the daily grid, current day and overall progress of a plan.

    Rules:
    - Day 1 is start_date; the plan has total_days(start, end) days
    - A day is fully completed when every exercise has a completion mark
    - Walking forward from day 1, the current day is the first day that is
      in the future, not fully completed, or fully completed but still
      before rollover_hour on the following calendar day
    - A plan without exercises stays on its first non-future day
    - progress_percent = days_completed / total_days, rounded half up

    Args:
        plan: Object with start_date, end_date and exercises (id, exercise_order)
        completions: Day -> exercise ids completed that day
        now: Current instant (naive values are in the reference timezone)
        rollover_hour: Hour of the next day at which a completed day rolls over

    Returns:
        RehabProgress
    """
    now = ensure_tz_aware(now)
    current_date = normalize_to_day(now)
    exercise_ids = [ex.id for ex in sorted(plan.exercises, key=lambda ex: ex.exercise_order)]
    n_days = total_days(plan.start_date, plan.end_date)

    daily_progress: list[DayProgress] = []
    for offset in range(n_days):
        day = add_days(plan.start_date, offset)
        done = set(completions.get(day, ()))
        fully_completed = bool(exercise_ids) and all(ex_id in done for ex_id in exercise_ids)

        if day > current_date:
            status = DayStatus.PENDING
        elif fully_completed:
            status = DayStatus.COMPLETED
        else:
            status = DayStatus.CURRENT

        daily_progress.append(
            DayProgress(
                day_number=offset + 1,
                date=day,
                status=status,
                exercises_completed=sum(1 for ex_id in exercise_ids if ex_id in done),
                total_exercises=len(exercise_ids),
                is_fully_completed=fully_completed,
            )
        )

    current_day = 1
    days_completed = 0

    for offset, day_progress in enumerate(daily_progress):
        day_number = day_progress.day_number

        if day_progress.date > current_date:
            current_day = day_number
            break

        if not exercise_ids:
            current_day = day_number
            break

        if not day_progress.is_fully_completed:
            current_day = day_number
            break

        days_completed += 1

        if offset == n_days - 1:
            current_day = n_days
            break

        if now >= rollover_instant(day_progress.date, rollover_hour):
            current_day = day_number + 1
            continue

        # Completed, but the rollover gate has not passed yet
        current_day = day_number
        break

    current_day = min(max(current_day, 1), n_days)

    for day_progress in daily_progress:
        if day_progress.day_number == current_day and not day_progress.is_fully_completed:
            day_progress.status = DayStatus.CURRENT
        elif day_progress.day_number > current_day:
            day_progress.status = DayStatus.PENDING
        elif day_progress.is_fully_completed and day_progress.day_number < current_day:
            day_progress.status = DayStatus.COMPLETED

    return RehabProgress(
        daily_progress=daily_progress,
        current_day=current_day,
        days_completed=days_completed,
        progress_percent=round_percent(days_completed, n_days),
        total_days=n_days,
    )
