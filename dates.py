"""
Calendar-day helpers.
Every comparison between records happens on calendar days (datetime.date)
in the reference timezone, never on raw instants.
"""
import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from config import TIMEZONE
from errors import InvalidDate, InvalidDateRange

DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def ensure_tz_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware.
    SQLite may return naive datetimes even with DateTime(timezone=True);
    naive values are taken to be in the reference timezone.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=TIMEZONE)
    return dt


def now_local() -> datetime:
    """Return current datetime in the reference timezone."""
    return datetime.now(TIMEZONE)


def normalize_to_day(instant: datetime) -> date:
    """Truncate an instant to its calendar day in the reference timezone."""
    return ensure_tz_aware(instant).astimezone(TIMEZONE).date()


def today(now: Optional[datetime] = None) -> date:
    return normalize_to_day(now if now is not None else now_local())


def parse_day(value: str) -> date:
    """
    Parse a YYYY-MM-DD string.

    Raises:
        InvalidDate: malformed string or impossible date (e.g. 2024-02-30)
    """
    if not isinstance(value, str) or not DAY_PATTERN.match(value.strip()):
        raise InvalidDate(value)
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise InvalidDate(value) from None


def coerce_day(value: Union[str, date, datetime]) -> date:
    """Accept a day, an instant or a YYYY-MM-DD string and return the day."""
    if isinstance(value, datetime):
        return normalize_to_day(value)
    if isinstance(value, date):
        return value
    return parse_day(value)


def format_day(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def days_between(a: date, b: date) -> int:
    """Whole days from a to b (negative when b is before a)."""
    return (b - a).days


def add_days(day: date, n: int) -> date:
    return day + timedelta(days=n)


def start_of_day(day: date) -> datetime:
    """Midnight of the given day in the reference timezone."""
    return datetime.combine(day, time.min, tzinfo=TIMEZONE)


def validate_date_range(start: date, end: Optional[date]) -> None:
    """
    Reject ranges whose end falls before their start.
    An absent end means open-ended and is always valid.
    """
    if end is not None and end < start:
        raise InvalidDateRange(
            f"end_date {format_day(end)} must be greater than or equal to "
            f"start_date {format_day(start)}"
        )
