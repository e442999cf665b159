"""
Calendar-day arithmetic for the ledger.

The ledger never carries time-of-day precision: every date that enters
the engine is collapsed to a `datetime.date`, and every date that leaves
it is an ISO `YYYY-MM-DD` string.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Union

from dateutil.relativedelta import relativedelta

DateLike = Union[date, datetime, str]

SATURDAY = 5
SUNDAY = 6


def to_date(value: DateLike) -> date:
    """
    Normalize a date-like value to a calendar day.

    Accepts `date`, `datetime` and ISO 8601 strings (with or without a
    time part or trailing Z). Time-of-day is dropped, not converted.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Date string cannot be empty")
        try:
            return date.fromisoformat(text[:10])
        except ValueError as exc:
            raise ValueError(f"Invalid date: {value!r}") from exc
    raise TypeError(f"Unsupported date value: {value!r}")


def to_date_string(value: DateLike) -> str:
    """Canonical day-only string."""
    return to_date(value).isoformat()


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a month."""
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def add_months_clamped(base: date, months: int, day: int) -> date:
    """
    Shift `base` by whole months and place the result on `day`,
    clamped to the length of the target month.

    add_months_clamped(date(2024, 1, 31), 1, 31) -> 2024-02-29
    """
    target = base + relativedelta(months=months)
    return target.replace(day=min(day, days_in_month(target.year, target.month)))


def is_weekend(value: date) -> bool:
    return value.weekday() in (SATURDAY, SUNDAY)


def apply_weekend_handling(value: date, handling: str) -> date:
    """
    Move a date off the weekend.

    BEFORE: Saturday -1 day, Sunday -2 days (previous Friday).
    AFTER:  Saturday +2 days, Sunday +1 day (following Monday).

    `handling` is a WeekendHandling member or its string value.
    """
    if handling == "NONE" or not is_weekend(value):
        return value
    is_saturday = value.weekday() == SATURDAY
    if handling == "BEFORE":
        return value - timedelta(days=1 if is_saturday else 2)
    return value + timedelta(days=2 if is_saturday else 1)


class Clock:
    """Source of "today" for the engine."""

    def today(self) -> date:
        return date.today()


class FixedClock(Clock):
    """A clock frozen on one day. Used by tests and batch replays."""

    def __init__(self, current: DateLike):
        self._current = to_date(current)

    def today(self) -> date:
        return self._current

    def advance(self, days: int = 1) -> date:
        self._current = self._current + timedelta(days=days)
        return self._current
