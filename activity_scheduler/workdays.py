"""
Workdays - weekend-only business calendar and ISO date helpers.

All workday math for the scheduler flows through this module:
- WorkCalendar knows which weekdays are non-working (no holiday calendar).
- Day→hours maps are keyed by ISO-8601 date strings ("2024-06-10").
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta

from activity_scheduler import config_store

logger = logging.getLogger(__name__)

_DEFAULT_WEEKEND_DAYS = (5, 6)  # Saturday, Sunday


def to_date(value: date | str) -> date:
    """
    Coerce an ISO date string (or date/datetime) to a date.

    Raises:
        ValueError: If the string is not an ISO-8601 date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO date string, got {type(value).__name__}")
    # Accept "YYYY-MM-DD" as well as full timestamps
    return date.fromisoformat(value.strip()[:10])


def to_key(value: date | str) -> str:
    """Normalize a date to its ISO day key."""
    return to_date(value).isoformat()


class WorkCalendar:
    """
    Weekend-only business calendar.

    Loads weekend days from the scheduler config when built via from_config().
    """

    def __init__(self, weekend_days: Iterable[int] | None = None):
        self._weekend_days = frozenset(
            _DEFAULT_WEEKEND_DAYS if weekend_days is None else weekend_days
        )
        if len(self._weekend_days) >= 7:
            raise ValueError("Calendar must have at least one working weekday")

    @classmethod
    def from_config(cls, config: dict | None = None) -> "WorkCalendar":
        weekend = config_store.get("calendar.weekend_days", list(_DEFAULT_WEEKEND_DAYS), config=config)
        return cls(weekend)

    @property
    def weekend_days(self) -> frozenset[int]:
        return self._weekend_days

    def is_weekend(self, d: date) -> bool:
        return d.weekday() in self._weekend_days

    def is_workday(self, d: date) -> bool:
        return not self.is_weekend(d)

    def next_workday(self, d: date, include_self: bool = False) -> date:
        """First workday after d (or d itself when include_self and d is a workday)."""
        current = d if include_self else d + timedelta(days=1)
        while self.is_weekend(current):
            current += timedelta(days=1)
        return current

    def previous_workday(self, d: date) -> date:
        """Last workday strictly before d."""
        current = d - timedelta(days=1)
        while self.is_weekend(current):
            current -= timedelta(days=1)
        return current

    def workdays_between(self, start: date, end: date) -> int:
        """
        Count workdays in [start, end). Negative if start > end.
        """
        if start == end:
            return 0
        sign = 1
        if start > end:
            start, end = end, start
            sign = -1
        count = 0
        current = start
        while current < end:
            if self.is_workday(current):
                count += 1
            current += timedelta(days=1)
        return sign * count


DEFAULT_CALENDAR = WorkCalendar()


def is_workday(d: date) -> bool:
    return DEFAULT_CALENDAR.is_workday(d)


def next_workday(d: date, include_self: bool = False) -> date:
    return DEFAULT_CALENDAR.next_workday(d, include_self=include_self)


def previous_workday(d: date) -> date:
    return DEFAULT_CALENDAR.previous_workday(d)
