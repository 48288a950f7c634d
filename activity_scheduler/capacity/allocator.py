"""
Capacity Allocator - Spread a task's hours across workdays.

Greedy first-fit walk over the calendar:
- Never allocates more than daily_capacity - existing_load[day] on a day
- Never allocates into the past (days before `today`)
- Skips weekends unless workdays_only is False
- Bounded lookahead: gives up after MAX_DAY_STEPS calendar days

The result says explicitly whether every hour found a slot.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta

from activity_scheduler.models import Task
from activity_scheduler.workdays import DEFAULT_CALENDAR, WorkCalendar, to_date

logger = logging.getLogger(__name__)

DEFAULT_DAILY_CAPACITY = 8.0
MAX_DAY_STEPS = 365

# Free capacity below this on a predecessor's last day counts as a full day
_CAPACITY_TOLERANCE = 0.01


@dataclass
class AllocationResult:
    allocation: dict[str, float] = field(default_factory=dict)
    end_date: str | None = None

    @property
    def allocated_hours(self) -> float:
        return sum(self.allocation.values())

    @property
    def start_date(self) -> str | None:
        return min(self.allocation) if self.allocation else None


@dataclass
class CompleteAllocation(AllocationResult):
    """Every requested hour was placed."""

    @property
    def is_complete(self) -> bool:
        return True


@dataclass
class PartialAllocation(AllocationResult):
    """Lookahead exhausted before every hour was placed."""

    hours_remaining: float = 0.0

    @property
    def is_complete(self) -> bool:
        return False


def allocate(
    start_date: date | str,
    total_hours: float,
    daily_capacity: float = DEFAULT_DAILY_CAPACITY,
    existing_load: dict[str, float] | None = None,
    workdays_only: bool = True,
    today: date | None = None,
    calendar: WorkCalendar | None = None,
    max_day_steps: int = MAX_DAY_STEPS,
) -> CompleteAllocation | PartialAllocation:
    """
    Distribute total_hours across days starting at start_date.

    Args:
        start_date: First candidate day
        total_hours: Hours to place (<= 0 yields an empty result)
        daily_capacity: Per-day ceiling for the resource
        existing_load: Hours already committed per ISO day (not mutated)
        workdays_only: Skip non-working days
        today: Days before this are never used (defaults to date.today())
        calendar: Weekend definition (defaults to Saturday/Sunday)
        max_day_steps: Calendar days walked before giving up

    Returns:
        CompleteAllocation, or PartialAllocation carrying hours_remaining
    """
    if total_hours <= 0:
        return CompleteAllocation()

    calendar = calendar or DEFAULT_CALENDAR
    load = existing_load or {}
    floor = today if today is not None else date.today()
    current = to_date(start_date)

    remaining = total_hours
    result: dict[str, float] = {}
    steps = 0

    while remaining > 0 and steps < max_day_steps:
        steps += 1
        day = current
        current = current + timedelta(days=1)

        if workdays_only and not calendar.is_workday(day):
            continue
        if day < floor:
            continue

        key = day.isoformat()
        available = daily_capacity - load.get(key, 0.0)
        if available <= 0:
            continue

        hours = min(available, remaining)
        result[key] = result.get(key, 0.0) + hours
        remaining -= hours

    end_date = max(result) if result else None

    if remaining > 0:
        logger.warning(
            "Allocation incomplete after %d day steps from %s: %.2fh of %.2fh unplaced",
            steps,
            to_date(start_date).isoformat(),
            remaining,
            total_hours,
        )
        return PartialAllocation(allocation=result, end_date=end_date, hours_remaining=remaining)

    return CompleteAllocation(allocation=result, end_date=end_date)


def start_after_predecessor(
    predecessor: Task | None,
    existing_load: dict[str, float] | None = None,
    daily_capacity: float = DEFAULT_DAILY_CAPACITY,
    today: date | None = None,
    calendar: WorkCalendar | None = None,
) -> date:
    """
    Earliest start day for a task that follows `predecessor`.

    Starts on the predecessor's last allocated day while that day still has
    free capacity, otherwise on the following workday. Without a usable
    predecessor the task starts on the next workday after today.
    """
    calendar = calendar or DEFAULT_CALENDAR
    today = today if today is not None else date.today()

    if predecessor is None or not predecessor.allocation:
        return calendar.next_workday(today)

    last_day = max(predecessor.allocation)
    load = existing_load or {}
    free = daily_capacity - load.get(last_day, 0.0)

    if free > _CAPACITY_TOLERANCE:
        logger.debug("Predecessor %s last day %s has %.2fh free", predecessor.id, last_day, free)
        return to_date(last_day)

    return calendar.next_workday(to_date(last_day))
