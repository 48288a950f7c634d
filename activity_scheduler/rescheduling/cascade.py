"""
Cascade Rescheduler - Re-flow overdue and today's work onto future workdays.

Two phases:
1. simulate() - pure preview: which tasks move and where their hours land
2. apply() - writes accepted changes through the Task Store, one by one

Each resource's tasks are re-placed earliest-due first. Hours placed for one
task are added to the resource's load before the next task is placed, so
later tasks cascade behind earlier ones instead of overlapping them.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from activity_scheduler import config_store
from activity_scheduler.capacity import aggregate_load, allocate, merge_load
from activity_scheduler.models import ApplyReport, ChangeReason, ProposedChange, Task, TaskStatus
from activity_scheduler.rescheduling.apply import apply_changes
from activity_scheduler.workdays import WorkCalendar, to_date

logger = logging.getLogger(__name__)

# Tasks without any date sort after every dated task
_NO_DATE = "9999-12-31"


def is_overdue(task: Task, today: date) -> bool:
    """Not done and its effective end (adjusted, else planned) is before today."""
    if task.is_done:
        return False
    end = task.effective_end
    if not end:
        return False
    return to_date(end) < today


def _original_due(task: Task) -> str:
    return task.planned_end or task.planned_start or _NO_DATE


def _normalize_filter(resource_filter: str | Iterable[str] | None) -> set[str] | None:
    if resource_filter is None:
        return None
    if isinstance(resource_filter, str):
        return {resource_filter}
    return set(resource_filter)


def summarize(changes: list[ProposedChange]) -> dict:
    """Aggregate figures for a change preview."""
    return {
        "tasks_rescheduled": len(changes),
        "resources_affected": len({c.resource for c in changes if c.resource}),
        "hours_moved": round(sum(c.hours_moved for c in changes), 2),
        "hours_unallocated": round(sum(c.hours_unallocated for c in changes), 2),
        "incomplete": [c.task_id for c in changes if not c.is_complete],
    }


class CascadeRescheduler:
    """
    Reschedules overdue tasks and tasks booked for today.

    Classification:
    - overdue: not done, effective end before today -> re-place remaining hours
    - scheduled today: not done, hours booked today -> re-place today's hours

    Constraints:
    - Work not being moved stays put and counts against capacity
    - Nothing lands before the next workday after today
    - No day exceeds daily_capacity for newly placed hours
    """

    def __init__(
        self,
        daily_capacity: float | None = None,
        calendar: WorkCalendar | None = None,
        max_day_steps: int | None = None,
    ):
        self.daily_capacity = (
            daily_capacity if daily_capacity is not None else config_store.get_daily_capacity()
        )
        self.calendar = calendar or WorkCalendar.from_config()
        self.max_day_steps = (
            max_day_steps
            if max_day_steps is not None
            else int(config_store.get("scheduling.max_day_steps", 365))
        )

    def classify(self, tasks: list[Task], today: date) -> tuple[list[Task], list[Task]]:
        """
        Split tasks into (overdue, scheduled_today).

        A task that is overdue is never also counted as scheduled today.
        """
        today_key = today.isoformat()
        overdue = [t for t in tasks if is_overdue(t, today)]
        overdue_ids = {t.id for t in overdue}
        scheduled_today = [
            t
            for t in tasks
            if t.id not in overdue_ids and not t.is_done and t.hours_on(today_key) > 0
        ]
        return overdue, scheduled_today

    def simulate(
        self,
        all_tasks: list[Task],
        today: date | None = None,
        resource_filter: str | Iterable[str] | None = None,
    ) -> list[ProposedChange]:
        """
        Preview the cascade without touching any store.

        Args:
            all_tasks: Current task snapshot
            today: Reference day (defaults to date.today())
            resource_filter: Restrict to one or more resources

        Returns:
            One ProposedChange per task that received new hours
        """
        today = today if today is not None else date.today()
        today_key = today.isoformat()

        resources = _normalize_filter(resource_filter)
        if resources is not None:
            all_tasks = [t for t in all_tasks if t.resource in resources]

        overdue, scheduled_today = self.classify(all_tasks, today)
        logger.info(
            "Cascade %s: %d overdue, %d scheduled today", today_key, len(overdue), len(scheduled_today)
        )

        to_move = overdue + scheduled_today
        if not to_move:
            return []

        overdue_ids = {t.id for t in overdue}
        moving_ids = {t.id for t in to_move}

        # Work that stays where it is
        fixed_load = aggregate_load(all_tasks, exclude_ids=moving_ids)

        by_resource: dict[str, list[Task]] = defaultdict(list)
        for task in to_move:
            if not task.resource:
                logger.warning("Task %s has no resource; skipping reschedule", task.id)
                continue
            by_resource[task.resource].append(task)

        start = self.calendar.next_workday(today)
        changes: list[ProposedChange] = []

        for resource, tasks in by_resource.items():
            load = fixed_load.get(resource, {})
            for task in sorted(tasks, key=_original_due):
                if task.id in overdue_ids:
                    hours = task.remaining_hours
                    reason = ChangeReason.OVERDUE
                else:
                    hours = task.hours_on(today_key)
                    reason = ChangeReason.SCHEDULED_TODAY

                if hours <= 0:
                    logger.debug("Task %s has no remaining hours; skipping", task.id)
                    continue

                change, load = self._reschedule_task(task, hours, reason, load, start, today)
                if change is not None:
                    changes.append(change)

        logger.info("Cascade %s: %d changes proposed", today_key, len(changes))
        return changes

    def _reschedule_task(
        self,
        task: Task,
        hours: float,
        reason: ChangeReason,
        load: dict[str, float],
        start: date,
        today: date,
    ) -> tuple[ProposedChange | None, dict[str, float]]:
        """
        Place one task's hours against the resource's current load.

        Returns the change (None when nothing could be placed) and the load
        including the newly placed hours.
        """
        result = allocate(
            start,
            hours,
            self.daily_capacity,
            load,
            workdays_only=True,
            today=today,
            calendar=self.calendar,
            max_day_steps=self.max_day_steps,
        )

        if not result.allocation:
            logger.warning("No capacity found for task %s (%.2fh)", task.id, hours)
            return None, load

        unplaced = 0.0 if result.is_complete else result.hours_remaining
        change = ProposedChange(
            task_id=task.id,
            new_allocation=result.allocation,
            new_adjusted_start=result.start_date,
            new_adjusted_end=result.end_date,
            new_status=TaskStatus.NOT_STARTED,
            resource=task.resource,
            reason=reason,
            previous_end=task.effective_end,
            hours_moved=result.allocated_hours,
            hours_unallocated=unplaced,
        )
        logger.debug(
            "Task %s (%s): %.2fh -> %s..%s", task.id, reason, hours, result.start_date, result.end_date
        )
        return change, merge_load(load, result.allocation)

    def apply(self, changes: list[ProposedChange], task_store) -> ApplyReport:
        """Write accepted changes through the Task Store (best effort, per change)."""
        return apply_changes(changes, task_store)
