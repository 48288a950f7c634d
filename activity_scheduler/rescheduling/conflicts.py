"""
Conflict Resolution - Make room for late work by bumping other tasks.

When the day an overdue task should move to is already booked, the user
picks which tasks on that day give way:
1. The bumped tasks lose their hours on the target day
2. The overdue task's late hours (every entry before the target day) are
   placed from the target day on, filling the freed slot first
3. The bumped hours are re-queued from the next workday, one task after
   another, behind the overdue work

Invariants:
- resolve_conflict() is pure; writes go through apply_changes()
- No day receiving new hours ends above daily_capacity
- Per-task totals are preserved; if the lookahead runs out nothing is proposed
"""

import logging
from collections.abc import Iterable
from datetime import date

from activity_scheduler import config_store
from activity_scheduler.capacity import aggregate_load, allocate, merge_load
from activity_scheduler.models import ChangeReason, ProposedChange, Task
from activity_scheduler.workdays import WorkCalendar, to_date

logger = logging.getLogger(__name__)


def find_bump_candidates(overdue_task: Task, target_date: date | str, tasks: Iterable[Task]) -> list[Task]:
    """Unfinished tasks of the same resource with hours on target_date."""
    target_key = to_date(target_date).isoformat()
    return [
        t
        for t in tasks
        if t.id != overdue_task.id
        and t.resource == overdue_task.resource
        and not t.is_done
        and t.hours_on(target_key) > 0
    ]


def _change(task: Task, allocation: dict[str, float], reason: ChangeReason, moved: float) -> ProposedChange:
    allocation = dict(sorted(allocation.items()))
    return ProposedChange(
        task_id=task.id,
        new_allocation=allocation,
        new_adjusted_start=min(allocation) if allocation else None,
        new_adjusted_end=max(allocation) if allocation else None,
        resource=task.resource,
        reason=reason,
        previous_end=task.effective_end,
        hours_moved=moved,
    )


def resolve_conflict(
    overdue_task: Task,
    tasks_to_bump: Iterable[Task],
    target_date: date | str,
    tasks: Iterable[Task],
    daily_capacity: float | None = None,
    today: date | None = None,
    calendar: WorkCalendar | None = None,
    max_day_steps: int | None = None,
) -> list[ProposedChange]:
    """
    Propose changes that put overdue work on target_date by bumping others.

    Args:
        overdue_task: The late task to pull onto target_date
        tasks_to_bump: Tasks giving up their hours on target_date
        target_date: Day the overdue work should land on
        tasks: Current task snapshot (the resource's load comes from here)
        daily_capacity: Defaults to the configured capacity
        today: Reference day (defaults to date.today())
        calendar: Weekend definition (defaults to the configured one)
        max_day_steps: Allocator lookahead (defaults to the configured one)

    Returns:
        One change for the overdue task plus one per bumped task, or [] when
        the freed and following capacity cannot hold every hour

    Raises:
        ValueError: If the request does not describe a resolvable conflict
    """
    capacity = daily_capacity if daily_capacity is not None else config_store.get_daily_capacity()
    calendar = calendar or WorkCalendar.from_config()
    steps = (
        max_day_steps
        if max_day_steps is not None
        else int(config_store.get("scheduling.max_day_steps", 365))
    )
    today = today if today is not None else date.today()
    target = to_date(target_date)
    target_key = target.isoformat()

    if not overdue_task.resource:
        raise ValueError(f"Task {overdue_task.id} has no resource")
    if target < today:
        raise ValueError(f"Target date {target_key} is before {today.isoformat()}")

    late = {day: h for day, h in overdue_task.allocation.items() if day < target_key and h > 0}
    hours_to_move = sum(late.values())
    if hours_to_move <= 0:
        raise ValueError(f"Task {overdue_task.id} has no hours before {target_key}")

    bumped: list[Task] = []
    for task in tasks_to_bump:
        if task.id == overdue_task.id:
            raise ValueError(f"Task {task.id} cannot bump itself")
        if task.resource != overdue_task.resource:
            raise ValueError(f"Task {task.id} belongs to {task.resource!r}, not {overdue_task.resource!r}")
        if task.hours_on(target_key) <= 0:
            raise ValueError(f"Task {task.id} has no hours on {target_key}")
        bumped.append(task)

    # Load that stays put, plus what the changed tasks keep
    changed_ids = {overdue_task.id} | {t.id for t in bumped}
    resource_tasks = [t for t in tasks if t.resource == overdue_task.resource]
    load = aggregate_load(resource_tasks, exclude_ids=changed_ids).get(overdue_task.resource, {})

    kept_overdue = {day: h for day, h in overdue_task.allocation.items() if day not in late}
    load = merge_load(load, {d: h for d, h in kept_overdue.items() if h > 0})
    kept_bumped = {}
    for task in bumped:
        kept_bumped[task.id] = {d: h for d, h in task.allocation.items() if d != target_key}
        load = merge_load(load, {d: h for d, h in kept_bumped[task.id].items() if h > 0})

    placed = allocate(
        target,
        hours_to_move,
        capacity,
        load,
        workdays_only=True,
        today=today,
        calendar=calendar,
        max_day_steps=steps,
    )
    if not placed.is_complete:
        logger.warning(
            "Conflict on %s: %.2fh of task %s do not fit; nothing proposed",
            target_key,
            placed.hours_remaining,
            overdue_task.id,
        )
        return []
    load = merge_load(load, placed.allocation)

    changes = [
        _change(
            overdue_task,
            merge_load(kept_overdue, placed.allocation),
            ChangeReason.OVERDUE,
            hours_to_move,
        )
    ]

    requeue_start = calendar.next_workday(target)
    for task in bumped:
        hours = task.hours_on(target_key)
        result = allocate(
            requeue_start,
            hours,
            capacity,
            load,
            workdays_only=True,
            today=today,
            calendar=calendar,
            max_day_steps=steps,
        )
        if not result.is_complete:
            logger.warning(
                "Conflict on %s: bumped task %s cannot be re-queued (%.2fh unplaced); nothing proposed",
                target_key,
                task.id,
                result.hours_remaining,
            )
            return []
        load = merge_load(load, result.allocation)
        new_allocation = merge_load(kept_bumped[task.id], result.allocation)
        changes.append(_change(task, new_allocation, ChangeReason.BUMPED, hours))

    logger.info(
        "Conflict on %s: task %s takes %.2fh, %d task(s) bumped",
        target_key,
        overdue_task.id,
        hours_to_move,
        len(bumped),
    )
    return changes
