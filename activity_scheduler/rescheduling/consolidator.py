"""
Consolidator - Merge a resource's under-used days into fuller ones.

A day is fragmented when the resource's total booked hours on it are above
zero but below daily_capacity x utilization_threshold. Hours on fragmented
days are pulled out, re-allocated from the next workday against the
resource's remaining load, and handed back to each task in proportion to
what it lost.

Invariants:
- Per-task totals are preserved: slivers below min_entry_hours are dropped
  and their hours handed back to the task's days that still have room
- No redistribution day ends above daily_capacity
- When the lookahead cannot place every removed hour nothing is proposed
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from activity_scheduler import config_store
from activity_scheduler.capacity import allocate, daily_totals, merge_load
from activity_scheduler.models import ApplyReport, ChangeReason, ProposedChange, Task
from activity_scheduler.rescheduling.apply import apply_changes
from activity_scheduler.workdays import WorkCalendar

logger = logging.getLogger(__name__)

_RESIDUAL_EPSILON = 1e-9


class Consolidator:
    """
    Proposes consolidation changes for one resource at a time.

    Thresholds default to the consolidation.* keys of the scheduler config.
    """

    def __init__(
        self,
        daily_capacity: float | None = None,
        utilization_threshold: float | None = None,
        min_entry_hours: float | None = None,
        calendar: WorkCalendar | None = None,
        max_day_steps: int | None = None,
    ):
        self.daily_capacity = (
            daily_capacity if daily_capacity is not None else config_store.get_daily_capacity()
        )
        self.utilization_threshold = (
            utilization_threshold
            if utilization_threshold is not None
            else float(config_store.get("consolidation.utilization_threshold", 0.7))
        )
        self.min_entry_hours = (
            min_entry_hours
            if min_entry_hours is not None
            else float(config_store.get("consolidation.min_entry_hours", 0.1))
        )
        self.calendar = calendar or WorkCalendar.from_config()
        self.max_day_steps = (
            max_day_steps
            if max_day_steps is not None
            else int(config_store.get("scheduling.max_day_steps", 365))
        )

    def fragmented_days(self, totals: dict[str, float], daily_capacity: float, threshold: float) -> list[str]:
        limit = daily_capacity * threshold
        return sorted(day for day, total in totals.items() if 0 < total < limit)

    def consolidate(
        self,
        resource_tasks: list[Task],
        daily_capacity: float | None = None,
        utilization_threshold: float | None = None,
        today: date | None = None,
    ) -> list[ProposedChange]:
        """
        Propose changes that pack fragmented days for one resource.

        Args:
            resource_tasks: Every task of a single resource
            daily_capacity: Overrides the configured capacity
            utilization_threshold: Overrides the configured threshold
            today: Reference day (defaults to date.today())

        Returns:
            One ProposedChange per task that had hours on a fragmented day
        """
        capacity = daily_capacity if daily_capacity is not None else self.daily_capacity
        threshold = (
            utilization_threshold if utilization_threshold is not None else self.utilization_threshold
        )
        today = today if today is not None else date.today()

        tasks = [t for t in resource_tasks if t.resource]
        skipped = len(resource_tasks) - len(tasks)
        if skipped:
            logger.warning("Consolidation skipped %d task(s) without a resource", skipped)

        totals = daily_totals(tasks)
        fragmented = set(self.fragmented_days(totals, capacity, threshold))
        if not fragmented:
            logger.debug("No fragmented days to consolidate")
            return []

        # Pull fragmented hours out of working copies
        kept: dict[str, dict[str, float]] = {}
        removed: dict[str, float] = defaultdict(float)
        affected: list[Task] = []

        for task in tasks:
            hits = {day: h for day, h in task.allocation.items() if day in fragmented and h > 0}
            if not hits:
                continue
            affected.append(task)
            kept[task.id] = {day: h for day, h in task.allocation.items() if day not in hits}
            removed[task.id] = sum(hits.values())

        to_redistribute = sum(removed.values())
        if to_redistribute <= 0:
            return []

        remaining_load = {day: total for day, total in totals.items() if day not in fragmented}
        start = self.calendar.next_workday(today)
        result = allocate(
            start,
            to_redistribute,
            capacity,
            remaining_load,
            workdays_only=True,
            today=today,
            calendar=self.calendar,
            max_day_steps=self.max_day_steps,
        )
        if not result.is_complete:
            logger.warning(
                "Not enough capacity to consolidate %.2fh (%.2fh unplaced); leaving schedule as is",
                to_redistribute,
                result.hours_remaining,
            )
            return []

        logger.info(
            "Consolidating %d fragmented day(s): %.2fh across %d task(s)",
            len(fragmented),
            to_redistribute,
            len(affected),
        )

        new_entries = {
            task.id: self._split(result.allocation, removed[task.id] / to_redistribute)
            for task in affected
        }

        # Free room per redistribution day once every task's split is booked
        booked = remaining_load
        for entries in new_entries.values():
            booked = merge_load(booked, entries)
        room = {day: capacity - booked.get(day, 0.0) for day in result.allocation}

        changes = []
        for task in affected:
            entries = new_entries[task.id]
            self._place_residual(entries, removed[task.id] - sum(entries.values()), room)

            allocation = dict(kept[task.id])
            for day, hours in entries.items():
                allocation[day] = allocation.get(day, 0.0) + hours

            changes.append(
                ProposedChange(
                    task_id=task.id,
                    new_allocation=dict(sorted(allocation.items())),
                    new_adjusted_start=min(allocation) if allocation else None,
                    new_adjusted_end=max(allocation) if allocation else None,
                    resource=task.resource,
                    reason=ChangeReason.CONSOLIDATION,
                    previous_end=task.effective_end,
                    hours_moved=removed[task.id],
                    hours_unallocated=0.0,
                )
            )

        return changes

    def _split(self, allocation: dict[str, float], share: float) -> dict[str, float]:
        """One task's slice of a shared allocation, without entries below min_entry_hours."""
        entries = {}
        for day in sorted(allocation):
            hours = allocation[day] * share
            if hours >= self.min_entry_hours:
                entries[day] = hours
        return entries

    def _place_residual(self, entries: dict[str, float], residual: float, room: dict[str, float]) -> None:
        """
        Hand a task's dropped slivers back to days that still have room.

        The task's own days are tried largest first, then the remaining
        redistribution days in date order. Mutates entries and room.
        """
        own = sorted(entries, key=lambda d: (-entries[d], d))
        candidates = own + [day for day in sorted(room) if day not in entries]
        for day in candidates:
            if residual <= _RESIDUAL_EPSILON:
                break
            take = min(residual, room[day])
            if take <= 0:
                continue
            entries[day] = entries.get(day, 0.0) + take
            room[day] -= take
            residual -= take

        # Float drift only; room across the allocation always covers the slivers
        if abs(residual) > 0 and candidates:
            day = next((d for d in candidates if d in entries), candidates[0])
            entries[day] = entries.get(day, 0.0) + residual

    def apply(self, changes: list[ProposedChange], task_store) -> ApplyReport:
        return apply_changes(changes, task_store)


def consolidate_project(
    tasks: Iterable[Task],
    daily_capacity: float | None = None,
    utilization_threshold: float | None = None,
    today: date | None = None,
    consolidator: Consolidator | None = None,
) -> tuple[list[ProposedChange], dict]:
    """
    Run the Consolidator for every resource found in tasks.

    Returns:
        (changes, summary) where summary holds changes and resources_affected
    """
    consolidator = consolidator or Consolidator()

    by_resource: dict[str, list[Task]] = defaultdict(list)
    for task in tasks:
        if task.resource:
            by_resource[task.resource].append(task)

    changes: list[ProposedChange] = []
    affected = 0
    for resource in sorted(by_resource):
        resource_changes = consolidator.consolidate(
            by_resource[resource],
            daily_capacity=daily_capacity,
            utilization_threshold=utilization_threshold,
            today=today,
        )
        if resource_changes:
            affected += 1
            changes.extend(resource_changes)

    summary = {"changes": len(changes), "resources_affected": affected}
    logger.info("Project consolidation: %d change(s) across %d resource(s)", len(changes), affected)
    return changes, summary
