"""
Workload - Aggregate per-resource daily load and flag overload.

Tracks:
- Hours committed per resource per ISO day
- Days where a resource is booked beyond daily capacity
- Utilization per day

Load maps are treated as values: merge_load() returns a new map and never
mutates its inputs, so a cascade can thread the load through each step.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from activity_scheduler.models import Task

logger = logging.getLogger(__name__)


@dataclass
class CapacityConflict:
    resource: str
    date: str
    load: float
    excess: float


@dataclass
class DayUtilization:
    date: str
    capacity: float
    scheduled: float
    available: float
    utilization_pct: float
    is_overloaded: bool


def merge_load(load: dict[str, float], allocation: dict[str, float]) -> dict[str, float]:
    """Return a new load map with allocation's hours added."""
    merged = dict(load)
    for day, hours in allocation.items():
        merged[day] = merged.get(day, 0.0) + hours
    return merged


def daily_totals(tasks: Iterable[Task]) -> dict[str, float]:
    """Total positive hours per day across tasks."""
    totals: dict[str, float] = {}
    for task in tasks:
        for day, hours in task.allocation.items():
            if hours > 0:
                totals[day] = totals.get(day, 0.0) + hours
    return totals


def aggregate_load(
    tasks: Iterable[Task], exclude_ids: set[str] | None = None
) -> dict[str, dict[str, float]]:
    """
    Per-resource, per-day committed hours.

    Tasks without a resource and non-positive entries are ignored.
    """
    exclude_ids = exclude_ids or set()
    by_resource: dict[str, dict[str, float]] = defaultdict(dict)

    for task in tasks:
        if task.id in exclude_ids or not task.resource:
            continue
        days = by_resource[task.resource]
        for day, hours in task.allocation.items():
            if hours > 0:
                days[day] = days.get(day, 0.0) + hours

    return dict(by_resource)


def detect_conflicts(
    load_by_resource: dict[str, dict[str, float]], daily_capacity: float
) -> list[CapacityConflict]:
    """Days on which a resource is booked above daily capacity."""
    conflicts = []
    for resource in sorted(load_by_resource):
        days = load_by_resource[resource]
        for day in sorted(days):
            load = days[day]
            if load > daily_capacity:
                conflicts.append(
                    CapacityConflict(
                        resource=resource,
                        date=day,
                        load=load,
                        excess=load - daily_capacity,
                    )
                )
    if conflicts:
        logger.info("Detected %d over-capacity resource days", len(conflicts))
    return conflicts


def utilization(load: dict[str, float], daily_capacity: float) -> list[DayUtilization]:
    """Utilization per day for one resource's load map."""
    rows = []
    for day in sorted(load):
        scheduled = load[day]
        rows.append(
            DayUtilization(
                date=day,
                capacity=daily_capacity,
                scheduled=scheduled,
                available=max(0.0, daily_capacity - scheduled),
                utilization_pct=round(scheduled / daily_capacity * 100, 1) if daily_capacity else 0.0,
                is_overloaded=scheduled > daily_capacity,
            )
        )
    return rows
