"""
Capacity Module

Places hours on a resource's calendar and measures the resulting load.

Objects:
- AllocationResult (CompleteAllocation | PartialAllocation)
- CapacityConflict (a resource day booked above capacity)

Invariants:
- Newly allocated hours never push a day above daily capacity
- Nothing is allocated before today
- Allocation never mutates the load it is given
"""

from .allocator import (
    DEFAULT_DAILY_CAPACITY,
    MAX_DAY_STEPS,
    AllocationResult,
    CompleteAllocation,
    PartialAllocation,
    allocate,
    start_after_predecessor,
)
from .workload import (
    CapacityConflict,
    DayUtilization,
    aggregate_load,
    daily_totals,
    detect_conflicts,
    merge_load,
    utilization,
)

__all__ = [
    "DEFAULT_DAILY_CAPACITY",
    "MAX_DAY_STEPS",
    "AllocationResult",
    "CapacityConflict",
    "CompleteAllocation",
    "DayUtilization",
    "PartialAllocation",
    "aggregate_load",
    "allocate",
    "daily_totals",
    "detect_conflicts",
    "merge_load",
    "start_after_predecessor",
    "utilization",
]
