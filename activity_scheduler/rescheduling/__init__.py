"""
Rescheduling Module

Proposes and applies schedule changes for existing tasks.

Objects:
- CascadeRescheduler (moves overdue and today's work to future workdays)
- Consolidator (packs fragmented days for a resource)
- OverdueTask (a late task with its lateness in days)
- resolve_conflict (bumps booked work so overdue work takes its day)

Invariants:
- simulate() and consolidate() never write; only apply() touches a store
- apply() writes each change independently and reports failures per change
"""

from .apply import apply_changes
from .cascade import CascadeRescheduler, is_overdue, summarize
from .conflicts import find_bump_candidates, resolve_conflict
from .consolidator import Consolidator, consolidate_project
from .overdue import OverdueTask, find_overdue, group_overdue_by_project

__all__ = [
    "CascadeRescheduler",
    "Consolidator",
    "OverdueTask",
    "apply_changes",
    "consolidate_project",
    "find_bump_candidates",
    "find_overdue",
    "group_overdue_by_project",
    "is_overdue",
    "resolve_conflict",
    "summarize",
]
