# Activity Scheduler - Core Library
"""
Exports for the CLI, the API and other consumers.
"""

from .capacity import CompleteAllocation, PartialAllocation, allocate
from .gates import GateResult, StageGate
from .models import ApplyReport, ChangeReason, ProposedChange, Task, TaskStatus
from .rescheduling import CascadeRescheduler, Consolidator, find_overdue
from .task_store import SqliteTaskStore, TaskNotFound, get_store
from .workdays import WorkCalendar

__all__ = [
    "ApplyReport",
    "CascadeRescheduler",
    "ChangeReason",
    "CompleteAllocation",
    "Consolidator",
    "GateResult",
    "PartialAllocation",
    "ProposedChange",
    "SqliteTaskStore",
    "StageGate",
    "Task",
    "TaskNotFound",
    "TaskStatus",
    "WorkCalendar",
    "allocate",
    "find_overdue",
    "get_store",
]
