"""
Core data model for the activity scheduler.

Objects:
- Task (the schedulable unit: hours spread over ISO days)
- ProposedChange (a previewable schedule change for one task)
- ApplyReport (aggregate outcome of writing changes to a Task Store)
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from activity_scheduler.workdays import to_key

logger = logging.getLogger(__name__)


class TaskStatus(StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    PAUSED = "paused"


# Status values written by older planning records
_STATUS_ALIASES = {
    "nao_iniciado": TaskStatus.NOT_STARTED,
    "em_andamento": TaskStatus.IN_PROGRESS,
    "concluido": TaskStatus.DONE,
    "pausado": TaskStatus.PAUSED,
}


class ChangeReason(StrEnum):
    OVERDUE = "overdue"
    SCHEDULED_TODAY = "scheduled_today"
    CONSOLIDATION = "consolidation"
    BUMPED = "bumped"


def parse_status(raw: Any) -> TaskStatus:
    """Parse a status value, accepting legacy aliases."""
    if isinstance(raw, TaskStatus):
        return raw
    if raw is None or raw == "":
        return TaskStatus.NOT_STARTED
    value = str(raw).strip().lower()
    if value in _STATUS_ALIASES:
        return _STATUS_ALIASES[value]
    try:
        return TaskStatus(value)
    except ValueError as exc:
        raise ValueError(f"invalid status '{raw}'") from exc


def parse_allocation(raw: Any) -> dict[str, float]:
    """
    Parse a day→hours map. Stores may hand it over JSON-encoded.

    Keys are normalized to ISO day keys; non-positive entries are kept
    as-is (historical data is not rewritten here).
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError("allocation is not valid JSON") from exc
    if not isinstance(raw, dict):
        raise ValueError("allocation must be a mapping of ISO date to hours")

    allocation = {}
    for day, hours in raw.items():
        try:
            allocation[to_key(day)] = float(hours)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"allocation entry {day!r}: {hours!r} is not a date/hours pair") from exc
    return allocation


@dataclass
class Task:
    """A schedulable unit of work assigned to one resource."""

    id: str
    resource: str | None = None
    total_hours: float = 0.0
    executed_hours: float = 0.0
    allocation: dict[str, float] = field(default_factory=dict)
    planned_start: str | None = None
    planned_end: str | None = None
    adjusted_start: str | None = None
    adjusted_end: str | None = None
    stage: str | int | None = None
    project_id: str | None = None
    document_id: str | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    priority: int = 0
    title: str = ""

    def __post_init__(self):
        self.status = parse_status(self.status)
        # Planned dates come from the original allocation when not stored
        if self.allocation:
            if self.planned_start is None:
                self.planned_start = min(self.allocation)
            if self.planned_end is None:
                self.planned_end = max(self.allocation)

    @property
    def effective_start(self) -> str | None:
        return self.adjusted_start or self.planned_start

    @property
    def effective_end(self) -> str | None:
        return self.adjusted_end or self.planned_end

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    @property
    def remaining_hours(self) -> float:
        return self.total_hours - self.executed_hours

    @property
    def allocated_hours(self) -> float:
        return sum(self.allocation.values())

    @property
    def group_key(self) -> tuple[str, str | None]:
        """
        Predecessor comparison scope.

        Document-tied tasks are scoped by document; the rest by project.
        """
        if self.document_id:
            return ("document", self.document_id)
        return ("project", self.project_id)

    def hours_on(self, day: str) -> float:
        return self.allocation.get(day, 0.0)

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        """
        Build a Task from a store row or JSON record.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        if not data.get("id"):
            raise ValueError("task record missing required field 'id'")

        try:
            total_hours = float(data.get("total_hours") or 0.0)
            executed_hours = float(data.get("executed_hours") or 0.0)
            priority = int(data.get("priority") or 0)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"task {data['id']}: invalid numeric field") from exc

        def _day(name: str) -> str | None:
            value = data.get(name)
            return to_key(value) if value else None

        try:
            return cls(
                id=str(data["id"]),
                resource=data.get("resource") or None,
                total_hours=total_hours,
                executed_hours=executed_hours,
                allocation=parse_allocation(data.get("allocation")),
                planned_start=_day("planned_start"),
                planned_end=_day("planned_end"),
                adjusted_start=_day("adjusted_start"),
                adjusted_end=_day("adjusted_end"),
                stage=data.get("stage"),
                project_id=data.get("project_id") or None,
                document_id=data.get("document_id") or None,
                status=parse_status(data.get("status")),
                priority=priority,
                title=str(data.get("title") or ""),
            )
        except ValueError as exc:
            raise ValueError(f"task {data['id']}: {exc}") from exc

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = str(self.status)
        return data


@dataclass
class ProposedChange:
    """A proposed schedule change for one task, shown before it is applied."""

    task_id: str
    new_allocation: dict[str, float]
    new_adjusted_start: str | None
    new_adjusted_end: str | None
    new_status: TaskStatus | None = None
    resource: str | None = None
    reason: ChangeReason | None = None
    previous_end: str | None = None
    hours_moved: float = 0.0
    hours_unallocated: float = 0.0

    @property
    def is_complete(self) -> bool:
        return self.hours_unallocated <= 0

    def to_update(self) -> dict:
        """Partial record handed to TaskStore.update()."""
        update = {
            "allocation": dict(self.new_allocation),
            "adjusted_start": self.new_adjusted_start,
            "adjusted_end": self.new_adjusted_end,
        }
        if self.new_status is not None:
            update["status"] = str(self.new_status)
        return update

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "resource": self.resource,
            "reason": str(self.reason) if self.reason else None,
            "new_allocation": dict(self.new_allocation),
            "new_adjusted_start": self.new_adjusted_start,
            "new_adjusted_end": self.new_adjusted_end,
            "new_status": str(self.new_status) if self.new_status else None,
            "previous_end": self.previous_end,
            "hours_moved": self.hours_moved,
            "hours_unallocated": self.hours_unallocated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProposedChange":
        new_status = data.get("new_status")
        reason = data.get("reason")
        return cls(
            task_id=str(data["task_id"]),
            new_allocation=parse_allocation(data.get("new_allocation")),
            new_adjusted_start=data.get("new_adjusted_start"),
            new_adjusted_end=data.get("new_adjusted_end"),
            new_status=parse_status(new_status) if new_status else None,
            resource=data.get("resource"),
            reason=ChangeReason(reason) if reason else None,
            previous_end=data.get("previous_end"),
            hours_moved=float(data.get("hours_moved") or 0.0),
            hours_unallocated=float(data.get("hours_unallocated") or 0.0),
        )


@dataclass
class ApplyReport:
    """Aggregate outcome of a best-effort batch write."""

    success: bool
    applied_count: int
    failed_count: int
    message: str
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
