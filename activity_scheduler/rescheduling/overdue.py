"""
Overdue - Which tasks are late, and by how much.

Lateness is measured in calendar days from the task's effective end
(adjusted end, else planned end) to today.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from activity_scheduler.models import Task
from activity_scheduler.rescheduling.cascade import is_overdue
from activity_scheduler.workdays import to_date

logger = logging.getLogger(__name__)


@dataclass
class OverdueTask:
    task: Task
    due: str
    days_late: int

    def to_dict(self) -> dict:
        return {
            "task_id": self.task.id,
            "title": self.task.title,
            "resource": self.task.resource,
            "project_id": self.task.project_id,
            "status": str(self.task.status),
            "due": self.due,
            "days_late": self.days_late,
            "remaining_hours": self.task.remaining_hours,
        }


def find_overdue(tasks: Iterable[Task], today: date | None = None, resource: str | None = None) -> list[OverdueTask]:
    """Overdue tasks, most late first."""
    today = today if today is not None else date.today()

    found = []
    for task in tasks:
        if resource is not None and task.resource != resource:
            continue
        if not is_overdue(task, today):
            continue
        due = task.effective_end
        found.append(OverdueTask(task=task, due=due, days_late=(today - to_date(due)).days))

    found.sort(key=lambda o: (-o.days_late, o.task.id))
    logger.debug("Found %d overdue task(s) as of %s", len(found), today.isoformat())
    return found


def group_overdue_by_project(overdue: Iterable[OverdueTask]) -> dict[str | None, list[OverdueTask]]:
    """Group overdue entries by project, keeping their order."""
    grouped: dict[str | None, list[OverdueTask]] = defaultdict(list)
    for item in overdue:
        grouped[item.task.project_id].append(item)
    return dict(grouped)
