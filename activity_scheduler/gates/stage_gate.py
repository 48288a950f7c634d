"""
Stage Gate - Predecessor-stage checks before a task may start.

A task in stage N may move to in_progress only when every earlier stage of
the same document (or, for tasks without a document, the same project) has
been planned and fully completed.

The gate never raises: blocking conditions come back as a reason string
that can be shown to the user as-is.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from activity_scheduler import config_store
from activity_scheduler.models import Task, TaskStatus

logger = logging.getLogger(__name__)


class StageStatus(StrEnum):
    NOT_PLANNED = "not_planned"
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    DONE = "done"


@dataclass
class GateResult:
    allowed: bool
    reason: str = ""


class StageGate:
    """
    Evaluates stage ordering for a group of sibling tasks.

    Stage order defaults to stages.order from the scheduler config.
    """

    def __init__(self, stage_order: list[str] | None = None):
        self.stage_order = list(stage_order) if stage_order is not None else config_store.get_stage_order()

    def stage_index(self, stage: str | int | None) -> int:
        """Position of a stage name or ordinal; -1 when unknown."""
        if stage is None or isinstance(stage, bool):
            return -1
        if isinstance(stage, int):
            return stage if 0 <= stage < len(self.stage_order) else -1
        try:
            return self.stage_order.index(str(stage).strip())
        except ValueError:
            return -1

    def stage_name(self, index: int) -> str:
        return self.stage_order[index]

    @staticmethod
    def same_group(task: Task, other: Task) -> bool:
        """
        Document-tied tasks match on document only; tasks without a document
        match on project, and only against other tasks without a document.
        """
        if task.document_id:
            return other.document_id == task.document_id
        return not other.document_id and other.project_id == task.project_id

    def can_transition(self, task: Task, all_tasks_in_same_group: Iterable[Task]) -> GateResult:
        """
        Decide whether task may move to in_progress.

        Returns:
            GateResult(allowed, reason)
        """
        index = self.stage_index(task.stage)
        if index <= 0:
            return GateResult(allowed=True)

        siblings = [t for t in all_tasks_in_same_group if self.same_group(task, t)]

        for i in range(index):
            stage = self.stage_order[i]
            predecessors = [t for t in siblings if self.stage_index(t.stage) == i]

            if not predecessors:
                logger.debug("Task %s blocked: stage %s not planned", task.id, stage)
                return GateResult(allowed=False, reason=f"awaiting planning of stage {stage}")

            pending = [t for t in predecessors if t.status != TaskStatus.DONE]
            if pending:
                logger.debug("Task %s blocked: %d pending in stage %s", task.id, len(pending), stage)
                return GateResult(
                    allowed=False,
                    reason=f"awaiting completion of stage {stage} ({len(pending)} pending)",
                )

        return GateResult(allowed=True)

    def stage_status(
        self, stage: str | int, tasks: Iterable[Task], group_key: tuple[str, str | None]
    ) -> StageStatus:
        """Planning/completion status of one stage within a group."""
        index = self.stage_index(stage)
        in_stage = [
            t for t in tasks if t.group_key == group_key and index >= 0 and self.stage_index(t.stage) == index
        ]

        if not in_stage:
            return StageStatus.NOT_PLANNED
        if all(t.status == TaskStatus.DONE for t in in_stage):
            return StageStatus.DONE
        if any(t.status == TaskStatus.IN_PROGRESS for t in in_stage):
            return StageStatus.IN_PROGRESS
        return StageStatus.PLANNED

    def sort_by_stage(self, tasks: Iterable[Task]) -> list[Task]:
        """Order tasks by stage (unknown stages last), then title."""

        def key(task: Task):
            index = self.stage_index(task.stage)
            return (index if index >= 0 else len(self.stage_order), task.title or "", task.id)

        return sorted(tasks, key=key)

    def start_task(self, task: Task, siblings: Iterable[Task], store) -> tuple[bool, str]:
        """
        Move a task to in_progress through the Task Store if the gate allows it.

        Returns:
            (success, message)
        """
        if task.status == TaskStatus.IN_PROGRESS:
            return False, "Task already in progress"
        if task.status == TaskStatus.DONE:
            return False, "Task already done"

        result = self.can_transition(task, siblings)
        if not result.allowed:
            logger.info("Start of task %s blocked: %s", task.id, result.reason)
            return False, result.reason

        store.update(task.id, {"status": str(TaskStatus.IN_PROGRESS)})
        logger.info("Task %s started", task.id)
        return True, "Task started"
