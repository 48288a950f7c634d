"""
Tests for the stage gate.
"""

from unittest.mock import MagicMock

import pytest

from activity_scheduler.gates import StageGate, StageStatus
from activity_scheduler.models import TaskStatus

STAGES = ["Concept", "Preliminary", "Basic", "Executive"]


@pytest.fixture
def gate():
    return StageGate(stage_order=STAGES)


class TestCanTransition:
    def test_first_stage_always_allowed(self, gate, make_task):
        task = make_task("a", stage="Concept")
        assert gate.can_transition(task, []).allowed is True

    def test_unknown_stage_allowed(self, gate, make_task):
        task = make_task("a", stage="Landscaping")
        assert gate.can_transition(task, []).allowed is True

    def test_missing_earlier_stage_blocks(self, gate, make_task):
        task = make_task("b", stage="Preliminary", document_id="d1")
        result = gate.can_transition(task, [task])
        assert result.allowed is False
        assert result.reason == "awaiting planning of stage Concept"

    def test_pending_earlier_stage_blocks(self, gate, make_task):
        task = make_task("b", stage="Preliminary", document_id="d1")
        siblings = [
            make_task("a1", stage="Concept", document_id="d1", status="done"),
            make_task("a2", stage="Concept", document_id="d1", status="in_progress"),
            make_task("a3", stage="Concept", document_id="d1"),
        ]
        result = gate.can_transition(task, siblings + [task])
        assert result.allowed is False
        assert result.reason == "awaiting completion of stage Concept (2 pending)"

    def test_all_earlier_stages_done_allows(self, gate, make_task):
        task = make_task("c", stage="Basic", document_id="d1")
        siblings = [
            make_task("a", stage="Concept", document_id="d1", status="done"),
            make_task("b", stage="Preliminary", document_id="d1", status="done"),
        ]
        assert gate.can_transition(task, siblings).allowed is True

    def test_first_blocking_stage_reported(self, gate, make_task):
        task = make_task("c", stage="Basic", document_id="d1")
        siblings = [make_task("b", stage="Preliminary", document_id="d1", status="done")]
        assert gate.can_transition(task, siblings).reason == "awaiting planning of stage Concept"

    def test_legacy_done_status_counts(self, gate, make_task):
        task = make_task("b", stage="Preliminary", document_id="d1")
        siblings = [make_task("a", stage="Concept", document_id="d1", status="concluido")]
        assert gate.can_transition(task, siblings).allowed is True

    def test_ordinal_stage(self, gate, make_task):
        task = make_task("b", stage=1, document_id="d1")
        siblings = [make_task("a", stage=0, document_id="d1", status="done")]
        assert gate.can_transition(task, siblings).allowed is True


class TestGrouping:
    def test_other_document_ignored(self, gate, make_task):
        task = make_task("b", stage="Preliminary", document_id="d1")
        siblings = [make_task("a", stage="Concept", document_id="d2", status="done")]
        assert gate.can_transition(task, siblings).allowed is False

    def test_project_scope_without_document(self, gate, make_task):
        task = make_task("b", stage="Preliminary", project_id="p1")
        siblings = [make_task("a", stage="Concept", project_id="p1", status="done")]
        assert gate.can_transition(task, siblings).allowed is True

    def test_document_tasks_not_mixed_with_project_tasks(self, gate, make_task):
        task = make_task("b", stage="Preliminary", project_id="p1")
        # Same project but tied to a document: different scope
        siblings = [make_task("a", stage="Concept", project_id="p1", document_id="d1", status="done")]
        result = gate.can_transition(task, siblings)
        assert result.allowed is False
        assert "Concept" in result.reason


class TestStageStatus:
    def test_statuses(self, gate, make_task):
        tasks = [
            make_task("a", stage="Concept", document_id="d1", status="done"),
            make_task("b", stage="Preliminary", document_id="d1", status="in_progress"),
            make_task("c", stage="Basic", document_id="d1"),
        ]
        key = ("document", "d1")
        assert gate.stage_status("Concept", tasks, key) == StageStatus.DONE
        assert gate.stage_status("Preliminary", tasks, key) == StageStatus.IN_PROGRESS
        assert gate.stage_status("Basic", tasks, key) == StageStatus.PLANNED
        assert gate.stage_status("Executive", tasks, key) == StageStatus.NOT_PLANNED

    def test_sort_by_stage(self, gate, make_task):
        tasks = [
            make_task("x", stage="Other", title="Zeta"),
            make_task("c", stage="Basic", title="B"),
            make_task("a", stage="Concept", title="A"),
        ]
        assert [t.id for t in gate.sort_by_stage(tasks)] == ["a", "c", "x"]


class TestStartTask:
    def test_starts_when_allowed(self, gate, make_task):
        store = MagicMock()
        task = make_task("a", stage="Concept")
        success, message = gate.start_task(task, [task], store)
        assert success is True
        assert message == "Task started"
        store.update.assert_called_once_with("a", {"status": "in_progress"})

    def test_blocked_does_not_write(self, gate, make_task):
        store = MagicMock()
        task = make_task("b", stage="Preliminary", document_id="d1")
        success, message = gate.start_task(task, [task], store)
        assert success is False
        assert message == "awaiting planning of stage Concept"
        store.update.assert_not_called()

    def test_already_in_progress(self, gate, make_task):
        store = MagicMock()
        task = make_task("a", stage="Concept", status=TaskStatus.IN_PROGRESS)
        assert gate.start_task(task, [], store) == (False, "Task already in progress")
        store.update.assert_not_called()

    def test_default_order_from_config(self):
        gate = StageGate()
        assert gate.stage_order[0] == "Concepção"
        assert len(gate.stage_order) == 6
