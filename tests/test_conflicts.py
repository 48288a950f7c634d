"""
Tests for conflict resolution (bumping booked work for overdue work).

2024-06-10 is a Monday. Capacity is 8h; "late" holds 6h on Friday 2024-06-07
and 2024-06-11 is fully booked by b1 (5h) and b2 (3h).
"""

from datetime import date

import pytest

from activity_scheduler.capacity import daily_totals
from activity_scheduler.models import ChangeReason, Task
from activity_scheduler.rescheduling import apply_changes, find_bump_candidates, resolve_conflict

TODAY = date(2024, 6, 10)
TARGET = "2024-06-11"


@pytest.fixture
def tasks(make_task):
    return [
        make_task("late", allocation={"2024-06-07": 6}),
        make_task("b1", allocation={"2024-06-11": 5, "2024-06-12": 2}),
        make_task("b2", allocation={"2024-06-11": 3}),
        make_task("other", resource="bob", allocation={"2024-06-11": 8}),
    ]


def _by_id(tasks):
    return {t.id: t for t in tasks}


def _after(tasks, changes):
    replaced = {c.task_id: c.new_allocation for c in changes}
    return [
        Task(id=t.id, resource=t.resource, allocation=replaced.get(t.id, t.allocation)) for t in tasks
    ]


class TestFindBumpCandidates:
    def test_same_resource_with_hours_on_target(self, tasks):
        late = _by_id(tasks)["late"]
        assert [t.id for t in find_bump_candidates(late, TARGET, tasks)] == ["b1", "b2"]

    def test_done_tasks_are_not_bumped(self, tasks, make_task):
        late = _by_id(tasks)["late"]
        finished = make_task("finished", status="done", allocation={TARGET: 1})
        assert "finished" not in [t.id for t in find_bump_candidates(late, TARGET, tasks + [finished])]


class TestResolveConflict:
    def test_overdue_takes_the_freed_day(self, tasks):
        by_id = _by_id(tasks)
        changes = resolve_conflict(
            by_id["late"], [by_id["b1"], by_id["b2"]], TARGET, tasks, daily_capacity=8, today=TODAY
        )
        result = {c.task_id: c for c in changes}

        assert list(result) == ["late", "b1", "b2"]
        assert result["late"].new_allocation == pytest.approx({TARGET: 6})
        assert result["late"].reason == ChangeReason.OVERDUE
        assert result["late"].hours_moved == 6
        assert result["b1"].new_allocation == pytest.approx({"2024-06-12": 7})
        assert result["b2"].new_allocation == pytest.approx({"2024-06-12": 1, "2024-06-13": 2})
        assert result["b2"].reason == ChangeReason.BUMPED
        assert all(c.new_status is None for c in changes)

    def test_totals_preserved_and_capacity_respected(self, tasks):
        by_id = _by_id(tasks)
        changes = resolve_conflict(by_id["late"], [by_id["b1"]], TARGET, tasks, daily_capacity=8, today=TODAY)

        for change in changes:
            assert sum(change.new_allocation.values()) == pytest.approx(by_id[change.task_id].total_hours)

        alice = [t for t in _after(tasks, changes) if t.resource == "alice"]
        totals = daily_totals(alice)
        assert all(hours <= 8 + 1e-9 for hours in totals.values())
        # b2 keeps its 3h, so late only gets 5h on the target day
        assert totals == pytest.approx({TARGET: 8, "2024-06-12": 8})

    def test_other_resources_untouched(self, tasks):
        by_id = _by_id(tasks)
        changes = resolve_conflict(
            by_id["late"], [by_id["b1"], by_id["b2"]], TARGET, tasks, daily_capacity=8, today=TODAY
        )
        assert "other" not in {c.task_id for c in changes}

    def test_nothing_proposed_when_lookahead_runs_out(self, tasks, caplog):
        by_id = _by_id(tasks)
        with caplog.at_level("WARNING"):
            changes = resolve_conflict(
                by_id["late"], [by_id["b1"]], TARGET, tasks, daily_capacity=8, today=TODAY, max_day_steps=1
            )
        assert changes == []
        assert "do not fit" in caplog.text


class TestResolveConflictValidation:
    def test_bumped_task_of_another_resource(self, tasks):
        by_id = _by_id(tasks)
        with pytest.raises(ValueError, match="belongs to"):
            resolve_conflict(by_id["late"], [by_id["other"]], TARGET, tasks, daily_capacity=8, today=TODAY)

    def test_bumped_task_without_hours_on_target(self, tasks, make_task):
        by_id = _by_id(tasks)
        idle = make_task("idle", allocation={"2024-06-14": 2})
        with pytest.raises(ValueError, match="no hours on"):
            resolve_conflict(by_id["late"], [idle], TARGET, tasks + [idle], daily_capacity=8, today=TODAY)

    def test_target_in_the_past(self, tasks):
        by_id = _by_id(tasks)
        with pytest.raises(ValueError, match="before"):
            resolve_conflict(by_id["late"], [], "2024-06-07", tasks, daily_capacity=8, today=TODAY)

    def test_nothing_late_to_move(self, tasks):
        by_id = _by_id(tasks)
        with pytest.raises(ValueError, match="no hours before"):
            resolve_conflict(by_id["b2"], [by_id["b1"]], TARGET, tasks, daily_capacity=8, today=TODAY)

    def test_overdue_task_without_resource(self, make_task):
        orphan = make_task("orphan", resource=None, allocation={"2024-06-07": 2})
        with pytest.raises(ValueError, match="no resource"):
            resolve_conflict(orphan, [], TARGET, [orphan], daily_capacity=8, today=TODAY)


class TestApplyResolution:
    def test_changes_written_through_the_store(self, tasks, store):
        store.insert_many(tasks)
        by_id = _by_id(tasks)
        changes = resolve_conflict(
            by_id["late"], [by_id["b1"], by_id["b2"]], TARGET, tasks, daily_capacity=8, today=TODAY
        )

        report = apply_changes(changes, store)

        assert report.success
        assert report.applied_count == 3
        assert store.get("late").allocation == pytest.approx({TARGET: 6})
        assert store.get("late").adjusted_end == TARGET
        assert store.get("b1").allocation == pytest.approx({"2024-06-12": 7})
