"""
Property-based tests for scheduling invariants using Hypothesis.

These tests stress the allocator, the cascade and the consolidator with
random loads to find edge cases.
"""

from datetime import date, timedelta

from hypothesis import given, settings
from hypothesis import strategies as st

from activity_scheduler.capacity import aggregate_load, allocate, daily_totals
from activity_scheduler.models import Task
from activity_scheduler.rescheduling import CascadeRescheduler, Consolidator

EPS = 1e-6
BASE = date(2024, 6, 3)  # Monday

# Hours in quarter-hour steps keep float noise small
hours_st = st.integers(min_value=1, max_value=64).map(lambda q: q / 4)
day_st = st.integers(min_value=0, max_value=27).map(lambda n: (BASE + timedelta(days=n)).isoformat())
load_st = st.dictionaries(day_st, st.integers(min_value=0, max_value=48).map(lambda q: q / 4), max_size=15)


# ============================================================================
# Allocator
# ============================================================================


@given(
    start_offset=st.integers(min_value=0, max_value=20),
    total=st.integers(min_value=1, max_value=800).map(lambda q: q / 4),
    capacity=st.integers(min_value=4, max_value=48).map(lambda q: q / 4),
)
def test_allocation_sums_to_requested_hours_on_weekdays(start_offset, total, capacity):
    """With no load and ample lookahead every hour lands on a weekday."""
    start = BASE + timedelta(days=start_offset)
    result = allocate(start, total, capacity, {}, workdays_only=True, today=start)

    assert result.is_complete
    assert abs(result.allocated_hours - total) < EPS
    for day, hours in result.allocation.items():
        assert date.fromisoformat(day).weekday() < 5
        assert date.fromisoformat(day) >= start
        assert 0 < hours <= capacity + EPS


@given(
    total=st.integers(min_value=1, max_value=400).map(lambda q: q / 4),
    capacity=st.integers(min_value=4, max_value=48).map(lambda q: q / 4),
    load=load_st,
)
def test_allocation_never_exceeds_free_capacity(total, capacity, load):
    result = allocate(BASE, total, capacity, load, workdays_only=True, today=BASE)

    for day, hours in result.allocation.items():
        assert hours <= capacity - load.get(day, 0.0) + EPS
    if result.is_complete:
        assert abs(result.allocated_hours - total) < EPS


# ============================================================================
# Cascade
# ============================================================================


task_specs = st.lists(
    st.tuples(
        st.sampled_from(["alice", "bob"]),
        st.dictionaries(day_st, hours_st, min_size=1, max_size=4),
        st.integers(min_value=0, max_value=8),
    ),
    min_size=1,
    max_size=8,
)


def _tasks(specs) -> list[Task]:
    tasks = []
    for i, (resource, allocation, executed) in enumerate(specs):
        total = sum(allocation.values())
        tasks.append(
            Task(
                id=f"t{i}",
                resource=resource,
                total_hours=total,
                executed_hours=min(executed, total),
                allocation=allocation,
            )
        )
    return tasks


@settings(max_examples=50)
@given(specs=task_specs, today_offset=st.integers(min_value=0, max_value=27))
def test_cascade_keeps_new_hours_within_free_capacity(specs, today_offset):
    """Rescheduled hours (plus work that stays put) never overfill a day."""
    tasks = _tasks(specs)
    today = BASE + timedelta(days=today_offset)
    engine = CascadeRescheduler(daily_capacity=8)

    changes = engine.simulate(tasks, today=today)
    moved = {c.task_id for c in changes}
    fixed = aggregate_load(tasks, exclude_ids=moved)

    placed: dict[tuple[str, str], float] = {}
    for change in changes:
        for day, hours in change.new_allocation.items():
            assert day > today.isoformat()
            key = (change.resource, day)
            placed[key] = placed.get(key, 0.0) + hours

    for (resource, day), hours in placed.items():
        assert hours <= max(0.0, 8 - fixed.get(resource, {}).get(day, 0.0)) + EPS


# ============================================================================
# Consolidator
# ============================================================================


@settings(max_examples=50)
@given(specs=task_specs)
def test_consolidation_preserves_task_totals(specs):
    tasks = [t for t in _tasks(specs) if t.resource == "alice"]
    consolidator = Consolidator(daily_capacity=8, utilization_threshold=0.7, min_entry_hours=0.1)

    changes = consolidator.consolidate(tasks, today=BASE)

    by_id = {t.id: t for t in tasks}
    for change in changes:
        original = sum(h for h in by_id[change.task_id].allocation.values() if h > 0)
        assert abs(sum(change.new_allocation.values()) - original) < EPS
        assert all(h > 0 for h in change.new_allocation.values())


@settings(max_examples=50)
@given(specs=task_specs)
def test_consolidation_never_overfills_a_day(specs):
    """Days that gain hours end at or below capacity."""
    tasks = [t for t in _tasks(specs) if t.resource == "alice"]
    consolidator = Consolidator(daily_capacity=8, utilization_threshold=0.7, min_entry_hours=0.1)

    changes = consolidator.consolidate(tasks, today=BASE)

    replaced = {c.task_id: c.new_allocation for c in changes}
    before = daily_totals(tasks)
    after = daily_totals(
        Task(id=t.id, resource=t.resource, allocation=replaced.get(t.id, t.allocation)) for t in tasks
    )
    for day, hours in after.items():
        if hours > before.get(day, 0.0) + EPS:
            assert hours <= 8 + EPS


@settings(max_examples=50)
@given(specs=task_specs, max_day_steps=st.integers(min_value=1, max_value=10))
def test_short_lookahead_consolidation_keeps_totals_or_does_nothing(specs, max_day_steps):
    """An exhausted lookahead yields no changes rather than lost hours."""
    tasks = [t for t in _tasks(specs) if t.resource == "alice"]
    consolidator = Consolidator(
        daily_capacity=8, utilization_threshold=0.7, min_entry_hours=0.1, max_day_steps=max_day_steps
    )

    changes = consolidator.consolidate(tasks, today=BASE)

    by_id = {t.id: t for t in tasks}
    for change in changes:
        original = sum(h for h in by_id[change.task_id].allocation.values() if h > 0)
        assert abs(sum(change.new_allocation.values()) - original) < EPS
        assert change.hours_unallocated == 0
