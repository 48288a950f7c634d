#!/usr/bin/env python3
"""
Activity Scheduler CLI - Direct control over the scheduling engine.

Commands:
- load         import tasks from a JSON file
- allocate     spread hours over workdays
- overdue      list late tasks
- simulate     preview (or apply) the cascade for overdue and today's work
- consolidate  preview (or apply) consolidation of fragmented days
- workload     per-day utilization and overloaded days
- resolve-conflict  bump a booked day so overdue work can take it
- can-start    check a task's stage gate
- start        start a task if its stage gate allows it
"""

import argparse
import json
import logging
import sys
from datetime import date

from activity_scheduler import config_store
from activity_scheduler.capacity import aggregate_load, allocate, detect_conflicts, utilization
from activity_scheduler.gates import StageGate
from activity_scheduler.models import ApplyReport, ProposedChange, Task
from activity_scheduler.observability import RequestContext, configure_logging, generate_request_id
from activity_scheduler.rescheduling import (
    CascadeRescheduler,
    Consolidator,
    apply_changes,
    consolidate_project,
    find_bump_candidates,
    find_overdue,
    group_overdue_by_project,
    resolve_conflict,
    summarize,
)
from activity_scheduler.task_store import SqliteTaskStore, TaskNotFound
from activity_scheduler.workdays import WorkCalendar, to_date

logger = logging.getLogger(__name__)


def print_header(text: str):
    """Print a section header."""
    print(f"\n{'═' * 50}")
    print(f"  {text}")
    print(f"{'═' * 50}")


def print_table(headers: list, rows: list, widths: list = None):
    """Print a simple table."""
    if not widths:
        widths = [max(len(str(row[i])) for row in [headers] + rows) for i in range(len(headers))]

    header_str = " │ ".join(str(h).ljust(w) for h, w in zip(headers, widths))
    print(header_str)
    print("─" * len(header_str))

    for row in rows:
        print(" │ ".join(str(c)[:w].ljust(w) for c, w in zip(row, widths)))


def _hours(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def _format_allocation(allocation: dict[str, float]) -> str:
    return ", ".join(f"{day} {_hours(h)}h" for day, h in sorted(allocation.items()))


def _print_changes(changes: list[ProposedChange]):
    if not changes:
        print("No changes proposed.")
        return
    rows = [
        [
            c.task_id,
            c.resource or "-",
            str(c.reason or "-"),
            c.previous_end or "-",
            f"{c.new_adjusted_start or '-'} → {c.new_adjusted_end or '-'}",
            _hours(c.hours_moved),
            _hours(c.hours_unallocated) if not c.is_complete else "",
        ]
        for c in changes
    ]
    print_table(["Task", "Resource", "Reason", "Was due", "New window", "Hours", "Unplaced"], rows)


def _print_report(report: ApplyReport) -> int:
    print(f"\n{report.message}")
    for error in report.errors:
        print(f"  ✗ {error}")
    return 0 if report.success else 1


def _apply(engine, changes: list[ProposedChange], store) -> int:
    return _print_report(engine.apply(changes, store))


def cmd_load(args, store) -> int:
    """Import tasks from a JSON file (a list of task records)."""
    with open(args.file, encoding="utf-8") as f:
        records = json.load(f)
    if isinstance(records, dict):
        records = records.get("tasks", [])

    tasks, errors = [], []
    for record in records:
        try:
            tasks.append(Task.from_dict(record))
        except ValueError as e:
            logger.warning(f"Skipping task record: {e}")
            errors.append(str(e))

    count = store.insert_many(tasks)
    print(f"Loaded {count} task(s) into {store.db_path}")
    for error in errors:
        print(f"  ✗ {error}")
    return 0 if not errors else 1


def cmd_allocate(args, store) -> int:
    """Spread hours over workdays (does not touch the store)."""
    capacity = args.capacity if args.capacity is not None else config_store.get_daily_capacity()
    load = json.loads(args.load) if args.load else {}
    result = allocate(
        args.start,
        args.hours,
        capacity,
        load,
        workdays_only=not args.all_days,
        today=args.today,
        calendar=WorkCalendar.from_config(),
    )

    print_header(f"ALLOCATION ({_hours(args.hours)}h from {args.start})")
    rows = [[day, _hours(h)] for day, h in sorted(result.allocation.items())]
    if rows:
        print_table(["Day", "Hours"], rows)
    print(f"\nEnds: {result.end_date or '-'}")
    if not result.is_complete:
        print(f"⚠ {_hours(result.hours_remaining)}h could not be placed")
        return 1
    return 0


def cmd_overdue(args, store) -> int:
    """List overdue tasks grouped by project."""
    today = args.today or date.today()
    overdue = find_overdue(store.list(), today, resource=args.resource)

    print_header(f"OVERDUE ({len(overdue)}) as of {today.isoformat()}")
    if not overdue:
        print("Nothing overdue.")
        return 0

    for project, items in group_overdue_by_project(overdue).items():
        print(f"\n{project or '(no project)'}")
        rows = [
            [o.task.id, o.task.title[:30], o.task.resource or "-", o.due, o.days_late, _hours(o.task.remaining_hours)]
            for o in items
        ]
        print_table(["Task", "Title", "Resource", "Due", "Days late", "Remaining"], rows)
    return 0


def cmd_simulate(args, store) -> int:
    """Preview the cascade; --apply writes it."""
    engine = CascadeRescheduler()
    changes = engine.simulate(store.list(), today=args.today, resource_filter=args.resource)
    summary = summarize(changes)

    print_header("CASCADE PREVIEW")
    _print_changes(changes)
    print(
        f"\n{summary['tasks_rescheduled']} task(s) across {summary['resources_affected']} resource(s), "
        f"{_hours(summary['hours_moved'])}h moved"
    )
    if summary["incomplete"]:
        print(f"⚠ Incomplete: {', '.join(summary['incomplete'])}")

    if args.apply and changes:
        return _apply(engine, changes, store)
    return 0


def cmd_consolidate(args, store) -> int:
    """Preview consolidation of fragmented days; --apply writes it."""
    filters = {}
    if args.resource:
        filters["resource"] = args.resource
    if args.project:
        filters["project_id"] = args.project

    engine = Consolidator()
    tasks = store.list(filters)
    if args.resource:
        changes = engine.consolidate(tasks, today=args.today)
    else:
        changes, _ = consolidate_project(tasks, today=args.today, consolidator=engine)

    print_header("CONSOLIDATION PREVIEW")
    _print_changes(changes)
    for change in changes:
        print(f"  {change.task_id}: {_format_allocation(change.new_allocation)}")

    if args.apply and changes:
        return _apply(engine, changes, store)
    return 0


def cmd_workload(args, store) -> int:
    """Per-day utilization per resource; flags days booked over capacity."""
    capacity = args.capacity if args.capacity is not None else config_store.get_daily_capacity()
    filters = {"resource": args.resource} if args.resource else {}
    load_by_resource = aggregate_load(store.list(filters))

    if args.start or args.end:
        start = args.start.isoformat() if args.start else ""
        end = args.end.isoformat() if args.end else "9999-12-31"
        load_by_resource = {
            resource: {day: h for day, h in days.items() if start <= day <= end}
            for resource, days in load_by_resource.items()
        }

    print_header(f"WORKLOAD ({_hours(capacity)}h/day)")
    if not any(load_by_resource.values()):
        print("Nothing booked.")
        return 0

    for resource in sorted(load_by_resource):
        rows = [
            [
                row.date,
                _hours(row.scheduled),
                _hours(row.available),
                f"{row.utilization_pct}%",
                "⚠ over" if row.is_overloaded else "",
            ]
            for row in utilization(load_by_resource[resource], capacity)
        ]
        if rows:
            print(f"\n{resource}")
            print_table(["Day", "Scheduled", "Free", "Used", ""], rows)

    conflicts = detect_conflicts(load_by_resource, capacity)
    if conflicts:
        excess = sum(c.excess for c in conflicts)
        print(f"\n⚠ {len(conflicts)} overloaded day(s), {_hours(excess)}h over capacity")
        return 1
    return 0


def cmd_resolve_conflict(args, store) -> int:
    """Put overdue work on a booked day by bumping that day's tasks; --apply writes it."""
    task = store.get(args.task_id)
    tasks = store.list({"resource": task.resource}) if task.resource else [task]
    if args.bump:
        bumped = [store.get(task_id) for task_id in args.bump]
    else:
        bumped = find_bump_candidates(task, args.date, tasks)

    changes = resolve_conflict(task, bumped, args.date, tasks, today=args.today)

    print_header(f"CONFLICT RESOLUTION ({task.id} → {args.date.isoformat()})")
    if not changes:
        print("Not enough capacity to resolve this conflict.")
        return 1
    _print_changes(changes)
    for change in changes:
        print(f"  {change.task_id}: {_format_allocation(change.new_allocation)}")

    if args.apply:
        return _print_report(apply_changes(changes, store))
    return 0


def cmd_can_start(args, store) -> int:
    """Check a task's stage gate."""
    task = store.get(args.task_id)
    result = StageGate().can_transition(task, store.list_group(task))
    if result.allowed:
        print(f"✓ {task.id} can start")
        return 0
    print(f"✗ {task.id} blocked: {result.reason}")
    return 1


def cmd_start(args, store) -> int:
    """Start a task through its stage gate."""
    task = store.get(args.task_id)
    success, message = StageGate().start_task(task, store.list_group(task), store)
    print(f"{'✓' if success else '✗'} {task.id}: {message}")
    return 0 if success else 1


COMMANDS = {
    "load": cmd_load,
    "allocate": cmd_allocate,
    "overdue": cmd_overdue,
    "simulate": cmd_simulate,
    "consolidate": cmd_consolidate,
    "workload": cmd_workload,
    "resolve-conflict": cmd_resolve_conflict,
    "can-start": cmd_can_start,
    "start": cmd_start,
}


def _date_arg(value: str) -> date:
    try:
        return to_date(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value!r}") from e


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="activity-scheduler", description="Capacity-constrained activity scheduler")
    p.add_argument("--db", default=None, help="Task store path (default: ACTIVITY_SCHEDULER_DB or ~/.activity_scheduler)")
    p.add_argument("--log-level", default="WARNING", help="DEBUG, INFO, WARNING, ERROR")
    p.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    sub = p.add_subparsers(dest="cmd", required=True)

    load = sub.add_parser("load", help="Import tasks from a JSON file")
    load.add_argument("file", help="JSON list of task records")

    alloc = sub.add_parser("allocate", help="Spread hours over workdays")
    alloc.add_argument("--start", type=_date_arg, required=True, help="First candidate day")
    alloc.add_argument("--hours", type=float, required=True, help="Hours to place")
    alloc.add_argument("--capacity", type=float, default=None, help="Hours per day")
    alloc.add_argument("--load", default=None, help='Existing load as JSON, e.g. \'{"2024-06-11": 4}\'')
    alloc.add_argument("--all-days", action="store_true", help="Include weekends")
    alloc.add_argument("--today", type=_date_arg, default=None)

    overdue = sub.add_parser("overdue", help="List overdue tasks")
    overdue.add_argument("--resource", default=None)
    overdue.add_argument("--today", type=_date_arg, default=None)

    sim = sub.add_parser("simulate", help="Preview rescheduling of overdue and today's work")
    sim.add_argument("--resource", action="append", default=None, help="Restrict to a resource (repeatable)")
    sim.add_argument("--today", type=_date_arg, default=None)
    sim.add_argument("--apply", action="store_true", help="Write the proposed changes")

    cons = sub.add_parser("consolidate", help="Preview consolidation of fragmented days")
    cons.add_argument("--resource", default=None, help="One resource (default: every resource)")
    cons.add_argument("--project", default=None, help="Restrict to one project")
    cons.add_argument("--today", type=_date_arg, default=None)
    cons.add_argument("--apply", action="store_true", help="Write the proposed changes")

    work = sub.add_parser("workload", help="Per-day utilization and overloaded days")
    work.add_argument("--resource", default=None, help="One resource (default: every resource)")
    work.add_argument("--capacity", type=float, default=None, help="Hours per day")
    work.add_argument("--start", type=_date_arg, default=None, help="First day shown")
    work.add_argument("--end", type=_date_arg, default=None, help="Last day shown")

    res = sub.add_parser("resolve-conflict", help="Bump a booked day so overdue work can take it")
    res.add_argument("task_id", help="The overdue task")
    res.add_argument("--date", type=_date_arg, required=True, help="Day the overdue work should land on")
    res.add_argument(
        "--bump", action="append", default=None, help="Task to bump (repeatable; default: every task booked that day)"
    )
    res.add_argument("--today", type=_date_arg, default=None)
    res.add_argument("--apply", action="store_true", help="Write the proposed changes")

    can = sub.add_parser("can-start", help="Check a task's stage gate")
    can.add_argument("task_id")

    start = sub.add_parser("start", help="Start a task if its stage gate allows it")
    start.add_argument("task_id")

    return p


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, json_format=args.json_logs)

    store = SqliteTaskStore(args.db) if args.db else SqliteTaskStore()
    with RequestContext(request_id=generate_request_id("run"), operation=args.cmd):
        try:
            return COMMANDS[args.cmd](args, store)
        except TaskNotFound as e:
            print(f"✗ {e}")
            return 2
        except ValueError as e:
            logger.error(f"{args.cmd} failed: {e}")
            print(f"✗ {e}")
            return 2


if __name__ == "__main__":
    sys.exit(main())
