"""
Scheduling API Router - REST endpoints for allocation and rescheduling.

Endpoints:
- POST /api/scheduling/allocate - spread hours over workdays (no store access)
- GET /api/scheduling/overdue - overdue tasks, most late first
- POST /api/scheduling/simulate - preview the cascade for overdue/today's work
- POST /api/scheduling/apply - write previewed changes to the task store
- POST /api/scheduling/consolidate - preview (or apply) consolidation of fragmented days
- GET /api/scheduling/workload - per-day utilization and over-capacity days
- POST /api/scheduling/resolve-conflict - bump a booked day so overdue work can take it
"""

import logging
from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from activity_scheduler import config_store
from activity_scheduler.capacity import aggregate_load, allocate, detect_conflicts, utilization
from activity_scheduler.models import ProposedChange
from activity_scheduler.observability import RequestContext, get_request_id
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
from activity_scheduler.task_store import SqliteTaskStore, get_store
from activity_scheduler.workdays import WorkCalendar

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


def get_task_store() -> SqliteTaskStore:
    """Task store used by the endpoints."""
    return get_store()


def _context(operation: str) -> RequestContext:
    # Keep the middleware's request id, tag the operation
    return RequestContext(request_id=get_request_id(), operation=operation)


# Pydantic models for API
class AllocateRequest(BaseModel):
    """Request to spread hours across workdays."""

    start_date: date = Field(..., description="First candidate day")
    total_hours: float = Field(..., description="Hours to place")
    daily_capacity: float | None = Field(default=None, gt=0, description="Defaults to configured capacity")
    existing_load: dict[date, float] = Field(default_factory=dict, description="Hours already booked per day")
    workdays_only: bool = True
    today: date | None = None


class AllocateResponse(BaseModel):
    allocation: dict[str, float]
    start_date: str | None
    end_date: str | None
    complete: bool
    hours_remaining: float


class ChangeModel(BaseModel):
    """A proposed change as previewed by simulate/consolidate."""

    task_id: str
    new_allocation: dict[date, float]
    new_adjusted_start: date | None = None
    new_adjusted_end: date | None = None
    new_status: str | None = None
    resource: str | None = None
    reason: str | None = None
    previous_end: str | None = None
    hours_moved: float = 0.0
    hours_unallocated: float = 0.0

    def to_change(self) -> ProposedChange:
        data = self.model_dump(mode="json")
        return ProposedChange.from_dict(data)


class SimulateRequest(BaseModel):
    today: date | None = None
    resources: list[str] | None = Field(default=None, description="Restrict to these resources")


class PreviewResponse(BaseModel):
    changes: list[ChangeModel]
    summary: dict


class ApplyRequest(BaseModel):
    changes: list[ChangeModel] = Field(..., description="Changes accepted from a preview")


class ApplyResponse(BaseModel):
    success: bool
    applied_count: int
    failed_count: int
    message: str
    errors: list[str] = Field(default_factory=list)


class ConsolidateRequest(BaseModel):
    resource: str | None = Field(default=None, description="One resource; omit for every resource")
    project_id: str | None = Field(default=None, description="Restrict to one project")
    today: date | None = None
    apply: bool = Field(default=False, description="Write the changes immediately")


class ConsolidateResponse(PreviewResponse):
    applied: ApplyResponse | None = None


class ResolveConflictRequest(BaseModel):
    task_id: str = Field(..., description="The overdue task")
    target_date: date = Field(..., description="Day the overdue work should land on")
    bump: list[str] | None = Field(default=None, description="Tasks to bump; omit for every task booked that day")
    today: date | None = None
    apply: bool = Field(default=False, description="Write the changes immediately")


class WorkloadResponse(BaseModel):
    daily_capacity: float
    resources: dict[str, list[dict]]
    conflicts: list[dict]


class OverdueResponse(BaseModel):
    count: int
    today: str
    tasks: list[dict]
    by_project: dict[str, int]


# Endpoints


@router.post("/allocate", response_model=AllocateResponse)
async def allocate_hours(request: AllocateRequest):
    """Spread hours across workdays starting at start_date."""
    with _context("allocate"):
        calendar = WorkCalendar.from_config()
        capacity = request.daily_capacity
        if capacity is None:
            capacity = config_store.get_daily_capacity()

        result = allocate(
            request.start_date,
            request.total_hours,
            capacity,
            {d.isoformat(): h for d, h in request.existing_load.items()},
            workdays_only=request.workdays_only,
            today=request.today,
            calendar=calendar,
        )
        return {
            "allocation": result.allocation,
            "start_date": result.start_date,
            "end_date": result.end_date,
            "complete": result.is_complete,
            "hours_remaining": 0.0 if result.is_complete else result.hours_remaining,
        }


@router.get("/overdue", response_model=OverdueResponse)
async def list_overdue(
    today: date | None = Query(default=None),
    resource: str | None = Query(default=None),
):
    """Overdue tasks, most late first."""
    with _context("overdue"):
        today = today or date.today()
        tasks = get_task_store().list()
        overdue = find_overdue(tasks, today, resource=resource)
        grouped = group_overdue_by_project(overdue)
        return {
            "count": len(overdue),
            "today": today.isoformat(),
            "tasks": [o.to_dict() for o in overdue],
            "by_project": {str(k or ""): len(v) for k, v in grouped.items()},
        }


@router.post("/simulate", response_model=PreviewResponse)
async def simulate_cascade(request: SimulateRequest):
    """Preview rescheduling of overdue and today's work. Nothing is written."""
    with _context("simulate"):
        try:
            tasks = get_task_store().list()
            changes = CascadeRescheduler().simulate(
                tasks, today=request.today, resource_filter=request.resources
            )
        except ValueError as e:
            logger.error(f"Invalid task data: {str(e)}")
            raise HTTPException(status_code=422, detail=str(e)) from e

        return {"changes": [c.to_dict() for c in changes], "summary": summarize(changes)}


@router.post("/apply", response_model=ApplyResponse)
async def apply_schedule_changes(request: ApplyRequest):
    """Write accepted changes. Each change succeeds or fails on its own."""
    with _context("apply"):
        try:
            changes = [c.to_change() for c in request.changes]
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

        report = apply_changes(changes, get_task_store())
        return report.to_dict()


@router.post("/consolidate", response_model=ConsolidateResponse)
async def consolidate(request: ConsolidateRequest):
    """Preview consolidation of fragmented days (optionally applying it)."""
    with _context("consolidate"):
        store = get_task_store()
        filters = {}
        if request.resource:
            filters["resource"] = request.resource
        if request.project_id:
            filters["project_id"] = request.project_id

        try:
            tasks = store.list(filters)
            consolidator = Consolidator()
            if request.resource:
                changes = consolidator.consolidate(tasks, today=request.today)
                summary = {"changes": len(changes), "resources_affected": 1 if changes else 0}
            else:
                changes, summary = consolidate_project(tasks, today=request.today, consolidator=consolidator)
        except ValueError as e:
            logger.error(f"Invalid task data: {str(e)}")
            raise HTTPException(status_code=422, detail=str(e)) from e

        applied = None
        if request.apply and changes:
            applied = consolidator.apply(changes, store).to_dict()

        return {
            "changes": [c.to_dict() for c in changes],
            "summary": summary,
            "applied": applied,
        }


@router.get("/workload", response_model=WorkloadResponse)
async def get_workload(
    resource: str | None = Query(default=None),
    daily_capacity: float | None = Query(default=None, gt=0),
):
    """Per-day utilization per resource, with over-capacity days."""
    with _context("workload"):
        capacity = daily_capacity if daily_capacity is not None else config_store.get_daily_capacity()
        filters = {"resource": resource} if resource else {}
        load_by_resource = aggregate_load(get_task_store().list(filters))
        return {
            "daily_capacity": capacity,
            "resources": {
                name: [asdict(row) for row in utilization(days, capacity)]
                for name, days in sorted(load_by_resource.items())
            },
            "conflicts": [asdict(c) for c in detect_conflicts(load_by_resource, capacity)],
        }


@router.post("/resolve-conflict", response_model=ConsolidateResponse)
async def resolve_schedule_conflict(request: ResolveConflictRequest):
    """Put overdue work on a booked day by bumping that day's tasks (optionally applying it)."""
    with _context("resolve_conflict"):
        store = get_task_store()
        task = store.get(request.task_id)
        tasks = store.list({"resource": task.resource}) if task.resource else [task]
        if request.bump is not None:
            bumped = [store.get(task_id) for task_id in request.bump]
        else:
            bumped = find_bump_candidates(task, request.target_date, tasks)

        try:
            changes = resolve_conflict(task, bumped, request.target_date, tasks, today=request.today)
        except ValueError as e:
            logger.error(f"Cannot resolve conflict: {str(e)}")
            raise HTTPException(status_code=422, detail=str(e)) from e

        applied = None
        if request.apply and changes:
            applied = apply_changes(changes, store).to_dict()

        return {
            "changes": [c.to_dict() for c in changes],
            "summary": summarize(changes),
            "applied": applied,
        }
