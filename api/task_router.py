"""
Task API Router - stage gate checks and gated starts.

Endpoints:
- GET /api/tasks/{task_id} - one task
- GET /api/tasks/{task_id}/gate - may this task start now?
- POST /api/tasks/{task_id}/start - start it (409 when the gate blocks)
"""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from activity_scheduler.gates import StageGate
from activity_scheduler.models import TaskStatus
from activity_scheduler.observability import RequestContext, get_request_id
from activity_scheduler.task_store import TaskNotFound
from api.scheduling_router import get_task_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


class GateResponse(BaseModel):
    task_id: str
    stage: str | int | None
    allowed: bool
    reason: str = ""


class StartResponse(BaseModel):
    task_id: str
    status: str
    message: str


def _load(store, task_id: str):
    try:
        return store.get(task_id)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.get("/{task_id}")
async def get_task(task_id: str):
    return _load(get_task_store(), task_id).to_dict()


@router.get("/{task_id}/gate", response_model=GateResponse)
async def check_gate(task_id: str):
    """Whether the task's earlier stages are planned and done."""
    with RequestContext(request_id=get_request_id(), operation="gate"):
        store = get_task_store()
        task = _load(store, task_id)
        result = StageGate().can_transition(task, store.list_group(task))
        return {"task_id": task.id, "stage": task.stage, "allowed": result.allowed, "reason": result.reason}


@router.post("/{task_id}/start", response_model=StartResponse)
async def start_task(task_id: str):
    """Move the task to in_progress if its stage gate allows it."""
    with RequestContext(request_id=get_request_id(), operation="start"):
        store = get_task_store()
        task = _load(store, task_id)
        success, message = StageGate().start_task(task, store.list_group(task), store)
        if not success:
            raise HTTPException(status_code=409, detail=message)
        return {"task_id": task.id, "status": str(TaskStatus.IN_PROGRESS), "message": message}
