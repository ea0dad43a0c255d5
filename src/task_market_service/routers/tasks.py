"""Task creation, queries and lifecycle endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from task_market_service.core.state import get_app_state
from task_market_service.routers.validation import (
    optional_string,
    parse_float_param,
    parse_int_param,
    read_json_body,
    require_actor,
)
from task_market_service.schemas import EscrowResponse, TaskListResponse, TaskResponse

if TYPE_CHECKING:
    from task_market_service.services.task_manager import TaskManager

router = APIRouter()


def _task_manager() -> TaskManager:
    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)
    return state.task_manager


# ---------------------------------------------------------------------------
# POST /tasks: create task (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Create an open task owned by the caller."""
    data = await read_json_body(request)
    poster_id = await require_actor(request)

    result = _task_manager().create_task(
        poster_id,
        data.get("title"),
        data.get("description", ""),
        data.get("category"),
        data.get("budget"),
        location=data.get("location"),
        scheduled_date=data.get("scheduled_date"),
        scheduled_time=data.get("scheduled_time"),
        is_instant_job=data.get("is_instant_job", False),
    )
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# GET /tasks: list tasks (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.get("/tasks", response_model=TaskListResponse)
async def list_tasks(request: Request) -> dict[str, Any]:
    """List tasks with optional filters, including city and distance from a point."""
    params = request.query_params
    tasks = _task_manager().list_tasks(
        state=params.get("state"),
        poster_id=params.get("poster_id"),
        worker_id=params.get("worker_id"),
        category=params.get("category"),
        limit=parse_int_param(params.get("limit"), "limit", minimum=1),
        offset=parse_int_param(params.get("offset"), "offset", minimum=0),
        city=params.get("city"),
        near_latitude=parse_float_param(params.get("near_latitude"), "near_latitude"),
        near_longitude=parse_float_param(params.get("near_longitude"), "near_longitude"),
        radius_km=parse_float_param(params.get("radius_km"), "radius_km"),
    )
    return {"tasks": tasks}


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str) -> dict[str, Any]:
    """Get a single task."""
    return _task_manager().get_task(task_id)


@router.get("/tasks/{task_id}/escrow", response_model=EscrowResponse)
async def get_escrow(task_id: str) -> dict[str, Any]:
    """Get the escrow locked for a task."""
    return _task_manager().get_escrow(task_id)


# ---------------------------------------------------------------------------
# Lifecycle commands
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/cancel", response_model=TaskResponse)
async def cancel_task(task_id: str, request: Request) -> dict[str, Any]:
    """Cancel an open or in-progress task."""
    actor_id = await require_actor(request)
    return _task_manager().cancel_task(task_id, actor_id)


@router.post("/tasks/{task_id}/arrive", response_model=TaskResponse)
async def mark_worker_arrived(task_id: str, request: Request) -> dict[str, Any]:
    """Record the assigned worker's arrival on site."""
    worker_id = await require_actor(request)
    return _task_manager().mark_worker_arrived(task_id, worker_id)


@router.post("/tasks/{task_id}/request-completion", response_model=TaskResponse)
async def request_completion(task_id: str, request: Request) -> dict[str, Any]:
    """Ask the poster to confirm the work, optionally attaching a photo URL."""
    data = await read_json_body(request)
    photo_url = optional_string(data, "photo_url")
    worker_id = await require_actor(request)
    return _task_manager().request_completion(task_id, worker_id, photo_url)


@router.post("/tasks/{task_id}/confirm-completion", response_model=TaskResponse)
async def confirm_completion(task_id: str, request: Request) -> dict[str, Any]:
    """Confirm completion and release escrow to the worker."""
    poster_id = await require_actor(request)
    return _task_manager().confirm_completion(task_id, poster_id)
