"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from task_market_service.core.state import get_app_state
from task_market_service.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Report uptime and how many tasks sit in each lifecycle state."""
    state = get_app_state()
    stats = (
        state.task_manager.get_stats()
        if state.task_manager is not None
        else {"total_tasks": 0, "tasks_by_state": {}}
    )
    return HealthResponse(
        status="ok",
        uptime_seconds=state.uptime_seconds,
        started_at=state.started_at,
        total_tasks=stats["total_tasks"],
        tasks_by_state=stats["tasks_by_state"],
    )
