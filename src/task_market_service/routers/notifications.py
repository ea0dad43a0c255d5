"""Endpoints for the caller's notifications."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import Response

from task_market_service.core.exceptions import ServiceError
from task_market_service.core.state import get_app_state
from task_market_service.routers.validation import require_actor
from task_market_service.schemas import (
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)

if TYPE_CHECKING:
    from task_market_service.services.notification_dispatcher import NotificationDispatcher

router = APIRouter()


def _dispatcher() -> NotificationDispatcher:
    state = get_app_state()
    if state.notification_dispatcher is None:
        msg = "NotificationDispatcher not initialized"
        raise RuntimeError(msg)
    return state.notification_dispatcher


def _parse_unread(raw: str | None) -> bool:
    if raw is None:
        return False
    lowered = raw.lower()
    if lowered not in ("true", "false"):
        raise ServiceError("INVALID_PAYLOAD", "unread must be 'true' or 'false'", 400, {})
    return lowered == "true"


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(request: Request) -> dict[str, Any]:
    """List the caller's notifications, newest first."""
    unread_only = _parse_unread(request.query_params.get("unread"))
    user_id = await require_actor(request)
    return {"notifications": _dispatcher().list_for_user(user_id, unread_only=unread_only)}


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def unread_count(request: Request) -> dict[str, Any]:
    """Count the caller's unread notifications."""
    user_id = await require_actor(request)
    return {"unread_count": _dispatcher().unread_count(user_id)}


@router.post("/notifications/read-all", response_model=UnreadCountResponse)
async def mark_all_read(request: Request) -> dict[str, Any]:
    """Mark every notification of the caller read."""
    user_id = await require_actor(request)
    dispatcher = _dispatcher()
    dispatcher.mark_all_read(user_id)
    return {"unread_count": dispatcher.unread_count(user_id)}


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(notification_id: str, request: Request) -> dict[str, Any]:
    """Mark one of the caller's notifications read."""
    user_id = await require_actor(request)
    return _dispatcher().mark_read(notification_id, user_id)


@router.delete("/notifications/{notification_id}", status_code=204)
async def delete_notification(notification_id: str, request: Request) -> Response:
    """Delete one of the caller's notifications."""
    user_id = await require_actor(request)
    _dispatcher().delete(notification_id, user_id)
    return Response(status_code=204)
