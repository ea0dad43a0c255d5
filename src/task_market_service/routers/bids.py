"""Bid placement, listing, acceptance, rejection and withdrawal endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from task_market_service.core.state import get_app_state
from task_market_service.routers.validation import optional_string, read_json_body, require_actor
from task_market_service.schemas import BidListResponse, BidResponse, TaskResponse

if TYPE_CHECKING:
    from task_market_service.services.bid_engine import BidEngine

router = APIRouter()


def _bid_engine() -> BidEngine:
    state = get_app_state()
    if state.bid_engine is None:
        msg = "BidEngine not initialized"
        raise RuntimeError(msg)
    return state.bid_engine


@router.post("/tasks/{task_id}/bids", status_code=201)
async def place_bid(task_id: str, request: Request) -> JSONResponse:
    """Place a bid on an open task."""
    data = await read_json_body(request)
    message = optional_string(data, "message") or ""
    worker_id = await require_actor(request)

    result = _bid_engine().place_bid(task_id, worker_id, data.get("amount"), message)
    return JSONResponse(status_code=201, content=result)


@router.get("/tasks/{task_id}/bids", response_model=BidListResponse)
async def list_bids(task_id: str) -> dict[str, Any]:
    """List every bid on a task."""
    return {"bids": _bid_engine().list_bids(task_id)}


@router.post("/tasks/{task_id}/bids/{bid_id}/accept", response_model=TaskResponse)
async def accept_bid(task_id: str, bid_id: str, request: Request) -> dict[str, Any]:
    """Accept a bid. Returns the task, now in progress."""
    poster_id = await require_actor(request)
    return _bid_engine().accept_bid(task_id, bid_id, poster_id)


@router.post("/tasks/{task_id}/bids/{bid_id}/reject", response_model=BidResponse)
async def reject_bid(task_id: str, bid_id: str, request: Request) -> dict[str, Any]:
    """Reject a pending bid."""
    poster_id = await require_actor(request)
    return _bid_engine().reject_bid(task_id, bid_id, poster_id)


@router.post("/tasks/{task_id}/bids/{bid_id}/withdraw", response_model=BidResponse)
async def withdraw_bid(task_id: str, bid_id: str, request: Request) -> dict[str, Any]:
    """Withdraw the caller's own pending bid."""
    worker_id = await require_actor(request)
    return _bid_engine().withdraw_bid(task_id, bid_id, worker_id)
