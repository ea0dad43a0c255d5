"""Review submission and worker rating endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from task_market_service.core.state import get_app_state
from task_market_service.routers.validation import read_json_body, require_actor, required_string
from task_market_service.schemas import (
    BidListResponse,
    ReviewListResponse,
    WorkerRatingResponse,
)

if TYPE_CHECKING:
    from task_market_service.services.rating_aggregator import RatingAggregator

router = APIRouter()


def _rating_aggregator() -> RatingAggregator:
    state = get_app_state()
    if state.rating_aggregator is None:
        msg = "RatingAggregator not initialized"
        raise RuntimeError(msg)
    return state.rating_aggregator


@router.post("/tasks/{task_id}/reviews", status_code=201)
async def submit_review(task_id: str, request: Request) -> JSONResponse:
    """Review the worker of a completed task. Only the poster may review."""
    data = await read_json_body(request)
    worker_id = required_string(data, "worker_id")
    poster_id = await require_actor(request)

    result = _rating_aggregator().submit_review(
        task_id,
        poster_id,
        worker_id,
        data.get("star_rating"),
        data.get("per_category_ratings"),
        data.get("text"),
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/workers/{worker_id}/rating", response_model=WorkerRatingResponse)
async def get_worker_rating(worker_id: str) -> dict[str, Any]:
    """Overall and per-category rating of a worker with their latest reviews."""
    return _rating_aggregator().get_worker_rating(worker_id)


@router.get("/workers/{worker_id}/reviews", response_model=ReviewListResponse)
async def list_worker_reviews(worker_id: str) -> dict[str, Any]:
    """Every review a worker has received, newest first."""
    return {"worker_id": worker_id, "reviews": _rating_aggregator().list_worker_reviews(worker_id)}


@router.get("/workers/{worker_id}/bids", response_model=BidListResponse)
async def list_worker_bids(worker_id: str) -> dict[str, Any]:
    """Every bid a worker has placed, newest first."""
    state = get_app_state()
    if state.bid_engine is None:
        msg = "BidEngine not initialized"
        raise RuntimeError(msg)
    return {"bids": state.bid_engine.list_worker_bids(worker_id)}
