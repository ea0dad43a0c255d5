"""Helpers shared by the engines that read and write the task aggregate."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from task_market_service.core.exceptions import ServiceError

if TYPE_CHECKING:
    from task_market_service.services.entity_store import EntityStore

TASK_CATEGORIES: frozenset[str] = frozenset(
    {
        "cleaning",
        "repair",
        "delivery",
        "assembly",
        "installation",
        "moving",
        "gardening",
        "painting",
        "plumbing",
        "electrical",
        "other",
    }
)


def now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


# Largest value a SQLite INTEGER column holds.
SQLITE_MAX_INTEGER = 2**63 - 1

# Largest budget, bid or wallet movement. Amount plus the highest possible
# platform fee stays well inside SQLITE_MAX_INTEGER.
MAX_AMOUNT = 10**15


def is_positive_int(value: object) -> bool:
    """Check if value is an integer in [1, MAX_AMOUNT] (not float, not bool)."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= MAX_AMOUNT


def load_task(store: EntityStore, task_id: str) -> dict[str, Any]:
    """
    Fetch a task row.

    Raises:
        ServiceError: NOT_FOUND
    """
    task = store.get_task(task_id)
    if task is None:
        raise ServiceError("NOT_FOUND", "Task not found", 404, {})
    return task


def load_bid(store: EntityStore, task_id: str, bid_id: str) -> dict[str, Any]:
    """
    Fetch a bid that belongs to the given task.

    Raises:
        ServiceError: NOT_FOUND
    """
    bid = store.get_bid(bid_id, task_id)
    if bid is None:
        raise ServiceError("NOT_FOUND", "Bid not found", 404, {})
    return bid


def compare_and_set(store: EntityStore, task: dict[str, Any], updates: dict[str, Any]) -> None:
    """
    Write ``updates`` only if the task still has the version it was read with.

    Raises:
        ServiceError: CONFLICT
    """
    changed = store.update_task(
        str(task["task_id"]),
        {**updates, "updated_at": now_iso()},
        expected_version=int(task["version"]),
    )
    if changed == 0:
        raise ServiceError(
            "CONFLICT",
            "Task was modified concurrently, re-read and retry",
            409,
            {"task_id": task["task_id"]},
        )


def _location(row: dict[str, Any]) -> dict[str, Any] | None:
    if row["latitude"] is None:
        return None
    return {
        "latitude": row["latitude"],
        "longitude": row["longitude"],
        "city": row["city"],
        "address": row["address"],
    }


def task_to_response(row: dict[str, Any]) -> dict[str, Any]:
    """Convert a task row to its API representation."""
    return {
        "task_id": row["task_id"],
        "poster_id": row["poster_id"],
        "title": row["title"],
        "description": row["description"],
        "category": row["category"],
        "budget": row["budget"],
        "location": _location(row),
        "scheduled_date": row["scheduled_date"],
        "scheduled_time": row["scheduled_time"],
        "is_instant_job": bool(row["is_instant_job"]),
        "accepted_bid_amount": row["accepted_bid_amount"],
        "state": row["state"],
        "assigned_worker_id": row["assigned_worker_id"],
        "worker_arrived": bool(row["worker_arrived"]),
        "completion_requested": bool(row["completion_requested"]),
        "completion_photo_url": row["completion_photo_url"],
        "version": row["version"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "accepted_at": row["accepted_at"],
        "completed_at": row["completed_at"],
        "cancelled_at": row["cancelled_at"],
    }


def bid_to_response(row: dict[str, Any]) -> dict[str, Any]:
    """Convert a bid row to its API representation."""
    return {
        "bid_id": row["bid_id"],
        "task_id": row["task_id"],
        "worker_id": row["worker_id"],
        "amount": row["amount"],
        "message": row["message"],
        "status": row["status"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }
