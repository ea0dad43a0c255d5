"""Task creation, queries and the lifecycle events after a bid is accepted."""

from __future__ import annotations

import math
import uuid
from datetime import date, time
from typing import TYPE_CHECKING, Any, cast

from task_market_service.core.exceptions import ServiceError
from task_market_service.logging import get_logger
from task_market_service.services.lifecycle import TaskEvent, TaskState, Transition, transition
from task_market_service.services.task_records import (
    MAX_AMOUNT,
    SQLITE_MAX_INTEGER,
    TASK_CATEGORIES,
    compare_and_set,
    is_positive_int,
    load_task,
    now_iso,
    task_to_response,
)

if TYPE_CHECKING:
    from task_market_service.services.entity_store import EntityStore
    from task_market_service.services.escrow_engine import EscrowEngine
    from task_market_service.services.notification_dispatcher import NotificationDispatcher

_MAX_TITLE_LENGTH = 200
_MAX_DESCRIPTION_LENGTH = 10000
_MAX_CITY_LENGTH = 100
_MAX_ADDRESS_LENGTH = 500
# Half of the Earth's circumference.
_MAX_RADIUS_KM = 20038.0


def _invalid_payload(message: str) -> ServiceError:
    return ServiceError("INVALID_PAYLOAD", message, 400, {})


def _is_coordinate(value: object, bound: float) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and -bound <= value <= bound
    )


def _location_columns(location: object) -> dict[str, Any]:
    """Validate a location object and flatten it into task columns."""
    if location is None:
        return {"latitude": None, "longitude": None, "city": None, "address": None}
    if not isinstance(location, dict):
        raise _invalid_payload("Location must be an object")

    latitude = location.get("latitude")
    longitude = location.get("longitude")
    city = location.get("city")
    address = location.get("address")
    if not _is_coordinate(latitude, 90):
        raise _invalid_payload("Location latitude must be a number between -90 and 90")
    if not _is_coordinate(longitude, 180):
        raise _invalid_payload("Location longitude must be a number between -180 and 180")
    if not isinstance(city, str) or not city.strip() or len(city) > _MAX_CITY_LENGTH:
        raise _invalid_payload(
            f"Location city must be a non-empty string of at most {_MAX_CITY_LENGTH} characters"
        )
    if address is not None and (
        not isinstance(address, str) or len(address) > _MAX_ADDRESS_LENGTH
    ):
        raise _invalid_payload(
            f"Location address must be a string of at most {_MAX_ADDRESS_LENGTH} characters"
        )
    return {
        "latitude": float(cast("float", latitude)),
        "longitude": float(cast("float", longitude)),
        "city": city.strip(),
        "address": address,
    }


def _schedule_columns(
    scheduled_date: object,
    scheduled_time: object,
    is_instant_job: object,
) -> dict[str, Any]:
    """Validate the schedule fields. Dates are YYYY-MM-DD, times HH:MM."""
    if scheduled_date is not None:
        if not isinstance(scheduled_date, str):
            raise _invalid_payload("scheduled_date must be a YYYY-MM-DD string")
        try:
            scheduled_date = date.fromisoformat(scheduled_date).isoformat()
        except ValueError as exc:
            raise _invalid_payload("scheduled_date must be a YYYY-MM-DD string") from exc

    if scheduled_time is not None:
        if not isinstance(scheduled_time, str) or len(scheduled_time) != 5:
            raise _invalid_payload("scheduled_time must be an HH:MM string")
        try:
            scheduled_time = time.fromisoformat(scheduled_time).strftime("%H:%M")
        except ValueError as exc:
            raise _invalid_payload("scheduled_time must be an HH:MM string") from exc

    if not isinstance(is_instant_job, bool):
        raise _invalid_payload("is_instant_job must be a boolean")

    return {
        "scheduled_date": scheduled_date,
        "scheduled_time": scheduled_time,
        "is_instant_job": int(is_instant_job),
    }


def _near_filter(
    latitude: float | None,
    longitude: float | None,
    radius_km: float | None,
) -> tuple[float, float, float] | None:
    given = [value is not None for value in (latitude, longitude, radius_km)]
    if not any(given):
        return None
    if not all(given):
        raise _invalid_payload("near_latitude, near_longitude and radius_km go together")
    if not _is_coordinate(latitude, 90) or not _is_coordinate(longitude, 180):
        raise _invalid_payload("near_latitude or near_longitude is out of range")
    if not isinstance(radius_km, (int, float)) or not 0 < radius_km <= _MAX_RADIUS_KM:
        raise _invalid_payload(f"radius_km must be greater than 0 and at most {_MAX_RADIUS_KM}")
    return (float(cast("float", latitude)), float(cast("float", longitude)), float(radius_km))


class TaskManager:
    """
    Drives a task from creation to a terminal state.

    Every state change goes through ``lifecycle.transition`` for
    validation and is persisted with a version compare-and-set, so two
    requests racing on the same task never both succeed.
    """

    def __init__(
        self,
        store: EntityStore,
        escrow_engine: EscrowEngine,
        notifier: NotificationDispatcher,
        *,
        platform_agent_id: str,
        block_cancel_during_handoff: bool,
    ) -> None:
        self._store = store
        self._escrow = escrow_engine
        self._notifier = notifier
        self._platform_agent_id = platform_agent_id
        self._block_cancel_during_handoff = block_cancel_during_handoff
        self._logger = get_logger(__name__)

    def _transition(self, task: dict[str, Any], event: TaskEvent) -> Transition:
        return transition(
            task,
            event,
            block_cancel_during_handoff=self._block_cancel_during_handoff,
        )

    @staticmethod
    def _require_assigned_worker(task: dict[str, Any], worker_id: str) -> None:
        if worker_id != task["assigned_worker_id"]:
            raise ServiceError(
                "UNAUTHORIZED",
                "Only the assigned worker can perform this action",
                403,
                {},
            )

    @staticmethod
    def _require_poster(task: dict[str, Any], poster_id: str) -> None:
        if poster_id != task["poster_id"]:
            raise ServiceError(
                "UNAUTHORIZED",
                "Only the poster can perform this action",
                403,
                {},
            )

    # ------------------------------------------------------------------
    # Creation and queries
    # ------------------------------------------------------------------

    def create_task(
        self,
        poster_id: str,
        title: object,
        description: object,
        category: object,
        budget: object,
        *,
        location: object = None,
        scheduled_date: object = None,
        scheduled_time: object = None,
        is_instant_job: object = False,
    ) -> dict[str, Any]:
        """
        Create an open task.

        ``location`` is ``{latitude, longitude, city, address?}``; a task
        without one is never returned by the city or nearby filters.

        Error precedence:
        1. INVALID_PAYLOAD: title, description or category missing or malformed
        2. INVALID_AMOUNT: budget is not an integer in [1, MAX_AMOUNT]
        3. INVALID_PAYLOAD: malformed location or schedule
        """
        if not isinstance(title, str) or not title.strip():
            raise ServiceError("INVALID_PAYLOAD", "Title must be a non-empty string", 400, {})
        if len(title) > _MAX_TITLE_LENGTH:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Title must be at most {_MAX_TITLE_LENGTH} characters",
                400,
                {},
            )
        if not isinstance(description, str) or len(description) > _MAX_DESCRIPTION_LENGTH:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Description must be a string of at most {_MAX_DESCRIPTION_LENGTH} characters",
                400,
                {},
            )
        if not isinstance(category, str) or category not in TASK_CATEGORIES:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Category must be one of: {', '.join(sorted(TASK_CATEGORIES))}",
                400,
                {},
            )
        if not is_positive_int(budget):
            raise ServiceError(
                "INVALID_AMOUNT",
                f"Budget must be a positive integer no greater than {MAX_AMOUNT}",
                400,
                {},
            )

        where = _location_columns(location)
        when = _schedule_columns(scheduled_date, scheduled_time, is_instant_job)

        created_at = now_iso()
        task = {
            "task_id": f"t-{uuid.uuid4()}",
            "poster_id": poster_id,
            "title": title,
            "description": description,
            "category": category,
            "budget": budget,
            **where,
            **when,
            "accepted_bid_amount": None,
            "state": TaskState.OPEN.value,
            "assigned_worker_id": None,
            "worker_arrived": 0,
            "completion_requested": 0,
            "completion_photo_url": None,
            "version": 1,
            "created_at": created_at,
            "updated_at": created_at,
            "accepted_at": None,
            "completed_at": None,
            "cancelled_at": None,
        }
        self._store.insert_task(task)

        self._logger.info(
            "Task created",
            extra={"task_id": task["task_id"], "poster_id": poster_id, "category": category},
        )
        return task_to_response(task)

    def get_task(self, task_id: str) -> dict[str, Any]:
        """Fetch a task, raising NOT_FOUND if it does not exist."""
        return task_to_response(load_task(self._store, task_id))

    def list_tasks(
        self,
        state: str | None = None,
        poster_id: str | None = None,
        worker_id: str | None = None,
        category: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
        *,
        city: str | None = None,
        near_latitude: float | None = None,
        near_longitude: float | None = None,
        radius_km: float | None = None,
    ) -> list[dict[str, Any]]:
        """
        List tasks with optional filters, newest first.

        ``city`` matches the task location's city exactly. The nearby
        filter needs all of ``near_latitude``, ``near_longitude`` and
        ``radius_km`` and keeps tasks within that great-circle distance.
        """
        if state is not None and state not in {s.value for s in TaskState}:
            raise ServiceError("INVALID_PAYLOAD", f"Unknown task state: {state}", 400, {})
        if category is not None and category not in TASK_CATEGORIES:
            raise ServiceError("INVALID_PAYLOAD", f"Unknown task category: {category}", 400, {})
        for name, value in (("limit", limit), ("offset", offset)):
            if value is not None and not 0 <= value <= SQLITE_MAX_INTEGER:
                raise ServiceError("INVALID_PAYLOAD", f"{name} is out of range", 400, {})
        near = _near_filter(near_latitude, near_longitude, radius_km)

        rows = self._store.list_tasks(
            state,
            poster_id,
            worker_id,
            category,
            limit,
            offset,
            city=city.strip() if city is not None else None,
            near=near,
        )
        return [task_to_response(row) for row in rows]

    def get_escrow(self, task_id: str) -> dict[str, Any]:
        """Fetch the escrow of a task."""
        load_task(self._store, task_id)
        return self._escrow.get_escrow(task_id)

    # ------------------------------------------------------------------
    # Lifecycle events
    # ------------------------------------------------------------------

    def cancel_task(self, task_id: str, actor_id: str) -> dict[str, Any]:
        """
        Cancel an open or in-progress task.

        An open task can only be cancelled by its poster. An in-progress
        task can also be cancelled by the platform agent; its escrow is
        refunded and the assigned worker is notified.

        Error precedence:
        1. NOT_FOUND: task does not exist
        2. INVALID_STATE: task is terminal, or its completion handoff is under way
        3. UNAUTHORIZED: caller may not cancel this task
        4. CONFLICT: task changed since it was read
        """
        task = load_task(self._store, task_id)
        outcome = self._transition(task, TaskEvent.CANCEL)

        was_in_progress = task["state"] == TaskState.IN_PROGRESS.value
        allowed = {str(task["poster_id"])}
        if was_in_progress:
            allowed.add(self._platform_agent_id)
        if actor_id not in allowed:
            raise ServiceError("UNAUTHORIZED", "Caller may not cancel this task", 403, {})

        worker_id = task["assigned_worker_id"]
        cancelled_at = now_iso()

        with self._store.transaction():
            compare_and_set(
                self._store,
                task,
                {
                    "state": outcome.state.value,
                    "assigned_worker_id": None,
                    "cancelled_at": cancelled_at,
                },
            )
            if was_in_progress:
                self._escrow.refund(task_id)
            else:
                self._store.reject_pending_bids(task_id, cancelled_at)

            if outcome.notify is not None and worker_id is not None:
                self._notifier.emit(outcome.notify, str(worker_id), task_id)

        self._logger.info(
            "Task cancelled",
            extra={"task_id": task_id, "actor_id": actor_id, "previous_state": task["state"]},
        )
        return task_to_response(load_task(self._store, task_id))

    def mark_worker_arrived(self, task_id: str, worker_id: str) -> dict[str, Any]:
        """
        Record that the assigned worker is on site and notify the poster.

        Error precedence:
        1. NOT_FOUND: task does not exist
        2. INVALID_STATE: task is not in progress, or arrival already recorded
        3. UNAUTHORIZED: caller is not the assigned worker
        4. CONFLICT: task changed since it was read
        """
        task = load_task(self._store, task_id)
        outcome = self._transition(task, TaskEvent.WORKER_ARRIVED)
        self._require_assigned_worker(task, worker_id)

        with self._store.transaction():
            compare_and_set(self._store, task, {"worker_arrived": 1})
            if outcome.notify is not None:
                self._notifier.emit(outcome.notify, str(task["poster_id"]), task_id)

        self._logger.info("Worker arrived", extra={"task_id": task_id, "worker_id": worker_id})
        return task_to_response(load_task(self._store, task_id))

    def request_completion(
        self,
        task_id: str,
        worker_id: str,
        photo_url: str | None = None,
    ) -> dict[str, Any]:
        """
        Ask the poster to confirm the work, optionally with a photo.

        Error precedence:
        1. INVALID_PAYLOAD: photo_url is not a string
        2. NOT_FOUND: task does not exist
        3. INVALID_STATE: not in progress, worker not arrived, or already requested
        4. UNAUTHORIZED: caller is not the assigned worker
        5. CONFLICT: task changed since it was read
        """
        if photo_url is not None and not isinstance(photo_url, str):
            raise ServiceError("INVALID_PAYLOAD", "Field 'photo_url' must be a string", 400, {})

        task = load_task(self._store, task_id)
        self._transition(task, TaskEvent.COMPLETION_REQUESTED)
        self._require_assigned_worker(task, worker_id)

        compare_and_set(
            self._store,
            task,
            {"completion_requested": 1, "completion_photo_url": photo_url},
        )

        self._logger.info(
            "Completion requested",
            extra={"task_id": task_id, "worker_id": worker_id, "has_photo": photo_url is not None},
        )
        return task_to_response(load_task(self._store, task_id))

    def confirm_completion(self, task_id: str, poster_id: str) -> dict[str, Any]:
        """
        Complete the task and release escrow to the worker.

        Error precedence:
        1. NOT_FOUND: task does not exist
        2. INVALID_STATE: not in progress, or completion not requested
        3. UNAUTHORIZED: caller is not the poster
        4. CONFLICT: task changed since it was read
        """
        task = load_task(self._store, task_id)
        outcome = self._transition(task, TaskEvent.CONFIRM_COMPLETION)
        self._require_poster(task, poster_id)

        worker_id = str(task["assigned_worker_id"])

        with self._store.transaction():
            compare_and_set(
                self._store,
                task,
                {"state": outcome.state.value, "completed_at": now_iso()},
            )
            escrow = self._escrow.release(task_id)
            if outcome.notify is not None:
                self._notifier.emit(outcome.notify, worker_id, task_id)

        self._logger.info(
            "Task completed",
            extra={"task_id": task_id, "worker_id": worker_id, "amount": escrow["amount"]},
        )
        return task_to_response(load_task(self._store, task_id))

    # ------------------------------------------------------------------
    # Statistics for the health endpoint
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Return aggregate task statistics for health reporting."""
        counts: dict[str, int] = dict.fromkeys((s.value for s in TaskState), 0)
        for state, count in self._store.count_tasks_by_state().items():
            if state in counts:
                counts[state] = int(count)
        return {"total_tasks": self._store.count_tasks(), "tasks_by_state": counts}
