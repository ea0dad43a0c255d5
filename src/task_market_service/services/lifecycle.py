"""Task lifecycle state machine, the single place where transitions are validated.

Task lifecycle:
    OPEN -> IN_PROGRESS -> COMPLETED
    OPEN or IN_PROGRESS -> CANCELLED

State semantics:
- OPEN: accepting bids.
- IN_PROGRESS: a bid was accepted and its worker is assigned. The worker
  signals arrival and then requests completion; neither changes the state
  but each gates the next event.
- COMPLETED: terminal. Poster confirmed completion, escrow released.
- CANCELLED: terminal. Withdrawn before completion.

Pure computation: the functions here decide, they never persist. Side
effects (writes, escrow, notifications) belong to the task manager.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from task_market_service.core.exceptions import ServiceError
from task_market_service.services.notification_dispatcher import NotificationType


class TaskState(str, Enum):
    """Lifecycle states of a task."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskEvent(str, Enum):
    """Events that drive a task through its lifecycle."""

    ACCEPT_BID = "accept_bid"
    CANCEL = "cancel"
    WORKER_ARRIVED = "worker_arrived"
    COMPLETION_REQUESTED = "completion_requested"
    CONFIRM_COMPLETION = "confirm_completion"


@dataclass(frozen=True)
class Transition:
    """Outcome of applying an event: the next state and who hears about it."""

    state: TaskState
    notify: NotificationType | None


_TRANSITIONS: dict[tuple[TaskState, TaskEvent], Transition] = {
    (TaskState.OPEN, TaskEvent.ACCEPT_BID): Transition(
        TaskState.IN_PROGRESS, NotificationType.BID_ACCEPTED
    ),
    (TaskState.OPEN, TaskEvent.CANCEL): Transition(TaskState.CANCELLED, None),
    (TaskState.IN_PROGRESS, TaskEvent.CANCEL): Transition(
        TaskState.CANCELLED, NotificationType.TASK_CANCELLED
    ),
    (TaskState.IN_PROGRESS, TaskEvent.WORKER_ARRIVED): Transition(
        TaskState.IN_PROGRESS, NotificationType.WORKER_ARRIVED
    ),
    (TaskState.IN_PROGRESS, TaskEvent.COMPLETION_REQUESTED): Transition(
        TaskState.IN_PROGRESS, None
    ),
    (TaskState.IN_PROGRESS, TaskEvent.CONFIRM_COMPLETION): Transition(
        TaskState.COMPLETED, NotificationType.TASK_COMPLETED
    ),
}

TERMINAL_STATES: frozenset[TaskState] = frozenset({TaskState.COMPLETED, TaskState.CANCELLED})


def valid_events(state: TaskState) -> set[TaskEvent]:
    """Events that the transition table accepts from ``state``."""
    return {event for (source, event) in _TRANSITIONS if source is state}


def is_terminal(state: TaskState) -> bool:
    """Check if a state is terminal (no further transitions)."""
    return state in TERMINAL_STATES


def _invalid(message: str, details: dict[str, object] | None = None) -> ServiceError:
    return ServiceError("INVALID_STATE", message, 409, details or {})


def transition(
    task: dict[str, Any],
    event: TaskEvent,
    *,
    block_cancel_during_handoff: bool,
) -> Transition:
    """
    Validate ``event`` against the task's current state and signal flags.

    Re-applying an event that already happened is rejected, so a retried
    request can never pay out or notify twice.

    Raises:
        ServiceError: INVALID_STATE
    """
    current = TaskState(task["state"])
    result = _TRANSITIONS.get((current, event))
    if result is None:
        if is_terminal(current):
            raise _invalid(
                f"Task is already '{current.value}' and accepts no further events",
                {"state": current.value},
            )
        raise _invalid(
            f"Cannot apply '{event.value}' to task in '{current.value}' state",
            {
                "state": current.value,
                "allowed_events": sorted(e.value for e in valid_events(current)),
            },
        )

    worker_arrived = bool(task["worker_arrived"])
    completion_requested = bool(task["completion_requested"])

    if event is TaskEvent.WORKER_ARRIVED and worker_arrived:
        raise _invalid("Worker arrival is already recorded")

    if event is TaskEvent.COMPLETION_REQUESTED:
        if not worker_arrived:
            raise _invalid("Worker must mark arrival before requesting completion")
        if completion_requested:
            raise _invalid("Completion is already requested")

    if event is TaskEvent.CONFIRM_COMPLETION and not completion_requested:
        raise _invalid("Worker has not requested completion")

    if (
        event is TaskEvent.CANCEL
        and current is TaskState.IN_PROGRESS
        and block_cancel_during_handoff
        and worker_arrived
        and completion_requested
    ):
        raise _invalid("Cannot cancel a task whose completion handoff is in progress")

    return result
