"""Bid placement, acceptance, rejection and withdrawal."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from task_market_service.core.exceptions import ServiceError
from task_market_service.logging import get_logger
from task_market_service.services.entity_store import DuplicateAcceptedBidError, DuplicateBidError
from task_market_service.services.lifecycle import TaskEvent, TaskState, transition
from task_market_service.services.notification_dispatcher import NotificationType
from task_market_service.services.task_records import (
    MAX_AMOUNT,
    bid_to_response,
    compare_and_set,
    is_positive_int,
    load_bid,
    load_task,
    now_iso,
    task_to_response,
)

if TYPE_CHECKING:
    from task_market_service.services.entity_store import EntityStore
    from task_market_service.services.escrow_engine import EscrowEngine
    from task_market_service.services.notification_dispatcher import NotificationDispatcher

BID_PENDING = "pending"
BID_ACCEPTED = "accepted"
BID_REJECTED = "rejected"


class BidEngine:
    """
    Manages bids on open tasks.

    Accepting a bid is the one operation that touches every part of the
    task aggregate at once: the task moves to in_progress, the winning bid
    is accepted, every other pending bid is rejected, escrow is locked and
    the worker is notified. All of it commits together or not at all.
    """

    def __init__(
        self,
        store: EntityStore,
        escrow_engine: EscrowEngine,
        notifier: NotificationDispatcher,
        *,
        block_cancel_during_handoff: bool,
    ) -> None:
        self._store = store
        self._escrow = escrow_engine
        self._notifier = notifier
        self._block_cancel_during_handoff = block_cancel_during_handoff
        self._logger = get_logger(__name__)

    def place_bid(
        self,
        task_id: str,
        worker_id: str,
        amount: object,
        message: str = "",
    ) -> dict[str, Any]:
        """
        Place a pending bid on an open task.

        Error precedence:
        1. INVALID_AMOUNT: amount is not an integer in [1, MAX_AMOUNT]
        2. NOT_FOUND: task does not exist
        3. INVALID_STATE: task is not open
        4. DUPLICATE_BID: worker already has a pending or accepted bid
        """
        if not is_positive_int(amount):
            raise ServiceError(
                "INVALID_AMOUNT",
                f"Bid amount must be a positive integer no greater than {MAX_AMOUNT}",
                400,
                {},
            )

        created_at = now_iso()
        bid = {
            "bid_id": f"bid-{uuid.uuid4()}",
            "task_id": task_id,
            "worker_id": worker_id,
            "amount": amount,
            "message": message,
            "status": BID_PENDING,
            "created_at": created_at,
            "updated_at": created_at,
        }

        # Re-read under the write lock: the task may have left OPEN since.
        with self._store.transaction():
            task = load_task(self._store, task_id)
            if task["state"] != TaskState.OPEN.value:
                raise ServiceError(
                    "INVALID_STATE",
                    f"Cannot bid on task in '{task['state']}' state, must be 'open'",
                    409,
                    {},
                )

            try:
                self._store.insert_bid(bid)
            except DuplicateBidError as exc:
                raise ServiceError(
                    "DUPLICATE_BID",
                    "This worker already has an active bid on this task",
                    409,
                    {},
                ) from exc

            self._notifier.emit(NotificationType.NEW_BID, str(task["poster_id"]), task_id)

        self._logger.info(
            "Bid placed",
            extra={"task_id": task_id, "bid_id": bid["bid_id"], "worker_id": worker_id},
        )
        return bid_to_response(bid)

    def accept_bid(self, task_id: str, bid_id: str, poster_id: str) -> dict[str, Any]:
        """
        Accept a pending bid, assign its worker and lock escrow.

        Error precedence:
        1. NOT_FOUND: task does not exist
        2. UNAUTHORIZED: caller is not the task's poster
        3. INVALID_STATE: task is not open
        4. NOT_FOUND: bid does not exist on this task
        5. INVALID_STATE: bid is not pending
        6. CONFLICT: task or bid changed since it was read
        """
        task = load_task(self._store, task_id)
        if poster_id != task["poster_id"]:
            raise ServiceError("UNAUTHORIZED", "Only the poster can accept bids", 403, {})

        outcome = transition(
            task,
            TaskEvent.ACCEPT_BID,
            block_cancel_during_handoff=self._block_cancel_during_handoff,
        )

        bid = load_bid(self._store, task_id, bid_id)
        if bid["status"] != BID_PENDING:
            raise ServiceError(
                "INVALID_STATE",
                f"Cannot accept bid in '{bid['status']}' status, must be 'pending'",
                409,
                {},
            )

        worker_id = str(bid["worker_id"])
        accepted_at = now_iso()

        with self._store.transaction():
            compare_and_set(
                self._store,
                task,
                {
                    "state": outcome.state.value,
                    "assigned_worker_id": worker_id,
                    "accepted_bid_amount": bid["amount"],
                    "accepted_at": accepted_at,
                },
            )

            try:
                changed = self._store.update_bid_status(
                    bid_id,
                    BID_ACCEPTED,
                    accepted_at,
                    expected_status=BID_PENDING,
                )
            except DuplicateAcceptedBidError as exc:
                raise ServiceError(
                    "CONFLICT", "Task already has an accepted bid", 409, {"task_id": task_id}
                ) from exc
            if changed == 0:
                raise ServiceError(
                    "CONFLICT", "Bid was modified concurrently", 409, {"bid_id": bid_id}
                )

            rejected = self._store.reject_pending_bids(task_id, accepted_at)
            self._escrow.lock(task_id, int(bid["amount"]))
            if outcome.notify is not None:
                self._notifier.emit(outcome.notify, worker_id, task_id)

        self._logger.info(
            "Bid accepted",
            extra={
                "task_id": task_id,
                "bid_id": bid_id,
                "worker_id": worker_id,
                "amount": bid["amount"],
                "rejected_bids": rejected,
            },
        )
        return task_to_response(load_task(self._store, task_id))

    def reject_bid(self, task_id: str, bid_id: str, poster_id: str) -> dict[str, Any]:
        """
        Reject a pending bid on an open task.

        Error precedence:
        1. NOT_FOUND: task does not exist
        2. UNAUTHORIZED: caller is not the task's poster
        3. INVALID_STATE: task is not open, or bid is not pending
        """
        task = load_task(self._store, task_id)
        if poster_id != task["poster_id"]:
            raise ServiceError("UNAUTHORIZED", "Only the poster can reject bids", 403, {})
        return self._close_pending_bid(task, bid_id, "rejected")

    def withdraw_bid(self, task_id: str, bid_id: str, worker_id: str) -> dict[str, Any]:
        """
        Withdraw the caller's own pending bid. The bid ends up rejected.

        Error precedence:
        1. NOT_FOUND: task or bid does not exist
        2. UNAUTHORIZED: caller did not place the bid
        3. INVALID_STATE: task is not open, or bid is not pending
        """
        task = load_task(self._store, task_id)
        bid = load_bid(self._store, task_id, bid_id)
        if worker_id != bid["worker_id"]:
            raise ServiceError("UNAUTHORIZED", "Only the bidder can withdraw a bid", 403, {})
        return self._close_pending_bid(task, bid_id, "withdrawn")

    def _close_pending_bid(self, task: dict[str, Any], bid_id: str, action: str) -> dict[str, Any]:
        task_id = str(task["task_id"])
        if task["state"] != TaskState.OPEN.value:
            raise ServiceError(
                "INVALID_STATE",
                f"Bids on a task in '{task['state']}' state cannot be {action}",
                409,
                {},
            )

        bid = load_bid(self._store, task_id, bid_id)
        if bid["status"] != BID_PENDING:
            raise ServiceError(
                "INVALID_STATE",
                f"Cannot close bid in '{bid['status']}' status, must be 'pending'",
                409,
                {},
            )

        updated_at = now_iso()
        changed = self._store.update_bid_status(
            bid_id,
            BID_REJECTED,
            updated_at,
            expected_status=BID_PENDING,
        )
        if changed == 0:
            raise ServiceError("CONFLICT", "Bid was modified concurrently", 409, {"bid_id": bid_id})

        self._logger.info(
            f"Bid {action}",
            extra={"task_id": task_id, "bid_id": bid_id, "worker_id": bid["worker_id"]},
        )
        return bid_to_response({**bid, "status": BID_REJECTED, "updated_at": updated_at})

    def list_bids(self, task_id: str) -> list[dict[str, Any]]:
        """List every bid on a task in submission order."""
        load_task(self._store, task_id)
        return [bid_to_response(row) for row in self._store.get_bids_for_task(task_id)]

    def list_worker_bids(self, worker_id: str) -> list[dict[str, Any]]:
        """List every bid a worker has placed, newest first."""
        return [bid_to_response(row) for row in self._store.get_bids_for_worker(worker_id)]
