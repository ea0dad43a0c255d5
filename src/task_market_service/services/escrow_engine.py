"""Escrow locking, release and refund for accepted tasks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from task_market_service.core.exceptions import ServiceError
from task_market_service.logging import get_logger
from task_market_service.services.entity_store import DuplicateEscrowError
from task_market_service.services.task_records import MAX_AMOUNT, is_positive_int, now_iso

if TYPE_CHECKING:
    from task_market_service.services.entity_store import EntityStore
    from task_market_service.services.fee_policy import FeePolicy
    from task_market_service.services.wallet_ledger import WalletLedger

ESCROW_LOCKED = "locked"
ESCROW_RELEASED = "released"
ESCROW_REFUNDED = "refunded"

FUNDING_TRUST = "trust"
FUNDING_PREPAID = "prepaid"


class EscrowEngine:
    """
    Holds the funds committed to a task between bid acceptance and completion.

    Two funding models are supported. Under ``trust`` the lock is only a
    reservation record and nothing is debited until release. Under
    ``prepaid`` the poster's wallet is debited ``total`` at lock time and
    credited back on refund.

    Every method runs inside a store transaction, so when it is called
    from an engine operation that already opened one, its writes commit or
    roll back with the rest of the aggregate.
    """

    def __init__(
        self,
        store: EntityStore,
        ledger: WalletLedger,
        fee_policy: FeePolicy,
        funding_model: str,
        fee_account_id: str,
    ) -> None:
        if funding_model not in (FUNDING_TRUST, FUNDING_PREPAID):
            msg = f"Unknown funding model: {funding_model}"
            raise ValueError(msg)
        self._store = store
        self._ledger = ledger
        self._fee_policy = fee_policy
        self._funding_model = funding_model
        self._fee_account_id = fee_account_id
        self._logger = get_logger(__name__)

    @property
    def funding_model(self) -> str:
        """Funding model applied to new escrows."""
        return self._funding_model

    def platform_fee(self, amount: int) -> int:
        """Fee the platform charges on top of a bid amount."""
        return self._fee_policy.platform_fee(amount)

    def get_escrow(self, task_id: str) -> dict[str, Any]:
        """
        Fetch the escrow for a task.

        Raises:
            ServiceError: NOT_FOUND
        """
        escrow = self._store.get_escrow(task_id)
        if escrow is None:
            raise ServiceError("NOT_FOUND", "Escrow not found", 404, {})
        return escrow

    def lock(self, task_id: str, amount: int) -> dict[str, Any]:
        """
        Create a locked escrow of ``amount`` plus the platform fee.

        Raises:
            ServiceError: NOT_FOUND, INVALID_AMOUNT, INVALID_STATE, INSUFFICIENT_FUNDS
        """
        if not is_positive_int(amount):
            raise ServiceError(
                "INVALID_AMOUNT",
                f"Escrow amount must be a positive integer no greater than {MAX_AMOUNT}",
                400,
                {},
            )

        platform_fee = self.platform_fee(amount)
        escrow = {
            "task_id": task_id,
            "amount": amount,
            "platform_fee": platform_fee,
            "total": amount + platform_fee,
            "status": ESCROW_LOCKED,
            "funding_model": self._funding_model,
            "created_at": now_iso(),
            "resolved_at": None,
        }

        with self._store.transaction():
            task = self._store.get_task(task_id)
            if task is None:
                raise ServiceError("NOT_FOUND", "Task not found", 404, {})

            try:
                self._store.insert_escrow(escrow)
            except DuplicateEscrowError as exc:
                raise ServiceError(
                    "INVALID_STATE",
                    "An escrow is already locked for this task",
                    409,
                    {},
                ) from exc

            if self._funding_model == FUNDING_PREPAID:
                self._ledger.debit(
                    str(task["poster_id"]),
                    escrow["total"],
                    "Escrow lock",
                    task_id,
                )

        self._logger.info(
            "Escrow locked",
            extra={
                "task_id": task_id,
                "amount": amount,
                "platform_fee": platform_fee,
                "funding_model": self._funding_model,
            },
        )
        return escrow

    def release(self, task_id: str) -> dict[str, Any]:
        """
        Pay the assigned worker and the platform fee account.

        Only valid once, for a locked escrow whose task is completed.

        Raises:
            ServiceError: NOT_FOUND, INVALID_STATE, CONFLICT
        """
        with self._store.transaction():
            escrow = self.get_escrow(task_id)
            if escrow["status"] != ESCROW_LOCKED:
                raise ServiceError(
                    "INVALID_STATE",
                    f"Cannot release escrow in '{escrow['status']}' status, must be 'locked'",
                    409,
                    {},
                )

            task = self._store.get_task(task_id)
            if task is None:
                raise ServiceError("NOT_FOUND", "Task not found", 404, {})
            if task["state"] != "completed" or task["assigned_worker_id"] is None:
                raise ServiceError(
                    "INVALID_STATE",
                    f"Cannot release escrow for task in '{task['state']}' state",
                    409,
                    {},
                )

            resolved_at = now_iso()
            changed = self._store.update_escrow_status(
                task_id,
                ESCROW_RELEASED,
                resolved_at,
                expected_status=ESCROW_LOCKED,
            )
            if changed == 0:
                raise ServiceError("CONFLICT", "Escrow was modified concurrently", 409, {})

            self._ledger.credit(
                str(task["assigned_worker_id"]),
                int(escrow["amount"]),
                "Payment for completed task",
                task_id,
            )
            if escrow["platform_fee"] > 0:
                self._ledger.credit(
                    self._fee_account_id,
                    int(escrow["platform_fee"]),
                    "Platform fee",
                    task_id,
                )

        self._logger.info(
            "Escrow released",
            extra={
                "task_id": task_id,
                "worker_id": task["assigned_worker_id"],
                "amount": escrow["amount"],
            },
        )
        return {**escrow, "status": ESCROW_RELEASED, "resolved_at": resolved_at}

    def refund(self, task_id: str) -> dict[str, Any]:
        """
        Return a locked escrow to the poster after cancellation.

        Only prepaid escrows move money; trust escrows just change status.

        Raises:
            ServiceError: NOT_FOUND, INVALID_STATE, CONFLICT
        """
        with self._store.transaction():
            escrow = self.get_escrow(task_id)
            if escrow["status"] != ESCROW_LOCKED:
                raise ServiceError(
                    "INVALID_STATE",
                    f"Cannot refund escrow in '{escrow['status']}' status, must be 'locked'",
                    409,
                    {},
                )

            task = self._store.get_task(task_id)
            if task is None:
                raise ServiceError("NOT_FOUND", "Task not found", 404, {})
            if task["state"] != "cancelled":
                raise ServiceError(
                    "INVALID_STATE",
                    f"Cannot refund escrow for task in '{task['state']}' state",
                    409,
                    {},
                )

            resolved_at = now_iso()
            changed = self._store.update_escrow_status(
                task_id,
                ESCROW_REFUNDED,
                resolved_at,
                expected_status=ESCROW_LOCKED,
            )
            if changed == 0:
                raise ServiceError("CONFLICT", "Escrow was modified concurrently", 409, {})

            if escrow["funding_model"] == FUNDING_PREPAID:
                self._ledger.credit(
                    str(task["poster_id"]),
                    int(escrow["total"]),
                    "Escrow refund",
                    task_id,
                )

        self._logger.info("Escrow refunded", extra={"task_id": task_id})
        return {**escrow, "status": ESCROW_REFUNDED, "resolved_at": resolved_at}
