"""Wallet ledger: the only code path that changes a balance."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from task_market_service.core.exceptions import ServiceError
from task_market_service.services.task_records import (
    MAX_AMOUNT,
    SQLITE_MAX_INTEGER,
    is_positive_int,
    now_iso,
)

if TYPE_CHECKING:
    from task_market_service.services.entity_store import EntityStore

CREDIT = "credit"
DEBIT = "debit"


class WalletLedger:
    """
    Manages wallet balances through append-only transactions.

    Every balance change and its transaction record are written in the
    same store transaction, so ``balance`` always equals the sum of the
    signed transaction amounts. Wallets are created lazily.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    def get_wallet(self, user_id: str) -> dict[str, Any]:
        """Return balance and transactions. A user without a wallet sees an empty one."""
        wallet = self._store.get_wallet(user_id)
        if wallet is None:
            return {"user_id": user_id, "balance": 0, "transactions": []}
        return {
            "user_id": user_id,
            "balance": wallet["balance"],
            "transactions": self._store.get_transactions(user_id),
        }

    def get_balance(self, user_id: str) -> int:
        """Return the current balance (0 for a user without a wallet)."""
        wallet = self._store.get_wallet(user_id)
        return 0 if wallet is None else int(wallet["balance"])

    def credit(
        self,
        user_id: str,
        amount: int,
        description: str,
        task_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Add funds to a wallet.

        Raises:
            ServiceError: INVALID_AMOUNT
        """
        return self._apply(user_id, CREDIT, amount, description, task_id)

    def debit(
        self,
        user_id: str,
        amount: int,
        description: str,
        task_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Remove funds from a wallet.

        Raises:
            ServiceError: INVALID_AMOUNT, INSUFFICIENT_FUNDS
        """
        return self._apply(user_id, DEBIT, amount, description, task_id)

    def _apply(
        self,
        user_id: str,
        tx_type: str,
        amount: int,
        description: str,
        task_id: str | None,
    ) -> dict[str, Any]:
        if not is_positive_int(amount):
            raise ServiceError(
                "INVALID_AMOUNT",
                f"Amount must be a positive integer no greater than {MAX_AMOUNT}",
                400,
                {},
            )

        now = now_iso()
        with self._store.transaction():
            self._store.insert_wallet(user_id, now)
            balance = self.get_balance(user_id)

            if tx_type == DEBIT:
                if balance < amount:
                    raise ServiceError(
                        "INSUFFICIENT_FUNDS",
                        "Wallet balance does not cover this amount",
                        402,
                        {"balance": balance, "required": amount},
                    )
                balance_after = balance - amount
            elif balance + amount > SQLITE_MAX_INTEGER:
                raise ServiceError(
                    "INVALID_AMOUNT",
                    "Credit would push the wallet balance past its maximum",
                    400,
                    {"balance": balance, "amount": amount},
                )
            else:
                balance_after = balance + amount

            transaction = {
                "tx_id": f"tx-{uuid.uuid4()}",
                "user_id": user_id,
                "type": tx_type,
                "amount": amount,
                "balance_after": balance_after,
                "description": description,
                "task_id": task_id,
                "created_at": now,
            }
            self._store.set_wallet_balance(user_id, balance_after, now)
            self._store.insert_transaction(transaction)

        return transaction
