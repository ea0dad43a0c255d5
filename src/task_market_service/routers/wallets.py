"""Endpoints for the caller's own wallet."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from fastapi import APIRouter, Request

from task_market_service.core.state import get_app_state
from task_market_service.routers.validation import read_json_body, require_actor
from task_market_service.schemas import TransactionResponse, WalletResponse

if TYPE_CHECKING:
    from task_market_service.services.wallet_ledger import WalletLedger

router = APIRouter()


def _wallet_ledger() -> WalletLedger:
    state = get_app_state()
    if state.wallet_ledger is None:
        msg = "WalletLedger not initialized"
        raise RuntimeError(msg)
    return state.wallet_ledger


@router.get("/wallets/me", response_model=WalletResponse)
async def get_wallet(request: Request) -> dict[str, Any]:
    """Balance and transaction history of the caller."""
    user_id = await require_actor(request)
    return _wallet_ledger().get_wallet(user_id)


@router.post("/wallets/me/deposit", response_model=TransactionResponse)
async def deposit(request: Request) -> dict[str, Any]:
    """Add funds to the caller's wallet."""
    data = await read_json_body(request)
    user_id = await require_actor(request)
    return _wallet_ledger().credit(user_id, cast("int", data.get("amount")), "Deposit")


@router.post("/wallets/me/withdraw", response_model=TransactionResponse)
async def withdraw(request: Request) -> dict[str, Any]:
    """Take funds out of the caller's wallet."""
    data = await read_json_body(request)
    user_id = await require_actor(request)
    return _wallet_ledger().debit(user_id, cast("int", data.get("amount")), "Withdrawal")
