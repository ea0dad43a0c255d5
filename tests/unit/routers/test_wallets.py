"""Wallet endpoint tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tests.helpers import auth_headers

if TYPE_CHECKING:
    from httpx import AsyncClient


@pytest.mark.unit
async def test_new_wallet_is_empty(client: AsyncClient, alice: str) -> None:
    resp = await client.get("/wallets/me", headers=auth_headers(alice))

    assert resp.status_code == 200
    assert resp.json() == {"user_id": alice, "balance": 0, "transactions": []}


@pytest.mark.unit
async def test_deposit_and_withdraw(client: AsyncClient, alice: str) -> None:
    deposit = await client.post(
        "/wallets/me/deposit", json={"amount": 300}, headers=auth_headers(alice)
    )
    assert deposit.status_code == 200
    assert deposit.json()["type"] == "credit"
    assert deposit.json()["balance_after"] == 300

    withdraw = await client.post(
        "/wallets/me/withdraw", json={"amount": 120}, headers=auth_headers(alice)
    )
    assert withdraw.status_code == 200
    assert withdraw.json()["type"] == "debit"
    assert withdraw.json()["balance_after"] == 180

    wallet = (await client.get("/wallets/me", headers=auth_headers(alice))).json()
    assert wallet["balance"] == 180
    assert [tx["description"] for tx in wallet["transactions"]] == ["Deposit", "Withdrawal"]


@pytest.mark.unit
async def test_overdraw_rejected(client: AsyncClient, alice: str) -> None:
    await client.post("/wallets/me/deposit", json={"amount": 50}, headers=auth_headers(alice))

    resp = await client.post(
        "/wallets/me/withdraw", json={"amount": 80}, headers=auth_headers(alice)
    )

    assert resp.status_code == 402
    assert resp.json()["error"] == "INSUFFICIENT_FUNDS"
    wallet = (await client.get("/wallets/me", headers=auth_headers(alice))).json()
    assert wallet["balance"] == 50


@pytest.mark.unit
@pytest.mark.parametrize("amount", [0, -1, 2.5, "10", None, 2**62, 2**63])
async def test_invalid_amount(client: AsyncClient, alice: str, amount: object) -> None:
    resp = await client.post(
        "/wallets/me/deposit", json={"amount": amount}, headers=auth_headers(alice)
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_AMOUNT"


@pytest.mark.unit
async def test_wallets_are_private(client: AsyncClient, alice: str, bob: str) -> None:
    await client.post("/wallets/me/deposit", json={"amount": 75}, headers=auth_headers(alice))

    wallet = (await client.get("/wallets/me", headers=auth_headers(bob))).json()

    assert wallet["user_id"] == bob
    assert wallet["balance"] == 0


@pytest.mark.unit
async def test_wallet_requires_auth(client: AsyncClient) -> None:
    resp = await client.get("/wallets/me")
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_JWS"
