"""Shared test helpers for JWS authentication, service wiring and API calls."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from httpx import AsyncClient
from joserfc import jws
from joserfc.jwk import OKPKey

from task_market_service.services.bid_engine import BidEngine
from task_market_service.services.entity_store import EntityStore
from task_market_service.services.escrow_engine import EscrowEngine
from task_market_service.services.fee_policy import FeePolicy
from task_market_service.services.notification_dispatcher import NotificationDispatcher
from task_market_service.services.rating_aggregator import RatingAggregator
from task_market_service.services.task_manager import TaskManager
from task_market_service.services.wallet_ledger import WalletLedger

PLATFORM_AGENT_ID = "a-platform-test"
FEE_ACCOUNT_ID = "a-platform-fees-test"


# ---------------------------------------------------------------------------
# JWS tokens
# ---------------------------------------------------------------------------


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _segment_json(token: str, index: int) -> dict[str, Any]:
    segment = token.split(".")[index]
    padded = segment + "=" * (-len(segment) % 4)
    decoded: dict[str, Any] = json.loads(base64.urlsafe_b64decode(padded))
    return decoded


def sign_token(agent_id: str, payload: dict[str, Any]) -> str:
    """EdDSA-signed compact JWS whose ``kid`` header names ``agent_id``."""
    signer = Ed25519PrivateKey.generate()
    key = OKPKey.import_key(
        {
            "kty": "OKP",
            "crv": "Ed25519",
            "d": _b64url(signer.private_bytes_raw()),
            "x": _b64url(signer.public_key().public_bytes_raw()),
        }
    )
    body = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
    return jws.serialize_compact({"alg": "EdDSA", "kid": agent_id}, body, key, algorithms=["EdDSA"])


def extract_kid(token: str) -> str:
    return str(_segment_json(token, 0).get("kid", "unknown"))


def extract_payload(token: str) -> dict[str, Any]:
    return _segment_json(token, 1)


def auth_headers(agent_id: str) -> dict[str, str]:
    """Bearer header carrying a freshly signed token for ``agent_id``."""
    return {"Authorization": f"Bearer {sign_token(agent_id, {'agent_id': agent_id})}"}


# ---------------------------------------------------------------------------
# In-process service wiring
# ---------------------------------------------------------------------------


@dataclass
class Market:
    """Every engine wired to one store, the way the lifespan wires them."""

    store: EntityStore
    notifier: NotificationDispatcher
    ledger: WalletLedger
    escrow: EscrowEngine
    bids: BidEngine
    tasks: TaskManager
    ratings: RatingAggregator

    def create_task(self, poster_id: str = "a-poster", budget: int = 500) -> str:
        task = self.tasks.create_task(
            poster_id, "Fix the sink", "Kitchen sink leaks", "plumbing", budget
        )
        return str(task["task_id"])

    def start_task(
        self,
        poster_id: str = "a-poster",
        worker_id: str = "a-worker",
        amount: int = 450,
    ) -> str:
        """Create a task and accept one bid on it. Returns the task id."""
        task_id = self.create_task(poster_id)
        bid = self.bids.place_bid(task_id, worker_id, amount)
        self.bids.accept_bid(task_id, bid["bid_id"], poster_id)
        return task_id

    def complete_task(
        self,
        poster_id: str = "a-poster",
        worker_id: str = "a-worker",
        amount: int = 450,
    ) -> str:
        """Drive a task all the way to completed. Returns the task id."""
        task_id = self.start_task(poster_id, worker_id, amount)
        self.tasks.mark_worker_arrived(task_id, worker_id)
        self.tasks.request_completion(task_id, worker_id, "p.jpg")
        self.tasks.confirm_completion(task_id, poster_id)
        return task_id


def build_market(
    tmp_path: Path,
    *,
    funding_model: str = "trust",
    flat_fee: int = 20,
    fee_basis_points: int = 0,
    block_cancel_during_handoff: bool = True,
) -> Market:
    """Wire all engines against a fresh SQLite database under ``tmp_path``."""
    store = EntityStore(db_path=str(tmp_path / "task-market.db"))
    notifier = NotificationDispatcher(store)
    ledger = WalletLedger(store)
    escrow = EscrowEngine(
        store=store,
        ledger=ledger,
        fee_policy=FeePolicy(flat_fee=flat_fee, fee_basis_points=fee_basis_points),
        funding_model=funding_model,
        fee_account_id=FEE_ACCOUNT_ID,
    )
    return Market(
        store=store,
        notifier=notifier,
        ledger=ledger,
        escrow=escrow,
        bids=BidEngine(
            store,
            escrow,
            notifier,
            block_cancel_during_handoff=block_cancel_during_handoff,
        ),
        tasks=TaskManager(
            store,
            escrow,
            notifier,
            platform_agent_id=PLATFORM_AGENT_ID,
            block_cancel_during_handoff=block_cancel_during_handoff,
        ),
        ratings=RatingAggregator(store, notifier),
    )


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


async def create_task(
    client: AsyncClient,
    poster_id: str,
    *,
    title: str = "Assemble wardrobe",
    description: str = "Two-door wardrobe, tools provided",
    category: str = "assembly",
    budget: int = 500,
) -> Any:
    """Create a task via POST /tasks and return the response."""
    return await client.post(
        "/tasks",
        json={
            "title": title,
            "description": description,
            "category": category,
            "budget": budget,
        },
        headers=auth_headers(poster_id),
    )


async def place_bid(
    client: AsyncClient,
    worker_id: str,
    task_id: str,
    *,
    amount: int = 450,
    message: str = "Can do it tomorrow",
) -> Any:
    """Place a bid via POST /tasks/{task_id}/bids and return the response."""
    return await client.post(
        f"/tasks/{task_id}/bids",
        json={"amount": amount, "message": message},
        headers=auth_headers(worker_id),
    )


async def accept_bid(client: AsyncClient, poster_id: str, task_id: str, bid_id: str) -> Any:
    """Accept a bid via POST /tasks/{task_id}/bids/{bid_id}/accept."""
    return await client.post(
        f"/tasks/{task_id}/bids/{bid_id}/accept",
        headers=auth_headers(poster_id),
    )


async def post_command(client: AsyncClient, actor_id: str, path: str) -> Any:
    """POST to a bodyless command endpoint as ``actor_id``."""
    return await client.post(path, headers=auth_headers(actor_id))


async def start_task(
    client: AsyncClient,
    poster_id: str,
    worker_id: str,
    *,
    amount: int = 450,
) -> str:
    """Create a task and accept a bid from ``worker_id``. Returns the task id."""
    task_resp = await create_task(client, poster_id)
    assert task_resp.status_code == 201
    task_id = str(task_resp.json()["task_id"])

    bid_resp = await place_bid(client, worker_id, task_id, amount=amount)
    assert bid_resp.status_code == 201

    accept_resp = await accept_bid(client, poster_id, task_id, bid_resp.json()["bid_id"])
    assert accept_resp.status_code == 200
    return task_id


async def complete_task(
    client: AsyncClient,
    poster_id: str,
    worker_id: str,
    *,
    amount: int = 450,
) -> str:
    """Drive a task through arrival, completion request and confirmation."""
    task_id = await start_task(client, poster_id, worker_id, amount=amount)
    assert (await post_command(client, worker_id, f"/tasks/{task_id}/arrive")).status_code == 200
    request_resp = await client.post(
        f"/tasks/{task_id}/request-completion",
        json={"photo_url": "p.jpg"},
        headers=auth_headers(worker_id),
    )
    assert request_resp.status_code == 200
    confirm_resp = await post_command(client, poster_id, f"/tasks/{task_id}/confirm-completion")
    assert confirm_resp.status_code == 200
    return task_id
