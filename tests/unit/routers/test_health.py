"""Health endpoint tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tests.helpers import complete_task, create_task, start_task

if TYPE_CHECKING:
    from httpx import AsyncClient


@pytest.mark.unit
async def test_health_on_empty_store(client: AsyncClient) -> None:
    resp = await client.get("/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["total_tasks"] == 0
    assert data["tasks_by_state"] == {
        "open": 0,
        "in_progress": 0,
        "completed": 0,
        "cancelled": 0,
    }
    assert data["uptime_seconds"] >= 0
    assert data["started_at"].endswith("Z")


@pytest.mark.unit
async def test_health_counts_tasks_by_state(
    client: AsyncClient, alice: str, bob: str, carol: str
) -> None:
    await create_task(client, alice)
    await start_task(client, alice, bob)
    await complete_task(client, alice, carol)

    data = (await client.get("/health")).json()

    assert data["total_tasks"] == 3
    assert data["tasks_by_state"]["open"] == 1
    assert data["tasks_by_state"]["in_progress"] == 1
    assert data["tasks_by_state"]["completed"] == 1


@pytest.mark.unit
async def test_health_needs_no_auth(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200


@pytest.mark.unit
async def test_post_health_not_allowed(client: AsyncClient) -> None:
    resp = await client.post("/health")
    assert resp.status_code == 405
    assert resp.json()["error"] == "METHOD_NOT_ALLOWED"
