"""Authentication edge-case tests for the marketplace endpoints."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import pytest

from tests.helpers import auth_headers, create_task

if TYPE_CHECKING:
    from httpx import AsyncClient

# Patterns that must never appear in error messages
_LEAK_PATTERNS = [
    re.compile(r"Traceback", re.IGNORECASE),
    re.compile(r"File\s+\"/"),
    re.compile(r"localhost:\d{4}"),
    re.compile(r"http://"),
    re.compile(r"\.py\b"),
]

_AUTHENTICATED_ENDPOINTS = [
    ("POST", "/tasks/t-x/cancel"),
    ("POST", "/tasks/t-x/arrive"),
    ("POST", "/tasks/t-x/confirm-completion"),
    ("POST", "/tasks/t-x/bids/bid-x/accept"),
    ("POST", "/tasks/t-x/bids/bid-x/reject"),
    ("POST", "/tasks/t-x/bids/bid-x/withdraw"),
    ("GET", "/wallets/me"),
    ("GET", "/notifications"),
    ("GET", "/notifications/unread-count"),
    ("POST", "/notifications/read-all"),
]


class TestBearerHeader:
    """Malformed or missing Authorization headers."""

    @pytest.mark.unit
    @pytest.mark.parametrize(("method", "path"), _AUTHENTICATED_ENDPOINTS)
    async def test_missing_header(self, client: AsyncClient, method: str, path: str) -> None:
        resp = await client.request(method, path)
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_JWS"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "header",
        ["Basic dXNlcjpwdw==", "Bearer", "Bearer ", "Bearer not-a-jws", "Bearer a.b"],
    )
    async def test_malformed_header(self, client: AsyncClient, header: str) -> None:
        resp = await client.get("/wallets/me", headers={"Authorization": header})
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_JWS"

    @pytest.mark.unit
    async def test_signer_becomes_actor(self, client: AsyncClient, alice: str) -> None:
        resp = await create_task(client, alice)
        assert resp.status_code == 201
        assert resp.json()["poster_id"] == alice


class TestIdentityService:
    """Identity service failures."""

    @pytest.mark.unit
    @pytest.mark.usefixtures("mock_identity_unavailable")
    async def test_identity_unavailable(self, client: AsyncClient, alice: str) -> None:
        resp = await client.get("/wallets/me", headers=auth_headers(alice))

        assert resp.status_code == 502
        body = resp.json()
        assert body["error"] == "IDENTITY_SERVICE_UNAVAILABLE"
        for pattern in _LEAK_PATTERNS:
            assert not pattern.search(body["message"])

    @pytest.mark.unit
    @pytest.mark.usefixtures("mock_identity_rejects_signature")
    async def test_invalid_signature(self, client: AsyncClient, alice: str) -> None:
        resp = await create_task(client, alice)

        assert resp.status_code == 403
        assert resp.json()["error"] == "UNAUTHORIZED"
        assert (await client.get("/tasks")).json()["tasks"] == []

    @pytest.mark.unit
    @pytest.mark.usefixtures("mock_identity_unavailable")
    async def test_public_reads_do_not_need_identity(self, client: AsyncClient) -> None:
        assert (await client.get("/tasks")).status_code == 200
        assert (await client.get("/health")).status_code == 200
