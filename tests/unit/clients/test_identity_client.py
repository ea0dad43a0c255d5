from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from task_market_service.clients.identity_client import IdentityClient
from task_market_service.core.exceptions import ServiceError


def _make_client(mock_response: httpx.Response | None = None) -> IdentityClient:
    """Create an IdentityClient with a mock HTTP transport."""
    client = IdentityClient(
        base_url="http://mock-identity:8001",
        verify_jws_path="/agents/verify-jws",
        timeout_seconds=5,
    )
    mock_http = AsyncMock(spec=httpx.AsyncClient)
    mock_http.post = AsyncMock(return_value=mock_response)
    client._client = mock_http
    return client


def _mock_response(status_code: int, json_body: Any) -> httpx.Response:
    """Create a mock httpx.Response."""
    return httpx.Response(
        status_code=status_code,
        json=json_body,
        request=httpx.Request("POST", "http://mock-identity:8001/agents/verify-jws"),
    )


@pytest.mark.unit
async def test_verify_jws_valid_token() -> None:
    body = {"valid": True, "agent_id": "a-alice", "payload": {"action": "x"}}
    client = _make_client(_mock_response(200, body))

    assert await client.verify_jws("h.p.s") == body
    client._client.post.assert_awaited_once_with(  # type: ignore[attr-defined]
        "/agents/verify-jws", json={"token": "h.p.s"}
    )


@pytest.mark.unit
async def test_verify_jws_invalid_signature_raises_unauthorized() -> None:
    client = _make_client(_mock_response(200, {"valid": False, "reason": "bad sig"}))

    with pytest.raises(ServiceError) as exc_info:
        await client.verify_jws("h.p.s")

    assert exc_info.value.status_code == 403
    assert exc_info.value.error == "UNAUTHORIZED"


@pytest.mark.unit
@pytest.mark.parametrize("status_code", [404, 500, 503])
async def test_verify_jws_unexpected_status_raises_502(status_code: int) -> None:
    client = _make_client(_mock_response(status_code, {"error": "X"}))

    with pytest.raises(ServiceError) as exc_info:
        await client.verify_jws("h.p.s")

    assert exc_info.value.status_code == 502
    assert exc_info.value.error == "IDENTITY_SERVICE_UNAVAILABLE"


@pytest.mark.unit
async def test_verify_jws_non_json_raises_502() -> None:
    response = httpx.Response(
        status_code=200,
        content=b"<html>oops</html>",
        request=httpx.Request("POST", "http://mock-identity:8001/agents/verify-jws"),
    )
    client = _make_client(response)

    with pytest.raises(ServiceError) as exc_info:
        await client.verify_jws("h.p.s")
    assert exc_info.value.error == "IDENTITY_SERVICE_UNAVAILABLE"


@pytest.mark.unit
async def test_verify_jws_non_object_raises_502() -> None:
    client = _make_client(_mock_response(200, ["valid"]))

    with pytest.raises(ServiceError) as exc_info:
        await client.verify_jws("h.p.s")
    assert exc_info.value.error == "IDENTITY_SERVICE_UNAVAILABLE"


@pytest.mark.unit
async def test_verify_jws_connection_error_raises_502() -> None:
    client = _make_client()
    client._client.post.side_effect = httpx.ConnectError("refused")  # type: ignore[attr-defined]

    with pytest.raises(ServiceError) as exc_info:
        await client.verify_jws("h.p.s")
    assert exc_info.value.status_code == 502


@pytest.mark.unit
async def test_close_closes_http_client() -> None:
    client = _make_client()
    await client.close()
    client._client.aclose.assert_awaited_once()  # type: ignore[attr-defined]
