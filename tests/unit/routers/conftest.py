"""Router test fixtures: a real app lifespan with a mocked Identity service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from task_market_service.app import create_app
from task_market_service.config import clear_settings_cache
from task_market_service.core.exceptions import ServiceError
from task_market_service.core.lifespan import lifespan
from task_market_service.core.state import get_app_state, reset_app_state
from tests.helpers import FEE_ACCOUNT_ID, PLATFORM_AGENT_ID, extract_kid, extract_payload

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

ALICE_AGENT_ID = "a-alice-uuid"
BOB_AGENT_ID = "a-bob-uuid"
CAROL_AGENT_ID = "a-carol-uuid"


@pytest.fixture
def alice() -> str:
    """Alice posts tasks."""
    return ALICE_AGENT_ID


@pytest.fixture
def bob() -> str:
    """Bob is a worker."""
    return BOB_AGENT_ID


@pytest.fixture
def carol() -> str:
    """Carol is a second worker."""
    return CAROL_AGENT_ID


@pytest.fixture
def funding_model() -> str:
    """Escrow funding model; override with direct parametrization."""
    return "trust"


def _write_config(tmp_path: Path, funding_model: str) -> Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"""\
service:
  name: "task-market"
  version: "0.1.0"
server:
  host: "127.0.0.1"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{tmp_path / "logs"}"
database:
  path: "{tmp_path / "market.db"}"
identity:
  base_url: "http://identity.test"
  verify_jws_path: "/agents/verify-jws"
  timeout_seconds: 5
platform:
  agent_id: "{PLATFORM_AGENT_ID}"
  fee_account_id: "{FEE_ACCOUNT_ID}"
escrow:
  funding_model: "{funding_model}"
  flat_fee: 20
  fee_basis_points: 0
lifecycle:
  block_cancel_during_handoff: true
request:
  max_body_size: 1048576
"""
    )
    return config_path


def _verified(token: str) -> dict[str, Any]:
    return {"valid": True, "agent_id": extract_kid(token), "payload": extract_payload(token)}


@pytest.fixture
async def app(
    tmp_path: Path, funding_model: str, monkeypatch: pytest.MonkeyPatch
) -> AsyncIterator[Any]:
    """Run the real lifespan against a temp database; tokens verify as their kid."""
    monkeypatch.setenv("CONFIG_PATH", str(_write_config(tmp_path, funding_model)))
    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        identity = AsyncMock()
        identity.close = AsyncMock()
        identity.verify_jws = AsyncMock(side_effect=_verified)
        get_app_state().identity_client = identity
        yield test_app

    reset_app_state()
    clear_settings_cache()


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def mock_identity_unavailable(app: Any) -> None:
    """Identity service cannot be reached."""
    get_app_state().identity_client.verify_jws = AsyncMock(
        side_effect=ConnectionError("Identity service unreachable")
    )


@pytest.fixture
def mock_identity_rejects_signature(app: Any) -> None:
    """Identity service answers that every signature is invalid."""
    get_app_state().identity_client.verify_jws = AsyncMock(
        side_effect=ServiceError("UNAUTHORIZED", "JWS signature verification failed", 403, {})
    )
