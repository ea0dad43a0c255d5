"""Shared request validation helpers for the marketplace routers."""

from __future__ import annotations

import json
import math
from typing import TYPE_CHECKING, Any

from task_market_service.core.exceptions import ServiceError
from task_market_service.core.state import get_app_state
from task_market_service.services.actor_resolver import resolve_actor
from task_market_service.services.task_records import SQLITE_MAX_INTEGER

if TYPE_CHECKING:
    from fastapi import Request


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ServiceError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_JSON",
            "Request body is not valid JSON",
            400,
            {},
        ) from exc

    if not isinstance(data, dict):
        raise ServiceError(
            "INVALID_JSON",
            "Request body must be a JSON object",
            400,
            {},
        )

    return data


async def read_json_body(request: Request) -> dict[str, Any]:
    """Read the request body as a JSON object. An empty body reads as ``{}``."""
    body = await request.body()
    return {} if body == b"" else parse_json_body(body)


def optional_string(data: dict[str, Any], field_name: str) -> str | None:
    """Return a string field that may be absent or null."""
    value = data.get(field_name)
    if value is not None and not isinstance(value, str):
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Field '{field_name}' must be a string",
            400,
            {},
        )
    return value


def required_string(data: dict[str, Any], field_name: str) -> str:
    """Return a non-empty string field."""
    value = optional_string(data, field_name)
    if not value:
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Missing required field: {field_name}",
            400,
            {},
        )
    return value


def parse_int_param(
    raw: str | None,
    name: str,
    *,
    minimum: int,
    maximum: int = SQLITE_MAX_INTEGER,
) -> int | None:
    """Parse an optional integer query parameter within ``[minimum, maximum]``."""
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be an integer", 400, {}) from exc
    if value < minimum:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be >= {minimum}", 400, {})
    if value > maximum:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be <= {maximum}", 400, {})
    return value


def parse_float_param(raw: str | None, name: str) -> float | None:
    """Parse an optional finite float query parameter."""
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be a number", 400, {}) from exc
    if not math.isfinite(value):
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be a finite number", 400, {})
    return value


async def require_actor(request: Request) -> str:
    """Authenticate the caller from the ``Authorization: Bearer <jws>`` header."""
    state = get_app_state()
    if state.identity_client is None:
        msg = "IdentityClient not initialized"
        raise RuntimeError(msg)
    return await resolve_actor(state.identity_client, request.headers.get("authorization"))
