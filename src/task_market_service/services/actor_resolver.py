"""Resolve the acting user of a request from its bearer token."""

from __future__ import annotations

from typing import TYPE_CHECKING

from task_market_service.core.exceptions import ServiceError

if TYPE_CHECKING:
    from task_market_service.clients.identity_client import IdentityClient

_BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str:
    """
    Pull the JWS out of an ``Authorization: Bearer <jws>`` header.

    Raises:
        ServiceError: INVALID_JWS
    """
    if authorization is None:
        raise ServiceError("INVALID_JWS", "Missing Authorization header", 400, {})

    if not authorization.startswith(_BEARER_PREFIX):
        raise ServiceError(
            "INVALID_JWS",
            "Authorization header must use Bearer scheme",
            400,
            {},
        )

    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise ServiceError("INVALID_JWS", "Bearer token must not be empty", 400, {})

    if len(token.split(".")) != 3:
        raise ServiceError(
            "INVALID_JWS",
            "Token must be in JWS compact serialization format (header.payload.signature)",
            400,
            {},
        )
    return token


async def resolve_actor(identity_client: IdentityClient, authorization: str | None) -> str:
    """
    Verify the bearer token and return the id of the agent that signed it.

    Error precedence:
    1. INVALID_JWS: header missing, not Bearer, or not a three-part JWS
    2. IDENTITY_SERVICE_UNAVAILABLE: Identity service unreachable or broken
    3. UNAUTHORIZED: signature does not verify
    4. INVALID_JWS: verified token carries no signer
    """
    token = extract_bearer_token(authorization)

    try:
        result = await identity_client.verify_jws(token)
    except ServiceError:
        raise
    except Exception as exc:
        raise ServiceError(
            "IDENTITY_SERVICE_UNAVAILABLE",
            "Cannot connect to Identity service",
            502,
            {},
        ) from exc

    agent_id = result.get("agent_id")
    if not isinstance(agent_id, str) or not agent_id:
        raise ServiceError("INVALID_JWS", "Token signer is missing", 400, {})
    return agent_id
