"""ASGI middleware for request validation."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, cast

from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Receive, Scope, Send


# POST endpoints that take a JSON body. Bodyless commands such as
# /tasks/{id}/cancel or /bids/{id}/accept are not listed.
_JSON_BODY_PATHS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^/tasks$"),
    re.compile(r"^/tasks/[^/]+/bids$"),
    re.compile(r"^/tasks/[^/]+/request-completion$"),
    re.compile(r"^/tasks/[^/]+/reviews$"),
    re.compile(r"^/wallets/me/(deposit|withdraw)$"),
)


def takes_json_body(method: str, path: str) -> bool:
    """Whether ``method path`` is an endpoint whose body must be JSON."""
    return method == "POST" and any(pattern.match(path) for pattern in _JSON_BODY_PATHS)


def _rejection(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": {}},
    )


async def _read_body(receive: Receive, limit: int) -> bytes | None:
    """Drain the request body, or return None as soon as it exceeds ``limit``."""
    chunks: list[bytes] = []
    size = 0
    more_body = True
    while more_body:
        message = cast("dict[str, Any]", await receive())
        chunk = cast("bytes", message.get("body", b""))
        size += len(chunk)
        if size > limit:
            return None
        chunks.append(chunk)
        more_body = bool(message.get("more_body", False))
    return b"".join(chunks)


def _replay(body: bytes) -> Receive:
    """A receive callable that yields ``body`` once, then a disconnect."""
    pending = [{"type": "http.request", "body": body, "more_body": False}]

    async def receive() -> dict[str, Any]:
        if pending:
            return pending.pop()
        return {"type": "http.disconnect"}

    return cast("Receive", receive)


class RequestValidationMiddleware:
    """
    ASGI middleware that validates Content-Type and body size.

    Only JSON body endpoints are inspected. They answer 415 when the
    Content-Type is not application/json and 413 when the body is larger
    than ``max_body_size``. Every other request, including unknown paths,
    goes straight to the router.
    """

    def __init__(self, app: ASGIApp, max_body_size: int) -> None:
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not takes_json_body(
            cast("str", scope.get("method", "GET")),
            cast("str", scope.get("path", "")),
        ):
            await self.app(scope, receive, send)
            return

        headers = dict(cast("list[tuple[bytes, bytes]]", scope.get("headers", [])))
        content_type = headers.get(b"content-type", b"").decode().lower()
        if not content_type.startswith("application/json"):
            response = _rejection(
                415, "UNSUPPORTED_MEDIA_TYPE", "Content-Type must be application/json"
            )
            await response(scope, receive, send)
            return

        body = await _read_body(receive, self.max_body_size)
        if body is None:
            response = _rejection(
                413, "PAYLOAD_TOO_LARGE", "Request body exceeds maximum allowed size"
            )
            await response(scope, receive, send)
            return

        await self.app(scope, _replay(body), send)
