"""ASGI middleware for request validation."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, cast

from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send


# Endpoints that take a JSON body. apply/complete/confirm/cancel carry none.
_JSON_BODY_ROUTES: tuple[re.Pattern[str], ...] = (
    re.compile(r"^/tasks$"),
    re.compile(r"^/tasks/[^/]+/assign$"),
    re.compile(r"^/tasks/[^/]+/reviews$"),
)


class RequestValidationMiddleware:
    """
    Rejects JSON-body requests that are not JSON or are too large.

    Only POSTs to the routes in ``_JSON_BODY_ROUTES`` are inspected: they
    get 415 without an application/json Content-Type and 413 once the body
    grows past ``max_body_size``. Everything else goes straight to the
    router so unknown paths and methods still answer 404/405.
    """

    def __init__(self, app: ASGIApp, max_body_size: int) -> None:
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self._takes_json_body(scope):
            await self.app(scope, receive, send)
            return

        if not self._content_type(scope).startswith("application/json"):
            await self._reject(
                scope,
                receive,
                send,
                415,
                "UNSUPPORTED_MEDIA_TYPE",
                "Content-Type must be application/json",
                {},
            )
            return

        body = await self._read_body(receive)
        if body is None:
            await self._reject(
                scope,
                receive,
                send,
                413,
                "PAYLOAD_TOO_LARGE",
                "Request body exceeds maximum allowed size",
                {"max_body_size": self.max_body_size},
            )
            return

        replayed = False

        async def replay_body() -> Message:
            nonlocal replayed
            if replayed:
                return {"type": "http.disconnect"}
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}

        await self.app(scope, replay_body, send)

    @staticmethod
    def _takes_json_body(scope: Scope) -> bool:
        if scope["type"] != "http" or scope.get("method") != "POST":
            return False
        path = cast("str", scope.get("path", ""))
        return any(route.match(path) is not None for route in _JSON_BODY_ROUTES)

    @staticmethod
    def _content_type(scope: Scope) -> str:
        for name, value in cast("list[tuple[bytes, bytes]]", scope.get("headers", [])):
            if name.lower() == b"content-type":
                return value.decode("latin-1").lower()
        return ""

    async def _read_body(self, receive: Receive) -> bytes | None:
        """Buffer the whole body; None as soon as it exceeds max_body_size."""
        chunks: list[bytes] = []
        size = 0
        more_body = True
        while more_body:
            message = cast("dict[str, Any]", await receive())
            chunk = cast("bytes", message.get("body", b""))
            size += len(chunk)
            if size > self.max_body_size:
                return None
            chunks.append(chunk)
            more_body = bool(message.get("more_body", False))
        return b"".join(chunks)

    @staticmethod
    async def _reject(
        scope: Scope,
        receive: Receive,
        send: Send,
        status_code: int,
        error: str,
        message: str,
        details: dict[str, Any],
    ) -> None:
        response = JSONResponse(
            status_code=status_code,
            content={"error": error, "message": message, "details": details},
        )
        await response(scope, receive, send)
