"""Shared request validation helpers for care-board routers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from care_board_service.core.exceptions import ServiceError
from care_board_service.core.state import get_app_state

if TYPE_CHECKING:
    from fastapi import Request

    from care_board_service.services.task_manager import TaskManager
    from care_board_service.services.token_validator import Actor


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


def extract_bearer_token(authorization: str | None) -> str:
    """Extract the bearer token from an Authorization header."""
    if authorization is None:
        raise ServiceError(
            "INVALID_TOKEN",
            "Missing Authorization header",
            401,
            {},
        )

    if not authorization.startswith("Bearer "):
        raise ServiceError(
            "INVALID_TOKEN",
            "Authorization header must use Bearer scheme",
            401,
            {},
        )

    token = authorization[len("Bearer ") :].strip()
    if not token:
        raise ServiceError(
            "INVALID_TOKEN",
            "Bearer token must not be empty",
            401,
            {},
        )

    return token


def authenticate(request: Request) -> Actor:
    """Resolve the calling actor from the request's bearer token."""
    token = extract_bearer_token(request.headers.get("authorization"))
    state = get_app_state()
    if state.token_validator is None:
        msg = "TokenValidator not initialized"
        raise RuntimeError(msg)
    return state.token_validator.authenticate(token)


def require_task_manager() -> TaskManager:
    """Return the initialized TaskManager."""
    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)
    return state.task_manager


def parse_int_param(raw: str | None, name: str, *, minimum: int) -> int | None:
    """Parse an optional integer query parameter with a lower bound."""
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"{name} must be an integer",
            400,
            {"field": name},
        ) from exc
    if value < minimum:
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"{name} must be >= {minimum}",
            400,
            {"field": name},
        )
    return value
