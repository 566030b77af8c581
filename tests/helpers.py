"""Shared test helpers for bearer tokens, config files and task workflows."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from joserfc import jwt
from joserfc.jwk import OctKey

if TYPE_CHECKING:
    from pathlib import Path

    from httpx import AsyncClient, Response

TEST_JWT_SECRET = "test-signing-secret-that-is-long-enough-for-hs256"

OWNER_ID = "u-owner"
OTHER_OWNER_ID = "u-other-owner"
HELPER_1 = "u-helper-1"
HELPER_2 = "u-helper-2"
HELPER_3 = "u-helper-3"
PET_ID = "p-rex"
OTHER_PET_ID = "p-tom"


def make_token(
    user_id: str,
    roles: tuple[str, ...] = ("owner", "helper"),
    *,
    secret: str = TEST_JWT_SECRET,
    expires_in: int | None = 3600,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """Mint an HS256 bearer token the way the identity service does."""
    claims: dict[str, Any] = {"sub": user_id, "roles": list(roles)}
    if expires_in is not None:
        claims["exp"] = int(time.time()) + expires_in
    if extra_claims:
        claims.update(extra_claims)
    return jwt.encode({"alg": "HS256"}, claims, OctKey.import_key(secret))


def auth_headers(user_id: str, roles: tuple[str, ...] = ("owner", "helper")) -> dict[str, str]:
    """Authorization header for user_id."""
    return {"Authorization": f"Bearer {make_token(user_id, roles)}"}


def write_config(tmp_path: Path, db_path: Path, *, max_body_size: int = 1048576) -> Path:
    """Write a complete config.yaml for tests and return its path."""
    config_content = f"""\
service:
  name: "care-board"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{tmp_path / "logs"}"
database:
  path: "{db_path}"
auth:
  jwt_secret: "{TEST_JWT_SECRET}"
  algorithm: "HS256"
request:
  max_body_size: {max_body_size}
limits:
  max_title_length: 200
  max_description_length: 5000
  max_comment_length: 2000
"""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)
    return config_path


def task_payload(pet_id: str = PET_ID, **overrides: Any) -> dict[str, Any]:
    """A valid create-task body."""
    payload: dict[str, Any] = {
        "title": "Walk Rex",
        "description": "Thirty minute walk around the park",
        "category": "dog_walking",
        "location": "Riverside Park",
        "budget": 25,
        "scheduled_date": "2026-11-02",
        "scheduled_time": "09:00",
        "pet_id": pet_id,
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Task lifecycle helper functions
# ---------------------------------------------------------------------------


async def create_task(
    client: AsyncClient,
    owner_id: str = OWNER_ID,
    pet_id: str = PET_ID,
    **overrides: Any,
) -> Response:
    """Create a task via POST /tasks and return the response."""
    return await client.post(
        "/tasks",
        json=task_payload(pet_id, **overrides),
        headers=auth_headers(owner_id),
    )


async def create_task_id(client: AsyncClient, owner_id: str = OWNER_ID, pet_id: str = PET_ID) -> str:
    """Create a task and return its id."""
    response = await create_task(client, owner_id, pet_id)
    assert response.status_code == 201, response.text
    return str(response.json()["task_id"])


async def apply(client: AsyncClient, task_id: str, helper_id: str) -> Response:
    """Apply to a task as helper_id."""
    return await client.post(f"/tasks/{task_id}/apply", headers=auth_headers(helper_id))


async def assign(
    client: AsyncClient,
    task_id: str,
    helper_id: str,
    owner_id: str = OWNER_ID,
) -> Response:
    """Assign helper_id as owner_id."""
    return await client.post(
        f"/tasks/{task_id}/assign",
        json={"helper_id": helper_id},
        headers=auth_headers(owner_id),
    )


async def complete(client: AsyncClient, task_id: str, user_id: str) -> Response:
    """Mark a task complete as user_id."""
    return await client.post(f"/tasks/{task_id}/complete", headers=auth_headers(user_id))


async def confirm(client: AsyncClient, task_id: str, user_id: str) -> Response:
    """Confirm a task as user_id."""
    return await client.post(f"/tasks/{task_id}/confirm", headers=auth_headers(user_id))


async def cancel(client: AsyncClient, task_id: str, user_id: str) -> Response:
    """Cancel (or withdraw from) a task as user_id."""
    return await client.post(f"/tasks/{task_id}/cancel", headers=auth_headers(user_id))


async def review(
    client: AsyncClient,
    task_id: str,
    reviewer_id: str,
    reviewee_id: str,
    rating: int,
    comment: str | None = None,
) -> Response:
    """Submit a review via POST /tasks/{task_id}/reviews."""
    body: dict[str, Any] = {"reviewee_id": reviewee_id, "rating": rating}
    if comment is not None:
        body["comment"] = comment
    return await client.post(
        f"/tasks/{task_id}/reviews",
        json=body,
        headers=auth_headers(reviewer_id),
    )


async def completed_task(
    client: AsyncClient,
    helper_id: str = HELPER_1,
    owner_id: str = OWNER_ID,
    pet_id: str = PET_ID,
) -> str:
    """Drive a fresh task to completed with helper_id assigned; return its id."""
    task_id = await create_task_id(client, owner_id, pet_id)
    assert (await apply(client, task_id, helper_id)).status_code == 200
    assert (await assign(client, task_id, helper_id, owner_id)).status_code == 200
    assert (await complete(client, task_id, helper_id)).status_code == 200
    assert (await confirm(client, task_id, owner_id)).status_code == 200
    return task_id
