"""Review and rating endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from care_board_service.routers.validation import (
    authenticate,
    parse_json_body,
    require_task_manager,
)

router = APIRouter()


@router.post("/tasks/{task_id}/reviews", status_code=201)
async def submit_review(task_id: str, request: Request) -> JSONResponse:
    """Review the other party of a completed task."""
    actor = authenticate(request)
    body = await request.body()
    data = parse_json_body(body)

    result = await require_task_manager().submit_review(task_id, actor, data)
    return JSONResponse(status_code=201, content=result)


@router.get("/tasks/{task_id}/reviews")
async def list_reviews(task_id: str) -> dict[str, Any]:
    """List the reviews exchanged on a task."""
    reviews = await require_task_manager().list_reviews(task_id)
    return {"task_id": task_id, "reviews": reviews}


@router.get("/users/{user_id}/ratings")
async def get_user_ratings(user_id: str) -> dict[str, Any]:
    """Get a user's owner and helper ratings."""
    return await require_task_manager().get_user_ratings(user_id)
