"""Task lifecycle endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from care_board_service.routers.validation import (
    authenticate,
    parse_int_param,
    parse_json_body,
    require_task_manager,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# POST /tasks: create task (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Create an open task for one of the caller's pets."""
    actor = authenticate(request)
    body = await request.body()
    data = parse_json_body(body)

    result = await require_task_manager().create_task(actor, data)
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# GET /tasks: list tasks (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.get("/tasks")
async def list_tasks(request: Request) -> dict[str, Any]:
    """List tasks with optional filters."""
    params = request.query_params
    offset = parse_int_param(params.get("offset"), "offset", minimum=0)
    limit = parse_int_param(params.get("limit"), "limit", minimum=1)

    tasks = await require_task_manager().list_tasks(
        status=params.get("status"),
        posted_by=params.get("posted_by"),
        assigned_to=params.get("assigned_to"),
        applicant_id=params.get("applicant_id"),
        offset=offset,
        limit=limit,
    )
    return {"tasks": tasks}


@router.get("/tasks/{task_id}")
async def get_task(task_id: str) -> dict[str, Any]:
    """Get a single task."""
    return await require_task_manager().get_task(task_id)


# ---------------------------------------------------------------------------
# Roster endpoints
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/apply")
async def apply_to_task(task_id: str, request: Request) -> JSONResponse:
    """Apply to help with a task."""
    actor = authenticate(request)
    result = await require_task_manager().apply_to_task(task_id, actor)
    return JSONResponse(status_code=200, content=result)


@router.post("/tasks/{task_id}/assign")
async def assign_helper(task_id: str, request: Request) -> JSONResponse:
    """Assign one of the applicants as the helper."""
    actor = authenticate(request)
    body = await request.body()
    data = parse_json_body(body)

    result = await require_task_manager().assign_helper(task_id, actor, data)
    return JSONResponse(status_code=200, content=result)


# ---------------------------------------------------------------------------
# Completion endpoints
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/complete")
async def complete_task(task_id: str, request: Request) -> JSONResponse:
    """Mark the task complete (assigned helper)."""
    actor = authenticate(request)
    result = await require_task_manager().complete_task(task_id, actor)
    return JSONResponse(status_code=200, content=result)


@router.post("/tasks/{task_id}/confirm")
async def confirm_task(task_id: str, request: Request) -> JSONResponse:
    """Confirm the task is complete (owner)."""
    actor = authenticate(request)
    result = await require_task_manager().confirm_task(task_id, actor)
    return JSONResponse(status_code=200, content=result)


# ---------------------------------------------------------------------------
# Cancel endpoint
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/cancel")
async def cancel_task(task_id: str, request: Request) -> JSONResponse:
    """Cancel the task, or withdraw the caller's application."""
    actor = authenticate(request)
    result = await require_task_manager().cancel_task(task_id, actor)
    return JSONResponse(status_code=200, content=result)
