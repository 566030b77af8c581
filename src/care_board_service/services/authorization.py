"""Role resolution and actor guards shared by lifecycle operations."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from care_board_service.core.exceptions import ServiceError


class ActorRole(StrEnum):
    """The relation an actor has to one specific task."""

    OWNER = "owner"
    ASSIGNED_HELPER = "assigned_helper"
    APPLICANT = "applicant"
    OUTSIDER = "outsider"


def resolve_role(task: dict[str, Any], user_id: str) -> ActorRole:
    """Resolve the actor's role in the task (owner > assignee > applicant)."""
    if task["posted_by"] == user_id:
        return ActorRole.OWNER
    if task["assigned_to"] is not None and task["assigned_to"] == user_id:
        return ActorRole.ASSIGNED_HELPER
    if user_id in task["applicants"]:
        return ActorRole.APPLICANT
    return ActorRole.OUTSIDER


def require_poster(task: dict[str, Any], user_id: str, message: str) -> None:
    """Raise FORBIDDEN unless user_id posted the task."""
    if resolve_role(task, user_id) is not ActorRole.OWNER:
        raise ServiceError("FORBIDDEN", message, 403, {})


def require_assignee(task: dict[str, Any], user_id: str, message: str) -> None:
    """Raise FORBIDDEN unless user_id is the task's assigned helper."""
    if resolve_role(task, user_id) is not ActorRole.ASSIGNED_HELPER:
        raise ServiceError("FORBIDDEN", message, 403, {})


def counterpart(task: dict[str, Any], user_id: str) -> tuple[str, str] | None:
    """
    Return (other party id, role the other party played) for a task participant.

    The poster's counterpart is the assignee (role "helper") and the
    assignee's counterpart is the poster (role "owner"). Anyone else, or a
    task without an assignee, has no counterpart.
    """
    role = resolve_role(task, user_id)
    if role is ActorRole.OWNER and task["assigned_to"] is not None:
        return str(task["assigned_to"]), "helper"
    if role is ActorRole.ASSIGNED_HELPER:
        return str(task["posted_by"]), "owner"
    return None


def concurrent_update_error(task_id: str) -> ServiceError:
    """Build the rejection for an update that lost a race on the task version."""
    return ServiceError(
        "CONCURRENT_UPDATE",
        "Task was modified by another request, reload it and retry",
        409,
        {"task_id": task_id},
    )
