"""Applicant roster and single-assignee selection."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from care_board_service.core.exceptions import ServiceError
from care_board_service.services.authorization import concurrent_update_error
from care_board_service.services.task_store import DuplicateApplicantError, StaleTaskError

if TYPE_CHECKING:
    from care_board_service.services.task_store import TaskStore


class ApplicantRoster:
    """
    Manages which helpers have applied to a task and which one is assigned.

    Every method takes the task snapshot the caller validated and writes
    against that snapshot's version, so a roster change that raced with
    another request is rejected instead of applied to a newer state.
    """

    def __init__(self, store: TaskStore) -> None:
        self._store = store

    def add_applicant(self, task: dict[str, Any], helper_id: str, now: str) -> None:
        """Append helper_id; the first applicant moves an open task to pending."""
        if helper_id in task["applicants"]:
            raise ServiceError(
                "ALREADY_APPLIED",
                "You have already applied to this task",
                409,
                {"task_id": task["task_id"]},
            )

        updates: dict[str, Any] = {"updated_at": now}
        # Decided from the pre-append snapshot so later applicants never flip it back.
        if task["status"] == "open":
            updates["status"] = "pending"

        try:
            self._store.add_applicant(
                task["task_id"],
                helper_id,
                now,
                updates,
                expected_version=task["version"],
            )
        except DuplicateApplicantError as exc:
            raise ServiceError(
                "ALREADY_APPLIED",
                "You have already applied to this task",
                409,
                {"task_id": task["task_id"]},
            ) from exc
        except StaleTaskError as exc:
            raise concurrent_update_error(task["task_id"]) from exc

    def assign(self, task: dict[str, Any], helper_id: str, now: str) -> None:
        """Make helper_id the single assignee and start the work."""
        if helper_id not in task["applicants"]:
            raise ServiceError(
                "NOT_AN_APPLICANT",
                "Helper must have applied to the task first",
                409,
                {"task_id": task["task_id"], "helper_id": helper_id},
            )

        try:
            self._store.update_task(
                task["task_id"],
                {
                    "assigned_to": helper_id,
                    "status": "in_progress",
                    "assigned_at": now,
                    "updated_at": now,
                },
                expected_version=task["version"],
            )
        except StaleTaskError as exc:
            raise concurrent_update_error(task["task_id"]) from exc

    def remove_applicant(self, task: dict[str, Any], helper_id: str, now: str) -> None:
        """Withdraw helper_id from the roster without touching the status."""
        if helper_id not in task["applicants"]:
            raise ServiceError(
                "NOT_AN_APPLICANT",
                "You have not applied to this task",
                409,
                {"task_id": task["task_id"]},
            )

        try:
            self._store.remove_applicant(
                task["task_id"],
                helper_id,
                {"updated_at": now},
                expected_version=task["version"],
            )
        except StaleTaskError as exc:
            raise concurrent_update_error(task["task_id"]) from exc
