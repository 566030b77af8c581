"""Task lifecycle management: every transition and its guards live here."""

from __future__ import annotations

import math
import sqlite3
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from care_board_service.core.exceptions import ServiceError
from care_board_service.logging import get_logger
from care_board_service.services.authorization import (
    ActorRole,
    concurrent_update_error,
    counterpart,
    require_assignee,
    require_poster,
    resolve_role,
)
from care_board_service.services.review_store import DuplicateReviewError
from care_board_service.services.task_store import StaleTaskError

if TYPE_CHECKING:
    from care_board_service.core.state import ReviewRecord
    from care_board_service.services.directory_store import UserDirectory
    from care_board_service.services.reputation import ReputationAggregator
    from care_board_service.services.review_store import ReviewStore
    from care_board_service.services.roster import ApplicantRoster
    from care_board_service.services.task_store import TaskStore
    from care_board_service.services.token_validator import Actor

VALID_STATUSES: tuple[str, ...] = (
    "open",
    "pending",
    "in_progress",
    "pending_confirmation",
    "completed",
    "cancelled",
)
_TERMINAL_STATUSES = frozenset({"completed", "cancelled"})
_APPLICATION_STATUSES = frozenset({"open", "pending"})
_ASSIGNABLE_STATUSES = frozenset({"open", "pending", "in_progress"})


def _now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _is_number(value: object) -> bool:
    """Check if value is an int or float (not bool)."""
    return isinstance(value, int | float) and not isinstance(value, bool)


def _format_reward(budget: float) -> str:
    """Render a budget the way posters write it: $25, $25.5."""
    if float(budget).is_integer():
        return f"${int(budget)}"
    return f"${budget}"


class TaskManager:
    """
    Drives a task through open, pending, in_progress, pending_confirmation
    and completed, with cancellation from any non-terminal state, and
    records the reviews exchanged once a task is completed.

    Persistence is delegated to TaskStore and ReviewStore, roster changes
    to ApplicantRoster, and rating recomputation to ReputationAggregator.
    """

    def __init__(
        self,
        store: TaskStore,
        review_store: ReviewStore,
        directory: UserDirectory,
        roster: ApplicantRoster,
        reputation: ReputationAggregator,
        max_title_length: int,
        max_description_length: int,
        max_comment_length: int,
    ) -> None:
        self._store = store
        self._review_store = review_store
        self._directory = directory
        self._roster = roster
        self._reputation = reputation
        self._max_title_length = max_title_length
        self._max_description_length = max_description_length
        self._max_comment_length = max_comment_length
        self._logger = get_logger(__name__)
        self._cancel_handlers: dict[
            ActorRole, Callable[[dict[str, Any], Actor], dict[str, Any]]
        ] = {
            ActorRole.OWNER: self._cancel_whole_task,
            ActorRole.ASSIGNED_HELPER: self._cancel_whole_task,
            ActorRole.APPLICANT: self._withdraw_application,
            ActorRole.OUTSIDER: self._reject_cancel,
        }

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _load_task(self, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {"task_id": task_id})
        return task

    def _reload(self, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            msg = f"Task {task_id} not found after update"
            raise RuntimeError(msg)
        return task

    def _transition(self, task: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
        """Apply a status change against the snapshot's version and return the new state."""
        try:
            self._store.update_task(task["task_id"], updates, expected_version=task["version"])
        except StaleTaskError as exc:
            raise concurrent_update_error(task["task_id"]) from exc
        return self._reload(task["task_id"])

    def _task_to_response(self, row: dict[str, Any]) -> dict[str, Any]:
        """Convert a store row to the task view returned to callers."""
        return {
            "task_id": row["task_id"],
            "title": row["title"],
            "description": row["description"],
            "category": row["category"],
            "location": row["location"],
            "budget": row["budget"],
            "reward": row["reward"],
            "scheduled_date": row["scheduled_date"],
            "scheduled_time": row["scheduled_time"],
            "pet_id": row["pet_id"],
            "status": row["status"],
            "applicants": list(row["applicants"]),
            "assigned_to": row["assigned_to"],
            "posted_by": row["posted_by"],
            "version": row["version"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "assigned_at": row["assigned_at"],
            "completed_at": row["completed_at"],
            "confirmed_at": row["confirmed_at"],
            "cancelled_at": row["cancelled_at"],
        }

    @staticmethod
    def _review_to_response(review: ReviewRecord) -> dict[str, Any]:
        return {
            "review_id": review.review_id,
            "task_id": review.task_id,
            "reviewer_id": review.reviewer_id,
            "reviewee_id": review.reviewee_id,
            "reviewee_role": review.reviewee_role,
            "rating": review.rating,
            "comment": review.comment,
            "created_at": review.created_at,
        }

    def _optional_text(self, data: dict[str, Any], field_name: str, max_length: int) -> str | None:
        value = data.get(field_name)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Field '{field_name}' must be a string",
                400,
                {"field": field_name},
            )
        if len(value) > max_length:
            raise ServiceError(
                "FIELD_TOO_LONG",
                f"Field '{field_name}' must be at most {max_length} characters",
                400,
                {"field": field_name, "max_length": max_length},
            )
        return value

    def _required_text(self, data: dict[str, Any], field_name: str, max_length: int) -> str:
        value = self._optional_text(data, field_name, max_length)
        if value is None or not value.strip():
            raise ServiceError(
                "MISSING_FIELD",
                f"Missing required field: {field_name}",
                400,
                {"field": field_name},
            )
        return value.strip()

    # ------------------------------------------------------------------
    # Public methods called by routers
    # ------------------------------------------------------------------

    async def create_task(self, actor: Actor, data: dict[str, Any]) -> dict[str, Any]:
        """
        Create an open task for one of the actor's pets.

        Error precedence:
        1. MISSING_FIELD / INVALID_PAYLOAD / FIELD_TOO_LONG: payload validation
        2. PET_NOT_FOUND: pet_id does not exist
        3. FORBIDDEN: pet belongs to someone else
        """
        title = self._required_text(data, "title", self._max_title_length)
        category = self._required_text(data, "category", self._max_title_length)
        location = self._required_text(data, "location", self._max_description_length)
        pet_id = self._required_text(data, "pet_id", self._max_title_length)
        description = self._optional_text(data, "description", self._max_description_length)
        reward = (self._optional_text(data, "reward", self._max_title_length) or "").strip()
        scheduled_date = self._optional_text(data, "scheduled_date", self._max_title_length)
        scheduled_time = self._optional_text(data, "scheduled_time", self._max_title_length)

        budget = data.get("budget")
        if budget is not None and (
            not _is_number(budget) or not math.isfinite(budget) or budget < 0
        ):
            raise ServiceError(
                "INVALID_PAYLOAD",
                "Budget must be a finite non-negative number",
                400,
                {"field": "budget"},
            )
        if budget is None and not reward:
            raise ServiceError(
                "MISSING_FIELD",
                "Either budget or reward is required",
                400,
                {"field": "budget"},
            )

        pet = self._directory.get_pet(pet_id)
        if pet is None:
            raise ServiceError("PET_NOT_FOUND", "Pet not found", 404, {"pet_id": pet_id})
        if pet["owner_id"] != actor.user_id:
            raise ServiceError(
                "FORBIDDEN",
                "You can only create tasks for your own pets",
                403,
                {"pet_id": pet_id},
            )

        self._directory.record_user(actor.user_id, list(actor.roles))

        task_id = f"t-{uuid.uuid4()}"
        now = _now_iso()
        self._store.insert_task(
            {
                "task_id": task_id,
                "title": title,
                "description": description or "",
                "category": category,
                "location": location,
                "budget": budget,
                "reward": reward or _format_reward(budget),
                "scheduled_date": scheduled_date,
                "scheduled_time": scheduled_time,
                "pet_id": pet_id,
                "status": "open",
                "assigned_to": None,
                "posted_by": actor.user_id,
                "version": 1,
                "created_at": now,
                "updated_at": now,
                "assigned_at": None,
                "completed_at": None,
                "confirmed_at": None,
                "cancelled_at": None,
            }
        )
        self._logger.info(
            "Task created",
            extra={"task_id": task_id, "posted_by": actor.user_id, "pet_id": pet_id},
        )
        return self._task_to_response(self._reload(task_id))

    async def get_task(self, task_id: str) -> dict[str, Any]:
        """
        Get a single task by ID.

        Raises:
            ServiceError: TASK_NOT_FOUND
        """
        return self._task_to_response(self._load_task(task_id))

    async def list_tasks(
        self,
        status: str | None,
        posted_by: str | None,
        assigned_to: str | None,
        applicant_id: str | None,
        offset: int | None,
        limit: int | None,
    ) -> list[dict[str, Any]]:
        """List tasks with optional filters (AND logic), newest first."""
        if status is not None and status not in VALID_STATUSES:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"status must be one of {', '.join(VALID_STATUSES)}",
                400,
                {"field": "status"},
            )
        tasks = self._store.list_tasks(
            status=status,
            posted_by=posted_by,
            assigned_to=assigned_to,
            applicant_id=applicant_id,
            limit=limit,
            offset=offset,
        )
        return [self._task_to_response(task) for task in tasks]

    async def apply_to_task(self, task_id: str, actor: Actor) -> dict[str, Any]:
        """
        Add the actor to the task's applicant roster.

        Error precedence:
        1. TASK_NOT_FOUND
        2. INVALID_STATUS: task is not open or pending
        3. ALREADY_APPLIED: actor is already on the roster
        4. SELF_APPLICATION: actor posted the task
        """
        task = self._load_task(task_id)

        if task["status"] not in _APPLICATION_STATUSES:
            raise ServiceError(
                "INVALID_STATUS",
                "Task is not open for applications",
                409,
                {"task_id": task_id, "status": task["status"]},
            )
        if actor.user_id in task["applicants"]:
            raise ServiceError(
                "ALREADY_APPLIED",
                "You have already applied to this task",
                409,
                {"task_id": task_id},
            )
        if task["posted_by"] == actor.user_id:
            raise ServiceError(
                "SELF_APPLICATION",
                "You cannot apply to your own task",
                403,
                {"task_id": task_id},
            )

        self._directory.record_user(actor.user_id, list(actor.roles))
        self._roster.add_applicant(task, actor.user_id, _now_iso())

        updated = self._reload(task_id)
        self._logger.info(
            "Helper applied",
            extra={
                "task_id": task_id,
                "helper_id": actor.user_id,
                "status": updated["status"],
                "applicant_count": len(updated["applicants"]),
            },
        )
        return self._task_to_response(updated)

    async def assign_helper(
        self,
        task_id: str,
        actor: Actor,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Assign one applicant as the task's helper.

        Error precedence:
        1. MISSING_FIELD: helper_id absent or empty
        2. TASK_NOT_FOUND
        3. FORBIDDEN: actor is not the poster
        4. INVALID_STATUS: task is pending confirmation or terminal
        5. NOT_AN_APPLICANT: helper is not on the roster
        """
        helper_id = data.get("helper_id")
        if helper_id is None or (isinstance(helper_id, str) and not helper_id.strip()):
            raise ServiceError(
                "MISSING_FIELD",
                "helper_id is required",
                400,
                {"field": "helper_id"},
            )
        if not isinstance(helper_id, str):
            raise ServiceError(
                "INVALID_PAYLOAD",
                "Field 'helper_id' must be a string",
                400,
                {"field": "helper_id"},
            )

        task = self._load_task(task_id)
        require_poster(task, actor.user_id, "Only the task owner can assign a helper")

        if task["status"] not in _ASSIGNABLE_STATUSES:
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot assign a helper to a task in '{task['status']}' status",
                409,
                {"task_id": task_id, "status": task["status"]},
            )

        self._roster.assign(task, helper_id, _now_iso())

        self._logger.info(
            "Helper assigned",
            extra={
                "task_id": task_id,
                "helper_id": helper_id,
                "previous_assignee": task["assigned_to"],
            },
        )
        return self._task_to_response(self._reload(task_id))

    async def complete_task(self, task_id: str, actor: Actor) -> dict[str, Any]:
        """
        Mark the task done on the helper's side.

        Error precedence:
        1. TASK_NOT_FOUND
        2. FORBIDDEN: actor is not the assigned helper
        3. INVALID_STATUS: task is not in progress
        """
        task = self._load_task(task_id)
        require_assignee(
            task,
            actor.user_id,
            "Only the assigned helper can mark a task as complete",
        )

        if task["status"] != "in_progress":
            raise ServiceError(
                "INVALID_STATUS",
                "Task must be in progress to be marked as complete",
                409,
                {"task_id": task_id, "status": task["status"]},
            )

        now = _now_iso()
        updated = self._transition(
            task,
            {"status": "pending_confirmation", "completed_at": now, "updated_at": now},
        )
        self._logger.info(
            "Task marked complete",
            extra={"task_id": task_id, "helper_id": actor.user_id},
        )
        return self._task_to_response(updated)

    async def confirm_task(self, task_id: str, actor: Actor) -> dict[str, Any]:
        """
        Confirm completion on the owner's side.

        Error precedence:
        1. TASK_NOT_FOUND
        2. FORBIDDEN: actor is not the poster
        3. INVALID_STATUS: task is not pending confirmation
        """
        task = self._load_task(task_id)
        require_poster(task, actor.user_id, "Only the task owner can confirm task completion")

        if task["status"] != "pending_confirmation":
            raise ServiceError(
                "INVALID_STATUS",
                "Task must be pending confirmation to be confirmed",
                409,
                {"task_id": task_id, "status": task["status"]},
            )

        now = _now_iso()
        updated = self._transition(
            task,
            {"status": "completed", "confirmed_at": now, "updated_at": now},
        )
        self._logger.info(
            "Task confirmed",
            extra={"task_id": task_id, "posted_by": actor.user_id},
        )
        return self._task_to_response(updated)

    async def cancel_task(self, task_id: str, actor: Actor) -> dict[str, Any]:
        """
        Cancel the task, or withdraw the actor's application.

        The poster and the assigned helper cancel the whole task. A bare
        applicant only leaves the roster and the status is left alone.

        Error precedence:
        1. TASK_NOT_FOUND
        2. FORBIDDEN: actor has no relation to the task
        3. INVALID_STATUS: task is already completed or cancelled
        """
        task = self._load_task(task_id)
        role = resolve_role(task, actor.user_id)
        return self._cancel_handlers[role](task, actor)

    def _cancel_whole_task(self, task: dict[str, Any], actor: Actor) -> dict[str, Any]:
        if task["status"] in _TERMINAL_STATUSES:
            raise ServiceError(
                "INVALID_STATUS",
                "This task cannot be cancelled",
                409,
                {"task_id": task["task_id"], "status": task["status"]},
            )

        now = _now_iso()
        updated = self._transition(
            task,
            {"status": "cancelled", "cancelled_at": now, "updated_at": now},
        )
        self._logger.info(
            "Task cancelled",
            extra={
                "task_id": task["task_id"],
                "cancelled_by": actor.user_id,
                "previous_status": task["status"],
            },
        )
        return {"outcome": "cancelled", "task": self._task_to_response(updated)}

    def _withdraw_application(self, task: dict[str, Any], actor: Actor) -> dict[str, Any]:
        if task["status"] in _TERMINAL_STATUSES:
            raise ServiceError(
                "INVALID_STATUS",
                "Cannot withdraw application from this task",
                409,
                {"task_id": task["task_id"], "status": task["status"]},
            )

        self._roster.remove_applicant(task, actor.user_id, _now_iso())

        updated = self._reload(task["task_id"])
        self._logger.info(
            "Application withdrawn",
            extra={"task_id": task["task_id"], "helper_id": actor.user_id},
        )
        return {"outcome": "withdrawn", "task": self._task_to_response(updated)}

    def _reject_cancel(self, task: dict[str, Any], _actor: Actor) -> dict[str, Any]:
        raise ServiceError(
            "FORBIDDEN",
            "Only the task owner or participating helper can cancel this task",
            403,
            {"task_id": task["task_id"]},
        )

    async def submit_review(
        self,
        task_id: str,
        actor: Actor,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Record the actor's review of the other party and recompute their rating.

        Error precedence:
        1. MISSING_FIELD / INVALID_RATING / INVALID_PAYLOAD / FIELD_TOO_LONG
        2. TASK_NOT_FOUND
        3. INVALID_STATUS: task is not completed
        4. FORBIDDEN: actor is neither the poster nor the assignee
        5. INVALID_REVIEWEE: reviewee is not the other party of this task
        6. REVIEW_EXISTS: actor already reviewed this reviewee for this task
        7. RATING_UPDATE_FAILED: review stored but the rating could not be recomputed
        """
        reviewee_id = data.get("reviewee_id")
        rating = data.get("rating")
        if reviewee_id is None or rating is None:
            raise ServiceError(
                "MISSING_FIELD",
                "Rating and reviewee_id are required",
                400,
                {},
            )
        if not isinstance(reviewee_id, str) or not reviewee_id:
            raise ServiceError(
                "INVALID_PAYLOAD",
                "Field 'reviewee_id' must be a non-empty string",
                400,
                {"field": "reviewee_id"},
            )
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise ServiceError(
                "INVALID_RATING",
                "Rating must be an integer between 1 and 5",
                400,
                {"field": "rating"},
            )
        comment = self._optional_text(data, "comment", self._max_comment_length) or ""

        task = self._load_task(task_id)

        if task["status"] != "completed":
            raise ServiceError(
                "INVALID_STATUS",
                "Can only review completed tasks",
                409,
                {"task_id": task_id, "status": task["status"]},
            )

        other_party = counterpart(task, actor.user_id)
        if other_party is None:
            raise ServiceError(
                "FORBIDDEN",
                "Only the task owner or assigned helper can submit reviews",
                403,
                {"task_id": task_id},
            )
        expected_reviewee, reviewee_role = other_party
        if reviewee_id != expected_reviewee:
            raise ServiceError(
                "INVALID_REVIEWEE",
                "Invalid reviewee. Owner can only review helper, "
                "and helper can only review owner",
                400,
                {"task_id": task_id, "reviewee_id": reviewee_id},
            )

        if self._review_store.exists(actor.user_id, reviewee_id, task_id):
            raise ServiceError(
                "REVIEW_EXISTS",
                "You have already submitted a review for this task",
                409,
                {"task_id": task_id},
            )

        try:
            review = self._review_store.insert_review(
                task_id=task_id,
                reviewer_id=actor.user_id,
                reviewee_id=reviewee_id,
                reviewee_role=reviewee_role,
                rating=rating,
                comment=comment,
            )
        except DuplicateReviewError as exc:
            raise ServiceError(
                "REVIEW_EXISTS",
                "You have already submitted a review for this task",
                409,
                {"task_id": task_id},
            ) from exc

        self._logger.info(
            "Review submitted",
            extra={
                "task_id": task_id,
                "review_id": review.review_id,
                "reviewer_id": actor.user_id,
                "reviewee_id": reviewee_id,
                "reviewee_role": reviewee_role,
                "rating": rating,
            },
        )

        try:
            self._reputation.recompute(reviewee_id, reviewee_role)
        except sqlite3.Error as exc:
            self._logger.exception(
                "Rating recomputation failed after review was stored",
                extra={
                    "review_id": review.review_id,
                    "reviewee_id": reviewee_id,
                    "role": reviewee_role,
                },
            )
            raise ServiceError(
                "RATING_UPDATE_FAILED",
                "Review was recorded but the rating could not be updated, retry later",
                503,
                {"review_id": review.review_id},
            ) from exc

        return self._review_to_response(review)

    async def list_reviews(self, task_id: str) -> list[dict[str, Any]]:
        """
        List reviews exchanged on a task.

        Raises:
            ServiceError: TASK_NOT_FOUND
        """
        self._load_task(task_id)
        return [self._review_to_response(r) for r in self._review_store.get_by_task(task_id)]

    async def get_user_ratings(self, user_id: str) -> dict[str, Any]:
        """Return a user's owner and helper ratings with review counts."""
        return self._reputation.get_ratings(user_id)

    # ------------------------------------------------------------------
    # Statistics used by the health endpoint
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Return aggregate task and review statistics for health reporting."""
        return {
            "total_tasks": self._store.count_tasks(),
            "tasks_by_status": self.count_tasks_by_status(),
            "total_reviews": self._review_store.count(),
        }

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status, with 0 for statuses no task is in."""
        counts: dict[str, int] = dict.fromkeys(VALID_STATUSES, 0)
        for status_val, count in self._store.count_tasks_by_status().items():
            if status_val in counts:
                counts[status_val] = int(count)
        return counts

    def close(self) -> None:
        """Close the database connections."""
        self._store.close()
        self._review_store.close()
        self._directory.close()
