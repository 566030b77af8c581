"""Role-scoped reputation aggregation."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from care_board_service.logging import get_logger

if TYPE_CHECKING:
    from care_board_service.services.directory_store import UserDirectory
    from care_board_service.services.review_store import ReviewStore
    from care_board_service.services.task_store import TaskStore

RATING_ROLES: tuple[str, ...] = ("owner", "helper")

_ONE_DECIMAL = Decimal("0.1")


def round_rating(ratings: list[int]) -> float:
    """Mean of ratings rounded half-up to one decimal place, 0.0 when empty."""
    if len(ratings) == 0:
        return 0.0
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return float(mean.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


class ReputationAggregator:
    """
    Recomputes a user's owner or helper rating from the full review history.

    A role's rating only counts reviews received on tasks where the user
    played that role: tasks they posted for ``owner``, tasks they were
    assigned for ``helper``. Nothing is accumulated incrementally, so
    running the same recomputation twice writes the same value.
    """

    def __init__(
        self,
        task_store: TaskStore,
        review_store: ReviewStore,
        directory: UserDirectory,
    ) -> None:
        self._task_store = task_store
        self._review_store = review_store
        self._directory = directory
        self._logger = get_logger(__name__)

    def recompute(self, user_id: str, role: str) -> dict[str, Any]:
        """Recompute and store one role's rating for a user."""
        if role == "owner":
            task_ids = self._task_store.list_task_ids(posted_by=user_id)
        elif role == "helper":
            task_ids = self._task_store.list_task_ids(assigned_to=user_id)
        else:
            msg = f"Unknown rating role: {role}"
            raise ValueError(msg)

        ratings = self._review_store.ratings_for_reviewee(user_id, task_ids)
        rating = round_rating(ratings)
        self._directory.set_rating(user_id, role, rating, len(ratings))

        self._logger.info(
            "Rating recomputed",
            extra={
                "user_id": user_id,
                "role": role,
                "rating": rating,
                "review_count": len(ratings),
            },
        )
        return {"user_id": user_id, "role": role, "rating": rating, "review_count": len(ratings)}

    def recompute_user(self, user_id: str) -> list[dict[str, Any]]:
        """Recompute both role ratings for a user."""
        return [self.recompute(user_id, role) for role in RATING_ROLES]

    def recompute_all(self) -> int:
        """Recompute both role ratings for every known user. Returns the user count."""
        user_ids = self._directory.list_user_ids()
        for user_id in user_ids:
            self.recompute_user(user_id)
        self._logger.info("All ratings recomputed", extra={"user_count": len(user_ids)})
        return len(user_ids)

    def get_ratings(self, user_id: str) -> dict[str, Any]:
        """Return the stored role-scoped ratings for a user (zeros if unknown)."""
        user = self._directory.get_user(user_id)
        if user is None:
            return {
                "user_id": user_id,
                "owner_rating": 0.0,
                "helper_rating": 0.0,
                "owner_review_count": 0,
                "helper_review_count": 0,
            }
        return {
            "user_id": user_id,
            "owner_rating": user["owner_rating"],
            "helper_rating": user["helper_rating"],
            "owner_review_count": user["owner_review_count"],
            "helper_review_count": user["helper_review_count"],
        }
