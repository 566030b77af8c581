"""API routers."""

from care_board_service.routers import health, reviews, tasks

__all__ = ["health", "reviews", "tasks"]
