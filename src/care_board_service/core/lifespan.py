"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from care_board_service.config import get_settings
from care_board_service.core.state import init_app_state
from care_board_service.logging import get_logger, setup_logging
from care_board_service.services.directory_store import UserDirectory
from care_board_service.services.reputation import ReputationAggregator
from care_board_service.services.review_store import ReviewStore
from care_board_service.services.roster import ApplicantRoster
from care_board_service.services.task_manager import TaskManager
from care_board_service.services.task_store import TaskStore
from care_board_service.services.token_validator import TokenValidator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    db_path = settings.database.path
    store = TaskStore(db_path=db_path)
    review_store = ReviewStore(db_path=db_path)
    directory = UserDirectory(db_path=db_path)

    state.token_validator = TokenValidator(
        secret=settings.auth.jwt_secret,
        algorithm=settings.auth.algorithm,
    )

    task_manager = TaskManager(
        store=store,
        review_store=review_store,
        directory=directory,
        roster=ApplicantRoster(store=store),
        reputation=ReputationAggregator(
            task_store=store,
            review_store=review_store,
            directory=directory,
        ),
        max_title_length=settings.limits.max_title_length,
        max_description_length=settings.limits.max_description_length,
        max_comment_length=settings.limits.max_comment_length,
    )
    state.task_manager = task_manager

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": db_path,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    # Closes all three SQLite connections
    task_manager.close()
