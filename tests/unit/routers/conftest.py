"""Router test fixtures: real app, temp database, seeded pets."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient

from care_board_service.app import create_app
from care_board_service.config import clear_settings_cache
from care_board_service.core.lifespan import lifespan
from care_board_service.core.state import reset_app_state
from care_board_service.services.directory_store import UserDirectory
from tests.helpers import OTHER_OWNER_ID, OTHER_PET_ID, OWNER_ID, PET_ID, write_config

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of the temp SQLite database shared by the app and the fixtures."""
    return tmp_path / "care-board.db"


@pytest.fixture
async def app(tmp_path: Path, db_path: Path) -> AsyncIterator[Any]:
    """Create a test app with a temp database and two registered pets."""
    config_path = write_config(tmp_path, db_path)

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    # Pets are written by the profile service in production.
    directory = UserDirectory(db_path=str(db_path))
    directory.register_pet(PET_ID, OWNER_ID, "Rex")
    directory.register_pet(OTHER_PET_ID, OTHER_OWNER_ID, "Tom")
    directory.close()

    test_app = create_app()
    async with lifespan(test_app):
        yield test_app

    reset_app_state()
    clear_settings_cache()
    if old_config is None:
        os.environ.pop("CONFIG_PATH", None)
    else:
        os.environ["CONFIG_PATH"] = old_config


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
