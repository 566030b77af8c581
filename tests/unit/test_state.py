"""Unit tests for application state."""

from datetime import UTC, datetime, timedelta

import pytest
from freezegun import freeze_time

from care_board_service.core.state import (
    AppState,
    get_app_state,
    init_app_state,
    reset_app_state,
)


@pytest.mark.unit
def test_get_before_init_raises() -> None:
    with pytest.raises(RuntimeError, match="not initialized"):
        get_app_state()


@pytest.mark.unit
def test_init_then_get_returns_same_state() -> None:
    state = init_app_state()
    assert get_app_state() is state
    assert state.task_manager is None
    assert state.token_validator is None

    reset_app_state()
    with pytest.raises(RuntimeError):
        get_app_state()


@pytest.mark.unit
def test_uptime_and_started_at() -> None:
    with freeze_time("2026-03-01 12:00:00") as frozen:
        state = AppState()
        frozen.tick(timedelta(seconds=90))
        assert state.uptime_seconds == 90.0
        assert state.started_at == "2026-03-01T12:00:00Z"


@pytest.mark.unit
def test_explicit_start_time() -> None:
    start = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
    assert AppState(start_time=start).started_at == "2026-01-02T03:04:05Z"
