"""Unit tests for the command line entry point."""

import json

import pytest

from care_board_service.__main__ import main
from care_board_service.services.directory_store import UserDirectory
from care_board_service.services.review_store import ReviewStore
from care_board_service.services.task_store import TaskStore
from tests.helpers import write_config


def _seed(db_path: str) -> None:
    """One completed task, one review of the helper, and a drifted stored rating."""
    tasks = TaskStore(db_path=db_path)
    reviews = ReviewStore(db_path=db_path)
    directory = UserDirectory(db_path=db_path)
    try:
        tasks.insert_task(
            {
                "task_id": "t-1",
                "title": "Feed Tom",
                "description": "",
                "category": "feeding",
                "location": "Home",
                "budget": 15.0,
                "reward": "$15",
                "scheduled_date": None,
                "scheduled_time": None,
                "pet_id": "p-tom",
                "status": "completed",
                "assigned_to": "u-h",
                "posted_by": "u-o",
                "version": 5,
                "created_at": "2026-02-01T09:00:00.000000Z",
                "updated_at": "2026-02-01T12:00:00.000000Z",
                "assigned_at": "2026-02-01T10:00:00.000000Z",
                "completed_at": "2026-02-01T11:00:00.000000Z",
                "confirmed_at": "2026-02-01T12:00:00.000000Z",
                "cancelled_at": None,
            }
        )
        reviews.insert_review("t-1", "u-o", "u-h", "helper", 5, "Lovely")
        directory.record_user("u-o", ["owner"])
        directory.record_user("u-h", ["helper"])
        directory.set_rating("u-h", "helper", 2.0, 7)
    finally:
        tasks.close()
        reviews.close()
        directory.close()


@pytest.fixture
def configured_db(tmp_path, monkeypatch) -> str:
    db_path = tmp_path / "care-board.db"
    monkeypatch.setenv("CONFIG_PATH", str(write_config(tmp_path, db_path)))
    _seed(str(db_path))
    return str(db_path)


@pytest.mark.unit
def test_recalculate_all_users(configured_db, capsys) -> None:
    assert main(["recalculate-ratings"]) == 0

    summary = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert summary == {"users_recalculated": 2}


@pytest.mark.unit
def test_recalculate_single_user_repairs_drift(configured_db, capsys) -> None:
    assert main(["recalculate-ratings", "--user-id", "u-h"]) == 0

    summary = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert summary == {
        "user_id": "u-h",
        "owner_rating": 0.0,
        "helper_rating": 5.0,
        "owner_review_count": 0,
        "helper_review_count": 1,
    }


@pytest.mark.unit
def test_command_is_required(capsys) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 2
