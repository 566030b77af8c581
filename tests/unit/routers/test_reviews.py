"""Tests for review submission and rating reads."""

import pytest

from tests.helpers import (
    HELPER_1,
    HELPER_2,
    HELPER_3,
    OWNER_ID,
    apply,
    assign,
    completed_task,
    create_task_id,
    review,
)


async def _ratings(client, user_id: str) -> dict:
    response = await client.get(f"/users/{user_id}/ratings")
    assert response.status_code == 200
    return response.json()


@pytest.mark.unit
async def test_owner_reviews_helper(client) -> None:
    task_id = await completed_task(client)

    response = await review(client, task_id, OWNER_ID, HELPER_1, 5, "Rex loved it")
    assert response.status_code == 201
    body = response.json()
    assert body["review_id"].startswith("rev-")
    assert body["task_id"] == task_id
    assert body["reviewer_id"] == OWNER_ID
    assert body["reviewee_id"] == HELPER_1
    assert body["reviewee_role"] == "helper"
    assert body["rating"] == 5
    assert body["comment"] == "Rex loved it"

    ratings = await _ratings(client, HELPER_1)
    assert ratings["helper_rating"] == 5.0
    assert ratings["helper_review_count"] == 1
    assert ratings["owner_rating"] == 0.0


@pytest.mark.unit
async def test_duplicate_review_rejected(client) -> None:
    task_id = await completed_task(client)
    await review(client, task_id, OWNER_ID, HELPER_1, 5)

    response = await review(client, task_id, OWNER_ID, HELPER_1, 1)
    assert response.status_code == 409
    assert response.json()["error"] == "REVIEW_EXISTS"
    assert (await _ratings(client, HELPER_1))["helper_rating"] == 5.0


@pytest.mark.unit
async def test_owner_rating_is_mean_over_posted_tasks(client) -> None:
    first = await completed_task(client, HELPER_1)
    second = await completed_task(client, HELPER_2)

    assert (await review(client, first, HELPER_1, OWNER_ID, 5)).status_code == 201
    assert (await review(client, second, HELPER_2, OWNER_ID, 4)).status_code == 201

    ratings = await _ratings(client, OWNER_ID)
    assert ratings["owner_rating"] == 4.5
    assert ratings["owner_review_count"] == 2
    assert ratings["helper_rating"] == 0.0


@pytest.mark.unit
async def test_helper_rating_rounds_half_up(client) -> None:
    for rating in (4, 4, 5):
        task_id = await completed_task(client, HELPER_1)
        await review(client, task_id, OWNER_ID, HELPER_1, rating)

    assert (await _ratings(client, HELPER_1))["helper_rating"] == 4.3


@pytest.mark.unit
async def test_both_sides_review_same_task(client) -> None:
    task_id = await completed_task(client)
    assert (await review(client, task_id, OWNER_ID, HELPER_1, 4)).status_code == 201
    assert (await review(client, task_id, HELPER_1, OWNER_ID, 3)).status_code == 201

    response = await client.get(f"/tasks/{task_id}/reviews")
    assert response.status_code == 200
    body = response.json()
    assert body["task_id"] == task_id
    assert [(r["reviewer_id"], r["rating"]) for r in body["reviews"]] == [
        (OWNER_ID, 4),
        (HELPER_1, 3),
    ]


@pytest.mark.unit
async def test_review_before_completion(client) -> None:
    task_id = await create_task_id(client)
    await apply(client, task_id, HELPER_1)
    await assign(client, task_id, HELPER_1)

    response = await review(client, task_id, OWNER_ID, HELPER_1, 5)
    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_STATUS"


@pytest.mark.unit
async def test_review_wrong_reviewee(client) -> None:
    task_id = await completed_task(client)
    response = await review(client, task_id, OWNER_ID, HELPER_3, 5)
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_REVIEWEE"


@pytest.mark.unit
async def test_review_by_outsider(client) -> None:
    task_id = await completed_task(client)
    response = await review(client, task_id, HELPER_3, HELPER_1, 5)
    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"


@pytest.mark.unit
@pytest.mark.parametrize("rating", [0, 6, 3.5])
async def test_review_invalid_rating(client, rating) -> None:
    task_id = await completed_task(client)
    response = await review(client, task_id, OWNER_ID, HELPER_1, rating)
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_RATING"


@pytest.mark.unit
async def test_review_missing_task(client) -> None:
    response = await review(client, "t-missing", OWNER_ID, HELPER_1, 5)
    assert response.status_code == 404
    assert response.json()["error"] == "TASK_NOT_FOUND"


@pytest.mark.unit
async def test_list_reviews_missing_task(client) -> None:
    response = await client.get("/tasks/t-missing/reviews")
    assert response.status_code == 404


@pytest.mark.unit
async def test_ratings_for_unknown_user(client) -> None:
    assert await _ratings(client, "u-nobody") == {
        "user_id": "u-nobody",
        "owner_rating": 0.0,
        "helper_rating": 0.0,
        "owner_review_count": 0,
        "helper_review_count": 0,
    }
