"""Unit tests for bearer token verification."""

import pytest

from care_board_service.core.exceptions import ServiceError
from care_board_service.services.token_validator import Actor, TokenValidator
from tests.helpers import TEST_JWT_SECRET, make_token


@pytest.fixture
def validator() -> TokenValidator:
    return TokenValidator(secret=TEST_JWT_SECRET, algorithm="HS256")


@pytest.mark.unit
def test_valid_token_yields_actor(validator) -> None:
    actor = validator.authenticate(make_token("u-1", ("owner",)))
    assert actor == Actor(user_id="u-1", roles=("owner",))


@pytest.mark.unit
def test_token_without_exp_or_roles_is_accepted(validator) -> None:
    token = make_token("u-1", (), expires_in=None)
    actor = validator.authenticate(token)
    assert actor.user_id == "u-1"
    assert actor.roles == ()


@pytest.mark.unit
@pytest.mark.parametrize(
    "token",
    [
        "",
        "not-a-jwt",
        "a.b.c",
        make_token("u-1", secret="some-other-secret-that-is-also-long-enough"),
        make_token("u-1", expires_in=-60),
    ],
    ids=["empty", "garbage", "bad-segments", "wrong-secret", "expired"],
)
def test_invalid_tokens_rejected(validator, token) -> None:
    with pytest.raises(ServiceError) as exc_info:
        validator.authenticate(token)
    assert exc_info.value.error == "INVALID_TOKEN"
    assert exc_info.value.status_code == 401


@pytest.mark.unit
def test_token_without_subject_rejected(validator) -> None:
    token = make_token("", extra_claims={"sub": None})
    with pytest.raises(ServiceError) as exc_info:
        validator.authenticate(token)
    assert exc_info.value.error == "INVALID_TOKEN"


@pytest.mark.unit
def test_roles_must_be_string_list(validator) -> None:
    token = make_token("u-1", extra_claims={"roles": "owner"})
    with pytest.raises(ServiceError) as exc_info:
        validator.authenticate(token)
    assert exc_info.value.error == "INVALID_TOKEN"
