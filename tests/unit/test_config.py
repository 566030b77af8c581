"""Unit tests for YAML settings loading."""

import pytest
from pydantic import ValidationError

from care_board_service.config import get_config_path, get_settings
from tests.helpers import TEST_JWT_SECRET, write_config


@pytest.mark.unit
def test_settings_load_from_config_path(tmp_path, monkeypatch) -> None:
    config_path = write_config(tmp_path, tmp_path / "board.db", max_body_size=4096)
    monkeypatch.setenv("CONFIG_PATH", str(config_path))

    settings = get_settings()

    assert settings.service.name == "care-board"
    assert settings.server.port == 8010
    assert settings.database.path == str(tmp_path / "board.db")
    assert settings.auth.jwt_secret == TEST_JWT_SECRET
    assert settings.auth.algorithm == "HS256"
    assert settings.request.max_body_size == 4096
    assert settings.limits.max_comment_length == 2000


@pytest.mark.unit
def test_settings_are_cached(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("CONFIG_PATH", str(write_config(tmp_path, tmp_path / "board.db")))
    assert get_settings() is get_settings()


@pytest.mark.unit
def test_default_path_is_project_config(monkeypatch) -> None:
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    assert get_config_path().name == "config.yaml"


@pytest.mark.unit
def test_unknown_key_rejected(tmp_path, monkeypatch) -> None:
    config_path = write_config(tmp_path, tmp_path / "board.db")
    config_path.write_text(config_path.read_text() + "surprise:\n  enabled: true\n")
    monkeypatch.setenv("CONFIG_PATH", str(config_path))

    with pytest.raises(ValidationError):
        get_settings()


@pytest.mark.unit
def test_missing_section_rejected(tmp_path, monkeypatch) -> None:
    config_path = write_config(tmp_path, tmp_path / "board.db")
    text = config_path.read_text()
    config_path.write_text(text[: text.index("limits:")])
    monkeypatch.setenv("CONFIG_PATH", str(config_path))

    with pytest.raises(ValidationError):
        get_settings()


@pytest.mark.unit
def test_non_mapping_config_rejected(tmp_path, monkeypatch) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n")
    monkeypatch.setenv("CONFIG_PATH", str(config_path))

    with pytest.raises(ValueError, match="Invalid config file"):
        get_settings()
