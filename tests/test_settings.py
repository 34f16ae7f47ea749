"""Tests for load_settings(): one-call config assembly."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from tavern_sync.config_loader import PROJECT_CONFIG_NAME
from tavern_sync.settings import load_settings


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Empty CWD and HOME, no connection env vars."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    for name in (
        "TAVERN_SYNC_CONFIG",
        "ST_API_URL",
        "ST_USERNAME",
        "ST_PASSWORD",
        "ST_API_KEY",
        "ST_INSECURE_SSL",
        "ST_DEBUG",
        "ST_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestLoadSettings:
    def test_zero_config(self, isolated):
        settings = load_settings()
        assert settings.config.api_url == "http://127.0.0.1:8000"
        assert settings.unified.sync.identity.duplicates == "last-wins"

    def test_yaml_config_used(self, isolated):
        (isolated / PROJECT_CONFIG_NAME).write_text(
            "tavern:\n  url: http://yaml.example.com:8000\n  timeout: 15\n"
            "sync:\n  identity:\n    duplicates: disambiguate\n"
        )
        settings = load_settings()
        assert settings.config.api_url == "http://yaml.example.com:8000"
        assert settings.config.timeout == 15
        assert settings.unified.sync.identity.duplicates == "disambiguate"

    def test_env_beats_yaml(self, isolated, monkeypatch):
        (isolated / PROJECT_CONFIG_NAME).write_text(
            "tavern:\n  url: http://yaml.example.com\n"
        )
        monkeypatch.setenv("ST_API_URL", "http://env.example.com")
        assert load_settings().config.api_url == "http://env.example.com"

    def test_overrides_beat_everything(self, isolated, monkeypatch):
        monkeypatch.setenv("ST_API_URL", "http://env.example.com")
        settings = load_settings({"url": "http://cli.example.com", "debug": True})
        assert settings.config.api_url == "http://cli.example.com"
        assert settings.config.debug is True

    def test_dotenv_loaded_first(self, isolated):
        with patch("tavern_sync.settings.load_dotenv") as mock_load:
            load_settings()
        mock_load.assert_called_once_with()

    def test_invalid_config(self, isolated):
        with pytest.raises(ValueError):
            load_settings({"url": "no-scheme"})
