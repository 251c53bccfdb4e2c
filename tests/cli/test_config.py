"""Tests for CLI configuration."""

import os
from unittest.mock import patch

from annotation_hub.cli.config import CLIConfig, get_config, load_config, reset_config, save_config


def test_defaults(monkeypatch):
    monkeypatch.delenv("ANNOTATION_HUB_API_URL", raising=False)
    monkeypatch.delenv("ANNOTATION_HUB_API_TOKEN", raising=False)
    config = CLIConfig(_env_file=None)
    assert config.api_url == "http://localhost:8000"
    assert config.api_token is None
    assert config.output_format == "table"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ANNOTATION_HUB_API_URL", "https://hub.example.com")
    assert CLIConfig(_env_file=None).api_url == "https://hub.example.com"


def test_save_and_load_roundtrip(tmp_path):
    config_file = tmp_path / "config.env"

    # load_config copies file values into the environment
    with patch.dict(os.environ, {}), patch("annotation_hub.cli.config.get_config_file", return_value=config_file):
        os.environ.pop("ANNOTATION_HUB_API_TIMEOUT", None)
        save_config("api_timeout", "15")
        assert "ANNOTATION_HUB_API_TIMEOUT=15" in config_file.read_text()
        assert load_config().api_timeout == 15


def test_environment_beats_config_file(tmp_path):
    config_file = tmp_path / "config.env"
    config_file.write_text("ANNOTATION_HUB_API_URL=http://from-file:8000\n")

    with patch.dict(os.environ, {"ANNOTATION_HUB_API_URL": "http://from-env:8000"}), \
            patch("annotation_hub.cli.config.get_config_file", return_value=config_file):
        assert load_config().api_url == "http://from-env:8000"


def test_get_config_is_cached():
    reset_config()
    with patch("annotation_hub.cli.config.load_config") as mock_load:
        first = get_config()
        second = get_config()
    assert first is second
    mock_load.assert_called_once()
    reset_config()
