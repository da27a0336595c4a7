"""Tests for settings loading and database path resolution."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from app.config import AppConfig, LoggingSettings, load_config


def test_database_path_relative_to_settings_dir(tmp_path):
    """Relative database.path resolves from the settings file directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    settings_file = config_dir / "studymesh.settings.yaml"
    settings_file.write_text(
        "database:\n"
        "  path: data/studymesh.duckdb\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file)
    assert Path(cfg.database.path) == config_dir.resolve() / "data" / "studymesh.duckdb"


def test_database_path_absolute_remains_unchanged(tmp_path):
    absolute_path = tmp_path / "absolute" / "studymesh.duckdb"
    settings_file = tmp_path / "studymesh.settings.yaml"
    settings_file.write_text(
        "database:\n"
        f"  path: {absolute_path}\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file)
    assert Path(cfg.database.path) == absolute_path


def test_in_memory_database_is_kept(tmp_path):
    settings_file = tmp_path / "studymesh.settings.yaml"
    settings_file.write_text('database:\n  path: ":memory:"\n', encoding="utf-8")

    cfg = load_config(settings_path=settings_file)
    assert cfg.database.path == ":memory:"


def test_missing_settings_file_uses_defaults(tmp_path):
    cfg = load_config(settings_path=tmp_path / "nope.yaml")
    assert cfg.chat.intro_message_limit == 1
    assert cfg.chat.history_limit == 100
    assert cfg.chat.typing_timeout_seconds == pytest.approx(2.2)
    assert cfg.connections.accept_credit_grant == 10
    assert cfg.server.port == 8000


def test_settings_override_chat_limits(tmp_path):
    settings_file = tmp_path / "studymesh.settings.yaml"
    settings_file.write_text(
        "chat:\n"
        "  intro_message_limit: 3\n"
        "connections:\n"
        "  accept_credit_grant: 25\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file)
    assert cfg.chat.intro_message_limit == 3
    assert cfg.connections.accept_credit_grant == 25
    # untouched sections keep defaults
    assert cfg.chat.dedup_cache_size == 10000


def test_log_level_is_normalized():
    assert LoggingSettings(level="DEBUG").level == "debug"


def test_unknown_log_level_rejected():
    with pytest.raises(ValidationError):
        LoggingSettings(level="chatty")


def test_intro_limit_must_be_positive():
    with pytest.raises(ValidationError):
        AppConfig(chat={"intro_message_limit": 0})
