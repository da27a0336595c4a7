"""StudyMesh application configuration.

Loads settings from a single YAML file:
  * studymesh.settings.yaml  — non-secret configuration

Sections:
  * server      — bind address and CORS origins
  * logging     — root log level
  * database    — DuckDB file location
  * chat        — intro limit, history caps, typing timeout, dedup cache
  * connections — credit grant on an accepted connection
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("studymesh.settings.yaml")

MEMORY_DB = ":memory:"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if not isinstance(getattr(logging, value.upper(), None), int):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class DatabaseSettings(BaseModel):
    path: str = "studymesh.duckdb"


class ChatSettings(BaseModel):
    """Messaging limits shared by the HTTP and realtime paths."""
    intro_message_limit:    int   = Field(default=1, ge=1)
    history_limit:          int   = Field(default=100, ge=1)
    max_history_limit:      int   = Field(default=500, ge=1)
    typing_timeout_seconds: float = Field(default=2.2, gt=0)
    dedup_cache_size:       int   = Field(default=10000, ge=1)


class ConnectionSettings(BaseModel):
    accept_credit_grant: int = Field(default=10, ge=0)


class AppConfig(BaseModel):
    server:      ServerSettings     = Field(default_factory=ServerSettings)
    logging:     LoggingSettings    = Field(default_factory=LoggingSettings)
    database:    DatabaseSettings   = Field(default_factory=DatabaseSettings)
    chat:        ChatSettings       = Field(default_factory=ChatSettings)
    connections: ConnectionSettings = Field(default_factory=ConnectionSettings)


# ---------------------------------------------------------------------------
# Path resolution
# ---------------------------------------------------------------------------


def _resolve_database_path(config: AppConfig, settings_path: Path) -> None:
    """Resolve a relative database path against the settings file's directory."""
    raw = config.database.path
    if raw == MEMORY_DB:
        return
    path = Path(raw)
    if not path.is_absolute():
        config.database.path = str(settings_path.parent.resolve() / path)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load *studymesh.settings.yaml* into an *AppConfig* object."""
    path = Path(settings_path) if settings_path is not None else SETTINGS_FILE
    config = AppConfig(**_load_yaml(path))
    _resolve_database_path(config, path)
    logger.info(
        "Settings loaded (server=%s:%s, database=%s, intro_limit=%d)",
        config.server.host,
        config.server.port,
        config.database.path,
        config.chat.intro_message_limit,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig) -> None:
    global _config
    _config = config


def reset_config() -> None:
    global _config
    _config = None
