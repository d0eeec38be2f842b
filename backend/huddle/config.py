"""Huddle application configuration.

Loads settings from a single YAML file:
  * huddle.settings.yaml: non-secret configuration

Every section has defaults, so a missing file yields a working server
(rooms of 50, 5 second reconnect grace, 5 minute janitor sweep).
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

SETTINGS_FILE = Path("huddle.settings.yaml")

_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _resolve_path(value: str, settings_path: Path) -> str:
    """Resolve a relative data path the same way for every settings layout.

    Settings kept in a ``config/`` directory resolve against the project
    root (the parent of ``config/``); anywhere else they resolve against
    the directory holding the settings file.
    """
    path = Path(value)
    if value == ":memory:" or path.is_absolute():
        return str(path)
    base = settings_path.resolve().parent
    if base.name == "config":
        base = base.parent
    return str(base / path)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 5055
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.lower() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class RoomSettings(BaseModel):
    max_participants:         int   = Field(default=50, ge=1)
    history_limit:            int   = Field(default=100, ge=1)
    cleanup_interval_seconds: float = Field(default=300.0, gt=0)


class SessionSettings(BaseModel):
    """Timers of the real-time session.

    grace_period_seconds: how long a dropped connection keeps its seat
        before the participant is announced as gone.
    ready_timeout_seconds: how long to wait for a joiner's ``ready``
        before announcing it to the room anyway.
    """
    grace_period_seconds:  float = Field(default=5.0, ge=0)
    ready_timeout_seconds: float = Field(default=1.5, ge=0)


class RateLimitSettings(BaseModel):
    enabled:        bool  = True
    max_requests:   int   = Field(default=30, ge=1)
    window_seconds: float = Field(default=60.0, gt=0)


class RecordingSettings(BaseModel):
    upload_dir:       str = "uploads/recordings"
    db_path:          str = "recordings.duckdb"
    max_file_size_mb: int = Field(default=100, ge=1)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


class AppConfig(BaseModel):
    server:     ServerSettings    = Field(default_factory=ServerSettings)
    logging:    LoggingSettings   = Field(default_factory=LoggingSettings)
    rooms:      RoomSettings      = Field(default_factory=RoomSettings)
    session:    SessionSettings   = Field(default_factory=SessionSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    recordings: RecordingSettings = Field(default_factory=RecordingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

_config: Optional[AppConfig] = None


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load *settings_path* (default ``huddle.settings.yaml``) into an AppConfig."""
    settings_path = Path(settings_path) if settings_path else SETTINGS_FILE
    data = _load_yaml(settings_path)

    config = AppConfig(**data)
    if settings_path.exists():
        recordings = config.recordings
        recordings.upload_dir = _resolve_path(recordings.upload_dir, settings_path)
        recordings.db_path = _resolve_path(recordings.db_path, settings_path)

    logger.info(
        "Settings loaded (server=%s:%s, max_participants=%d, grace=%.1fs)",
        config.server.host,
        config.server.port,
        config.rooms.max_participants,
        config.session.grace_period_seconds,
    )
    return config


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached configuration (for testing)."""
    global _config
    _config = None
