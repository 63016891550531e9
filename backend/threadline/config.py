"""Threadline application configuration.

Loads settings from two YAML files:
  * threadline.settings.yaml  : non-secret configuration
  * threadline.secrets.yaml   : secrets (never committed)

Both files are optional; missing files fall back to the defaults below.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("threadline.settings.yaml")
SECRETS_FILE  = Path("threadline.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class DatabaseSettings(BaseModel):
    path: str = "threadline.duckdb"


class AuthSettings(BaseModel):
    algorithm:            str = "HS256"
    token_expire_minutes: int = 60 * 24 * 7


class AISettings(BaseModel):
    """Simulated latency bounds (seconds) for the mocked AI layer."""
    reply_delay_min:   float = Field(default=1.5, ge=0)
    reply_delay_max:   float = Field(default=3.5, ge=0)
    feature_delay_min: float = Field(default=2.0, ge=0)
    feature_delay_max: float = Field(default=5.0, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "AISettings":
        if self.reply_delay_min > self.reply_delay_max:
            raise ValueError("ai.reply_delay_min must not exceed ai.reply_delay_max")
        if self.feature_delay_min > self.feature_delay_max:
            raise ValueError("ai.feature_delay_min must not exceed ai.feature_delay_max")
        return self


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth:     AuthSettings     = Field(default_factory=AuthSettings)
    ai:       AISettings       = Field(default_factory=AISettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    secrets:  Secrets          = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_file: Path = SETTINGS_FILE,
    secrets_file: Path = SECRETS_FILE,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_data = _load_yaml(settings_file)
    secrets_data  = _load_yaml(secrets_file)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, database=%s, reply_delay=%.1f-%.1fs)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.database.path,
        app_settings.ai.reply_delay_min,
        app_settings.ai.reply_delay_max,
    )
    return app_settings


@lru_cache(maxsize=1)
def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    return load_settings()


def reset_config() -> None:
    """Drop the cached settings so the next get_config() reloads the files."""
    get_config.cache_clear()
