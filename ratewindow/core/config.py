"""Configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ratewindow.core.errors import ValidationAppError
from ratewindow.utils.durations import parse_rate, window_to_ttl_seconds


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_store_settings() -> "StoreSettings":
    """Build store settings from environment.

    Pydantic Settings (v2) populates values from environment variables, but
    static type checkers treat fields as constructor arguments.
    """

    return StoreSettings()  # type: ignore[call-arg]


def _build_limiter_settings() -> "LimiterSettings":
    """Build limiter settings from environment."""

    return LimiterSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class StoreSettings(BaseSettings):
    """Shared counter store connection."""

    url: str = Field(
        "redis://localhost:6379/0",
        description="Store URL (redis://, rediss://, unix:// or memory://)",
    )
    socket_timeout: float | None = Field(
        5.0,
        description="Per-command socket timeout in seconds",
    )
    socket_connect_timeout: float | None = Field(
        5.0,
        description="Connection establishment timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class LimiterSettings(BaseSettings):
    """Fixed-window limiter defaults."""

    key_prefix: str = Field(
        "ratewindow",
        description="Namespace prepended to every counter key",
        min_length=1,
    )
    max_requests: int = Field(
        60,
        description="Maximum number of requests allowed per window",
        ge=1,
    )
    window: str = Field(
        "60s",
        description="Window duration, e.g. '60s', '5m', '1h'",
    )
    rate: str | None = Field(
        None,
        description="Shorthand such as '100/minute'; overrides max_requests and window",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers on HTTP responses",
    )

    model_config = SettingsConfigDict(
        env_prefix="LIMITER_",
        case_sensitive=False,
    )

    @field_validator("window")
    @classmethod
    def validate_window(cls, value: str) -> str:
        """Reject windows that cannot be stored as a whole-second TTL."""
        try:
            window_to_ttl_seconds(value)
        except ValidationAppError as exc:
            raise ValueError(exc.message) from exc
        return value

    @model_validator(mode="after")
    def apply_rate(self) -> "LimiterSettings":
        """Expand ``rate`` into ``max_requests`` and ``window``."""
        if self.rate is None:
            return self
        try:
            max_requests, window_seconds = parse_rate(self.rate)
            ttl_seconds = window_to_ttl_seconds(window_seconds)
        except ValidationAppError as exc:
            raise ValueError(exc.message) from exc
        self.max_requests = max_requests
        self.window = f"{ttl_seconds}s"
        return self


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field(
        "json",
        description="Log format: json or plain",
        pattern="^(json|plain)$",
    )
    output: str = Field(
        "stdout",
        description="Log destination: stdout or file",
        pattern="^(stdout|file)$",
    )
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    store: StoreSettings = Field(default_factory=_build_store_settings)
    limiter: LimiterSettings = Field(default_factory=_build_limiter_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
