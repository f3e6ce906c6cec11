"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


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


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file and os.getenv("TESTING") != "true":
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)

DAY_MS = 24 * 60 * 60 * 1000


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    auth_required: bool = Field(
        True,
        description="Require a bearer token; when false, anonymous callers are keyed by client address",
    )

    ai_task_rate_limit_enabled: bool = Field(
        True,
        description="Throttle AI task requests per caller and project",
    )
    ai_task_rate_limit_requests: int = Field(
        10,
        description="Maximum AI task requests per window (per caller and project)",
        ge=1,
    )
    ai_task_rate_limit_window_ms: int = Field(
        DAY_MS,
        description="AI task sliding window length in milliseconds",
        ge=1,
    )
    rate_limit_sweep_interval_ms: Annotated[int, Field(ge=1)] | None = Field(
        5 * 60 * 1000,
        description="Clock time between sweeps of expired limiter keys; unset disables sweeping",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include Retry-After and X-RateLimit-* headers when throttling",
    )

    message_quota_enabled: bool = Field(
        True,
        description="Enforce the rolling chat message quota",
    )
    message_quota_max: int = Field(
        7,
        description="Maximum chat messages per window (per sender and project)",
        ge=1,
    )
    message_quota_window_ms: int = Field(
        DAY_MS,
        description="Chat message quota window length in milliseconds",
        ge=1,
    )
    message_quota_warning_threshold: int = Field(
        2,
        description="Warn once this many messages or fewer remain",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10 * 1024 * 1024, description="Rotate after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


def _build_app_settings() -> AppSettings:
    return AppSettings()


def _build_log_settings() -> LogSettings:
    return LogSettings()


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance; create_app() accepts an explicit one for tests
settings = Settings()
