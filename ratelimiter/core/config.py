"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

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


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()


def _build_limiter_settings() -> "LimiterSettings":
    """Build limiter settings from environment."""

    return LimiterSettings()


class LogSettings(BaseSettings):
    """Logging configuration (format, destination, correlation header)."""

    level: str = Field(
        "INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    format: str = Field(
        "json",
        description="Log format: json or plain",
    )
    output: str = Field(
        "stdout",
        description="Log destination: stdout or file",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class LimiterSettings(BaseSettings):
    """Sliding-window limiter configuration."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting on protected routes",
    )
    cache_name: str = Field(
        "rate-limiter",
        description="Namespace of the shared response cache holding LIMITED outcomes",
    )
    cache_max_entries: int | None = Field(
        10_000,
        description="Maximum cached LIMITED responses per namespace (None for unlimited)",
    )
    allowed_cache_names: str = Field(
        "",
        description="Comma-separated extra cache namespaces callers may select (cache_name is always allowed)",
    )
    actor_sweep_seconds: int = Field(
        60,
        description="Minimum seconds between sweeps that evict idle key actors",
        ge=0,
    )
    key_header: str = Field(
        "X-RateLimit-Key",
        description="Header carrying a caller-chosen rate limit key (read only when trust_key_header is set)",
    )
    trust_key_header: bool = Field(
        False,
        description="Trust key_header from clients. Enable only behind a proxy that sets or strips it",
    )
    allow_default_key: bool = Field(
        False,
        description="Use default_key when the caller address is unavailable instead of failing closed",
    )
    default_key: str = Field(
        "anonymous",
        description="Fallback key used only when allow_default_key is enabled",
    )
    count_rejected: bool = Field(
        False,
        description="Record rejected attempts in the key log (stricter than the default leniency)",
    )
    storage_backend: str = Field(
        "memory",
        description="Per-key storage backend: memory or file",
    )
    storage_dir: str = Field(
        "data/limiter",
        description="Directory for the file storage backend",
    )
    default_rules: str = Field(
        "3:10",
        description="Comma-separated <limit>:<interval> rules applied to protected routes",
    )

    model_config = SettingsConfigDict(
        env_prefix="LIMITER_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    limiter: LimiterSettings = Field(default_factory=_build_limiter_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
