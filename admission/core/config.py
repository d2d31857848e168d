"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


CounterStrategyName = Literal["atomic", "read_write"]
FailurePolicyName = Literal["open", "closed"]


class RateLimitSettings(BaseSettings):
    """Admission filter and rate decision configuration.

    A client may record ``threshold + 1`` requests per window: the check is
    ``count > threshold`` on the value read before the current request.
    """

    enabled: bool = Field(
        True,
        description="Enable per-client rate limiting in front of every route",
    )
    threshold: int = Field(
        10,
        description="Maximum stored counter value that still admits a request",
        ge=0,
    )
    window_seconds: int = Field(
        60,
        description="Fixed window (time bucket) size in seconds",
        ge=1,
    )
    expiry_seconds: int = Field(
        300,
        description="TTL applied to a counter key when it is created",
        ge=1,
    )
    strategy: CounterStrategyName = Field(
        "atomic",
        description="Counter update strategy: atomic INCR-with-TTL or legacy GET/SET",
    )
    failure_policy: FailurePolicyName = Field(
        "open",
        description="Verdict applied when the counter store is unavailable",
    )
    reject_status_code: int = Field(
        429,
        description="HTTP status returned for requests over the threshold",
        ge=100,
        le=599,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers",
    )
    trust_forwarded_headers: bool = Field(
        True,
        description="Derive the client identity from X-Real-IP / X-Forwarded-For",
    )
    exempt_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Path prefixes that bypass the admission filter",
    )
    key_prefix: str = Field(
        "",
        description="Namespace prepended to every counter key",
    )
    key_separator: str = Field(
        "",
        description="Separator between identity and time bucket in counter keys",
    )
    decision_timeout_seconds: float = Field(
        2.0,
        description="Upper bound for a single admission decision (store round trips)",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _check_expiry_covers_window(self) -> "RateLimitSettings":
        if self.expiry_seconds < self.window_seconds:
            raise ValueError("expiry_seconds must be >= window_seconds")
        return self


class StoreSettings(BaseSettings):
    """Shared counter store configuration."""

    backend: Literal["redis", "memory"] = Field(
        "redis",
        description="Counter store backend (redis for shared state, memory for local dev)",
    )
    url: str = Field(
        "redis://0.0.0.0:6379/0",
        description="Redis connection URL",
    )
    max_connections: int = Field(
        100,
        description="Maximum pooled connections to the store",
        ge=1,
    )
    socket_timeout_seconds: float = Field(
        1.0,
        description="Per-command socket timeout in seconds",
        gt=0,
    )
    connect_timeout_seconds: float = Field(
        1.0,
        description="Connection establishment timeout in seconds",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log output format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        0,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


def _build_rate_limit_settings() -> RateLimitSettings:
    """Build rate limit settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return RateLimitSettings()  # type: ignore[call-arg]


def _build_store_settings() -> StoreSettings:
    return StoreSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are inconsistent.
    """

    app_env: str = APP_ENV
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    store: StoreSettings = Field(default_factory=_build_store_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
