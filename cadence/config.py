"""Configuration loader for the Cadence timing daemon (Pydantic edition)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Literal

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOGGER = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded safely."""


class AppConfig(BaseSettings):
    """Strongly typed runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        validate_default=True,
        populate_by_name=True,
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        validation_alias=AliasChoices("APP_ENVIRONMENT", "APP_ENV"),
    )
    database_path: Path = Field(
        default=Path("cadence.db"),
        validation_alias=AliasChoices("APP_DATABASE_PATH", "DATABASE_PATH"),
    )
    log_path: Path = Field(
        default=Path("logs/cadence.log"),
        validation_alias=AliasChoices("APP_LOG_PATH", "LOG_PATH"),
    )

    # Scheduled submission daemon
    scheduler_enabled: bool = Field(True, validation_alias=AliasChoices("APP_SCHEDULER_ENABLED", "SCHEDULER_ENABLED"))
    poll_interval_minutes: int = Field(
        15, ge=1, validation_alias=AliasChoices("APP_POLL_INTERVAL", "APP_POLL_INTERVAL_MINUTES")
    )
    run_on_startup: bool = Field(True, validation_alias="APP_RUN_ON_STARTUP")
    poll_workers: int = Field(4, ge=1, le=32, validation_alias="APP_POLL_WORKERS")
    misfire_grace_seconds: int = Field(90, ge=1, validation_alias="APP_MISFIRE_GRACE_SECONDS")

    # Recommendation defaults
    default_timezone: str = Field("EST", validation_alias=AliasChoices("APP_DEFAULT_TIMEZONE", "DEFAULT_TIMEZONE"))

    # Notifications
    smtp_host: str | None = Field(default=None, validation_alias=AliasChoices("APP_SMTP_HOST", "SMTP_HOST"))
    smtp_port: int = Field(587, ge=1, le=65535, validation_alias=AliasChoices("APP_SMTP_PORT", "SMTP_PORT"))
    smtp_username: str | None = Field(default=None, validation_alias=AliasChoices("APP_SMTP_USERNAME", "SMTP_USER"))
    smtp_password: SecretStr | None = Field(default=None, validation_alias=AliasChoices("APP_SMTP_PASSWORD", "SMTP_PASS"))
    smtp_use_tls: bool = Field(True, validation_alias="APP_SMTP_USE_TLS")
    smtp_timeout_seconds: float = Field(10.0, gt=0, validation_alias="APP_SMTP_TIMEOUT")
    notification_from: str | None = Field(
        default=None,
        validation_alias=AliasChoices("APP_NOTIFICATION_FROM", "EMAIL_FROM"),
    )

    @field_validator("database_path", "log_path", mode="after")
    @classmethod
    def _expand_path(cls, value: Path) -> Path:
        expanded = value.expanduser()
        return expanded if expanded.is_absolute() else (Path.cwd() / expanded).resolve()

    @field_validator("default_timezone", mode="before")
    @classmethod
    def _normalise_timezone(cls, value: str | None) -> str:
        if value is None or not str(value).strip():
            return "EST"
        return str(value).strip().upper()

    @model_validator(mode="after")
    def _validate_notifications(self) -> "AppConfig":
        if self.smtp_password is not None and not self.smtp_username:
            raise ConfigError("smtp_password is set but smtp_username is missing")
        return self

    def ensure_runtime_directories(self) -> None:
        """Create directories required for runtime operation."""
        _ensure_directories((self.database_path.parent, self.log_path.parent))

    @property
    def has_notification_credentials(self) -> bool:
        """SMTP is usable; the From address falls back to ``smtp_username``."""
        return bool(self.smtp_host and self.smtp_username and self.smtp_password)


def _ensure_directories(paths: Iterable[Path]) -> None:
    for directory in paths:
        directory.mkdir(parents=True, exist_ok=True)


def load_config(env_path: Path | None = None) -> AppConfig:
    """Load configuration from .env/environment with validation."""
    load_kwargs: dict[str, str] = {}
    if env_path is not None:
        load_dotenv(env_path, override=False)
        load_kwargs["_env_file"] = str(env_path)
    else:
        load_dotenv(override=False)
    try:
        config = AppConfig(**load_kwargs)
    except ValidationError as exc:
        raise ConfigError("Invalid configuration") from exc

    config.ensure_runtime_directories()

    LOGGER.info(
        "AppConfig loaded",
        extra={
            "event": "config.loaded",
            "environment": config.environment,
            "paths": {
                "database": str(config.database_path),
                "log": str(config.log_path),
            },
        },
    )
    return config
