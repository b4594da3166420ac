"""
Centralized configuration management for the notification relay.

This module provides configuration management using environment variables
with sensible defaults and validation. Required credentials have no default,
so a missing value surfaces as a validation error at startup.
"""

from typing import List, Optional, Sequence

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ALL_SECTIONS = ("supabase", "telegram", "sqs", "relay", "logging", "metrics")


class ConfigurationError(Exception):
    """Raised when required settings are missing or invalid at startup."""

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        super().__init__(message)
        self.problems = problems or []


class SupabaseConfig(BaseSettings):
    """Supabase change-feed configuration."""

    url: str = Field(..., alias="SUPABASE_URL")
    key: str = Field(..., alias="SUPABASE_KEY")
    schema_name: str = Field(default="public", alias="SUPABASE_SCHEMA")

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        """Validate Supabase project URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("SUPABASE_URL must be an http(s) URL")
        return v.rstrip("/")


class TelegramConfig(BaseSettings):
    """Telegram Bot API configuration."""

    bot_token: str = Field(..., alias="TELEGRAM_TOKEN")
    chat_id: str = Field(..., alias="CHAT_ID")
    api_url: str = Field(default="https://api.telegram.org", alias="TELEGRAM_API_URL")
    timeout: float = Field(default=10.0, alias="TELEGRAM_TIMEOUT")

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class SQSConfig(BaseSettings):
    """AWS SQS order queue configuration."""

    region: str = Field(..., alias="AWS_REGION")
    access_key_id: str = Field(..., alias="AWS_ACCESS_KEY_ID")
    secret_access_key: str = Field(..., alias="AWS_SECRET_ACCESS_KEY")
    queue_url: str = Field(..., alias="SQS_QUEUE_URL")
    max_messages: int = Field(default=10, ge=1, le=10, alias="SQS_MAX_MESSAGES")
    wait_time_seconds: int = Field(default=20, ge=0, le=20, alias="SQS_WAIT_TIME_SECONDS")
    visibility_timeout: int = Field(default=30, ge=0, alias="SQS_VISIBILITY_TIMEOUT")
    poll_delay: float = Field(default=1.0, ge=0, alias="SQS_POLL_DELAY")  # seconds
    error_backoff: float = Field(default=5.0, ge=0, alias="SQS_ERROR_BACKOFF")  # seconds

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class RelayConfig(BaseSettings):
    """Dedup and milestone bookkeeping configuration."""

    dedup_window_seconds: float = Field(default=300, gt=0, alias="DEDUP_WINDOW_SECONDS")
    milestone_window_seconds: float = Field(default=3600, gt=0, alias="MILESTONE_WINDOW_SECONDS")
    sweep_interval_seconds: float = Field(default=60, gt=0, alias="SWEEP_INTERVAL_SECONDS")

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO", alias="LOG_LEVEL")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        alias="LOG_FORMAT"
    )
    log_dir: str = Field(default="data/logs", alias="LOG_DIR")
    enable_file: bool = Field(default=False, alias="LOG_ENABLE_FILE")
    max_file_size: int = Field(default=10485760, alias="LOG_MAX_FILE_SIZE")  # 10MB
    backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()


class MetricsConfig(BaseSettings):
    """Prometheus exporter configuration."""

    enabled: bool = Field(default=False, alias="METRICS_ENABLED")
    port: int = Field(default=9108, alias="METRICS_PORT")

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class Config(BaseSettings):
    """Main configuration class."""

    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")
    service_name: str = Field(default="notification_relay", alias="SERVICE_NAME")

    @property
    def supabase(self) -> SupabaseConfig:
        """Get Supabase configuration."""
        return SupabaseConfig(**{})

    @property
    def telegram(self) -> TelegramConfig:
        """Get Telegram configuration."""
        return TelegramConfig(**{})

    @property
    def sqs(self) -> SQSConfig:
        """Get SQS configuration."""
        return SQSConfig(**{})

    @property
    def relay(self) -> RelayConfig:
        """Get dedup/milestone configuration."""
        return RelayConfig(**{})

    @property
    def logging(self) -> LoggingConfig:
        """Get logging configuration."""
        return LoggingConfig(**{})

    @property
    def metrics(self) -> MetricsConfig:
        """Get metrics configuration."""
        return MetricsConfig(**{})

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        """Validate environment."""
        valid_envs = ["development", "testing", "staging", "production"]
        if v not in valid_envs:
            raise ValueError(f"Invalid environment. Must be one of: {valid_envs}")
        return v

    def validate_sections(self, sections: Sequence[str] = ALL_SECTIONS) -> None:
        """
        Instantiate the given sections so missing or invalid settings fail now.

        Args:
            sections: Section property names, all of them by default

        Raises:
            ConfigurationError: listing every offending environment variable
        """
        problems: List[str] = []
        for section in sections:
            try:
                getattr(self, section)
            except ValidationError as e:
                for error in e.errors():
                    location = ".".join(str(part) for part in error.get("loc", ()))
                    problems.append(f"{location}: {error.get('msg', 'invalid')}")

        if problems:
            raise ConfigurationError(
                f"Invalid configuration: {', '.join(problems)}", problems
            )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


def load_config(sections: Sequence[str] = ALL_SECTIONS) -> Config:
    """Load configuration from the environment and validate it."""
    try:
        config = Config()
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
            for error in e.errors()
        ]
        raise ConfigurationError(
            f"Invalid configuration: {', '.join(problems)}", problems
        ) from e
    config.validate_sections(sections)
    return config
