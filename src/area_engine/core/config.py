"""Configuration management for the AREA workflow engine.

This module provides configuration models and loading functionality using Pydantic
for validation and type safety.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .circuit_breaker import CircuitBreakerConfig

_DOTENV_LOADED = False


def _load_env_once() -> None:
    """Load environment variables from a .env file exactly once."""

    global _DOTENV_LOADED
    if not _DOTENV_LOADED:
        load_dotenv()
        _DOTENV_LOADED = True


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in configuration data."""

    if isinstance(data, str):
        return os.path.expandvars(data)
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    return data


class RetryPolicyConfig(BaseModel):
    """Configuration for HTTP retry behaviour inside service clients."""

    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Maximum number of attempts (including the first request)",
    )
    backoff_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Initial delay in seconds before retrying",
    )
    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplier applied to the backoff delay after each failure",
    )
    max_backoff_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="Maximum delay cap between retries",
    )


class HTTPClientConfig(BaseModel):
    """Default HTTP client configuration for the service clients."""

    timeout: float = Field(default=10.0, ge=0.0, description="Default HTTP timeout")
    retry: RetryPolicyConfig = Field(
        default_factory=RetryPolicyConfig,
        description="Retry policy for retriable (5xx / network) failures",
    )


class ServiceEndpointsConfig(BaseModel):
    """Base URLs of the external services."""

    gmail_base_url: str = Field(default="https://gmail.googleapis.com")
    github_base_url: str = Field(default="https://api.github.com")
    discord_base_url: str = Field(default="https://discord.com/api/v10")
    gmail_max_results: int = Field(default=10, ge=1, le=500)
    github_max_results: int = Field(default=10, ge=1, le=100)


class PollingLoopConfig(BaseModel):
    """Configuration for one fixed-delay polling loop."""

    enabled: bool = Field(default=True, description="Enable this polling loop")
    interval_seconds: float = Field(
        default=60.0, gt=0.0, description="Delay between the end of a cycle and the next start"
    )
    initial_delay_seconds: float = Field(
        default=30.0, ge=0.0, description="Delay before the first cycle"
    )
    max_concurrency: int = Field(
        default=5, description="Maximum number of workflows evaluated concurrently"
    )
    cycle_timeout_seconds: float = Field(
        default=120.0, gt=0.0, description="Whole-cycle timeout; unstarted workflows are deferred"
    )

    @field_validator("max_concurrency")
    @classmethod
    def validate_max_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_concurrency must be at least 1")
        return value


def _default_timer_polling() -> PollingLoopConfig:
    return PollingLoopConfig(
        interval_seconds=60.0,
        initial_delay_seconds=10.0,
        max_concurrency=10,
        cycle_timeout_seconds=60.0,
    )


class DatabaseConfig(BaseModel):
    """Configuration for the persistence layer."""

    url: str = Field(default="sqlite:///./area_engine.db", description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Echo SQL statements (debugging)")
    create_tables: bool = Field(default=True, description="Create missing tables on startup")


class SchedulerConfig(BaseModel):
    """Configuration for the APScheduler backend."""

    timezone: str = Field(default="UTC", description="Timezone for jobs")
    max_workers: int = Field(default=2, description="Maximum thread pool workers")

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_workers must be at least 1")
        return value


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    log_file: str | None = Field(default=None, description="Log file path")
    max_bytes: int = Field(default=10485760, description="Max log file size (10MB)")
    backup_count: int = Field(default=5, description="Number of backup files")
    quiet_libraries: list[str] = Field(
        default_factory=lambda: ["httpx", "httpcore", "apscheduler"],
        description="Library loggers held at WARNING unless level is DEBUG",
    )

    @field_validator("level")
    @classmethod
    def normalise_level(cls, value: str) -> str:
        level = (value or "INFO").strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return level


class EngineConfig(BaseSettings):
    """Main configuration for the workflow engine."""

    model_config = SettingsConfigDict(
        env_prefix="AREA_ENGINE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
    polling: PollingLoopConfig = Field(
        default_factory=PollingLoopConfig, description="Workflow polling loop"
    )
    timer_polling: PollingLoopConfig = Field(
        default_factory=_default_timer_polling, description="Timer workflow polling loop"
    )
    scheduler: SchedulerConfig = Field(
        default_factory=SchedulerConfig, description="Scheduler backend configuration"
    )
    circuit_breaker: CircuitBreakerConfig = Field(
        default_factory=CircuitBreakerConfig, description="Per-workflow circuit breaker"
    )
    http: HTTPClientConfig = Field(
        default_factory=HTTPClientConfig, description="Default HTTP client settings"
    )
    services: ServiceEndpointsConfig = Field(
        default_factory=ServiceEndpointsConfig, description="External service endpoints"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> EngineConfig:
        """Load configuration from a YAML file."""

        _load_env_once()
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as handle:
            try:
                config_data = yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                raise ValueError(f"Invalid YAML in config file: {exc}") from exc

        if not config_data:
            config_data = {}

        config_data = _expand_env_vars(config_data)
        return cls(**config_data)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""

        return self.model_dump()
