"""Tests for configuration management.

Tests cover:
- Polling loop defaults for both loops
- Validation errors
- Environment variable overrides
- YAML loading with ${VAR} expansion
"""

from __future__ import annotations

import pytest
import yaml
from pydantic import ValidationError

from area_engine.core import (
    CircuitBreakerConfig,
    EngineConfig,
    LoggingConfig,
    PollingLoopConfig,
    RetryPolicyConfig,
    SchedulerConfig,
)

# ==============================================================================
# Defaults
# ==============================================================================


class TestDefaults:
    """Tests for default configuration values."""

    def test_workflow_polling_defaults(self):
        """The workflow loop runs every 60s after a 30s warm-up."""
        config = EngineConfig()

        assert config.polling.enabled is True
        assert config.polling.interval_seconds == 60
        assert config.polling.initial_delay_seconds == 30
        assert config.polling.max_concurrency == 5
        assert config.polling.cycle_timeout_seconds == 120

    def test_timer_polling_defaults(self):
        """The timer loop starts sooner and runs more workflows at once."""
        config = EngineConfig()

        assert config.timer_polling.interval_seconds == 60
        assert config.timer_polling.initial_delay_seconds == 10
        assert config.timer_polling.max_concurrency == 10
        assert config.timer_polling.cycle_timeout_seconds == 60

    def test_breaker_and_retry_defaults(self):
        config = EngineConfig()

        assert config.circuit_breaker.failure_threshold == 5
        assert config.http.retry.max_attempts == 3
        assert config.scheduler.timezone == "UTC"
        assert config.services.discord_base_url == "https://discord.com/api/v10"


# ==============================================================================
# Validation
# ==============================================================================


class TestValidation:
    """Tests for field validators."""

    def test_max_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError, match="max_concurrency"):
            PollingLoopConfig(max_concurrency=0)

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            PollingLoopConfig(interval_seconds=0)

    def test_failure_threshold_minimum(self):
        with pytest.raises(ValidationError):
            CircuitBreakerConfig(failure_threshold=0)

    def test_retry_attempts_minimum(self):
        with pytest.raises(ValidationError):
            RetryPolicyConfig(max_attempts=0)

    def test_scheduler_workers_minimum(self):
        with pytest.raises(ValidationError, match="max_workers"):
            SchedulerConfig(max_workers=0)

    def test_log_level_is_normalised(self):
        """Test lowercase levels are accepted."""
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError, match="Unsupported log level"):
            LoggingConfig(level="verbose")


# ==============================================================================
# Environment and YAML
# ==============================================================================


class TestLoading:
    """Tests for environment overrides and YAML files."""

    def test_nested_environment_override(self, monkeypatch):
        """Test AREA_ENGINE_<SECTION>__<FIELD> variables override defaults."""
        monkeypatch.setenv("AREA_ENGINE_POLLING__MAX_CONCURRENCY", "3")
        monkeypatch.setenv("AREA_ENGINE_CIRCUIT_BREAKER__FAILURE_THRESHOLD", "2")

        config = EngineConfig()

        assert config.polling.max_concurrency == 3
        assert config.polling.interval_seconds == 60
        assert config.circuit_breaker.failure_threshold == 2

    def test_from_yaml_expands_variables(self, tmp_path, monkeypatch):
        """Test ${VAR} references are expanded before validation."""
        monkeypatch.setenv("ENGINE_DB_PATH", str(tmp_path / "engine.db"))
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "database": {"url": "sqlite:///${ENGINE_DB_PATH}"},
                    "polling": {"interval_seconds": 15, "max_concurrency": 2},
                    "logging": {"level": "warning"},
                }
            ),
            encoding="utf-8",
        )

        config = EngineConfig.from_yaml(path)

        assert config.database.url == f"sqlite:///{tmp_path / 'engine.db'}"
        assert config.polling.interval_seconds == 15
        assert config.polling.max_concurrency == 2
        assert config.polling.initial_delay_seconds == 30
        assert config.logging.level == "WARNING"

    def test_from_yaml_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert EngineConfig.from_yaml(path).polling.max_concurrency == 5

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Configuration file not found"):
            EngineConfig.from_yaml(tmp_path / "missing.yaml")

    def test_from_yaml_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("polling: [unclosed", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid YAML"):
            EngineConfig.from_yaml(path)

    def test_to_dict(self):
        data = EngineConfig().to_dict()
        assert data["timer_polling"]["max_concurrency"] == 10
        assert set(data) >= {"database", "polling", "scheduler", "logging"}
