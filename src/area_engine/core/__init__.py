"""Core modules for the AREA workflow engine.

This package contains the cross-cutting functionality including:
- Configuration management
- Logging utilities
- The persisted per-workflow circuit breaker policy
- The engine exception hierarchy
"""

from .circuit_breaker import (
    CIRCUIT_OPEN_REASON,
    CircuitBreakerConfig,
    CircuitState,
    circuit_state,
)
from .config import (
    DatabaseConfig,
    EngineConfig,
    HTTPClientConfig,
    LoggingConfig,
    PollingLoopConfig,
    RetryPolicyConfig,
    SchedulerConfig,
    ServiceEndpointsConfig,
)
from .exceptions import (
    AreaEngineError,
    DuplicateExecutorError,
    InvalidReactionConfigError,
    NoExecutorFoundError,
    PermanentSinkError,
    SinkError,
    TransientSinkError,
    TransientSourceError,
    WorkflowParseError,
)
from .logger import get_logger, setup_logging

__all__ = [
    "CIRCUIT_OPEN_REASON",
    "AreaEngineError",
    "CircuitBreakerConfig",
    "CircuitState",
    "DatabaseConfig",
    "DuplicateExecutorError",
    "EngineConfig",
    "HTTPClientConfig",
    "InvalidReactionConfigError",
    "LoggingConfig",
    "NoExecutorFoundError",
    "PermanentSinkError",
    "PollingLoopConfig",
    "RetryPolicyConfig",
    "SchedulerConfig",
    "ServiceEndpointsConfig",
    "SinkError",
    "TransientSinkError",
    "TransientSourceError",
    "WorkflowParseError",
    "circuit_state",
    "get_logger",
    "setup_logging",
]
