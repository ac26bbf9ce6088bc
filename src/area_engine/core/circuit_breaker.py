"""Per-workflow circuit breaker policy.

Unlike an in-memory breaker, the failure counter lives in the persisted
trigger state, so the breaker survives restarts and is shared by every
process polling the same database. There is no half-open state: the breaker
closes only when the workflow fires successfully or is reset by hand.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

CIRCUIT_OPEN_REASON = "Circuit breaker open - too many consecutive failures"


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"


class CircuitBreakerConfig(BaseModel):
    """Configuration for the workflow circuit breaker."""

    failure_threshold: int = Field(
        default=5, ge=1, description="Consecutive failures before the breaker opens"
    )


def circuit_state(consecutive_failures: int, config: CircuitBreakerConfig) -> CircuitState:
    """Return the breaker state for a failure count."""
    if consecutive_failures >= config.failure_threshold:
        return CircuitState.OPEN
    return CircuitState.CLOSED
