"""Tests for the persisted circuit breaker policy."""

from __future__ import annotations

import pytest

from area_engine.core import CircuitBreakerConfig, CircuitState, circuit_state


class TestCircuitState:
    """Tests for circuit_state."""

    @pytest.mark.parametrize(
        ("failures", "expected"),
        [
            (0, CircuitState.CLOSED),
            (4, CircuitState.CLOSED),
            (5, CircuitState.OPEN),
            (12, CircuitState.OPEN),
        ],
    )
    def test_default_threshold(self, failures, expected):
        assert circuit_state(failures, CircuitBreakerConfig()) is expected

    def test_custom_threshold(self):
        config = CircuitBreakerConfig(failure_threshold=1)
        assert circuit_state(1, config) is CircuitState.OPEN

    def test_state_values(self):
        assert CircuitState.OPEN.value == "open"
        assert CircuitState.CLOSED == "closed"
