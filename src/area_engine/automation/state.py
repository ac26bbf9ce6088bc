"""Per-workflow trigger state service.

The service is the only writer of trigger state. It decides when a workflow
is skipped because its breaker is open, advances the processed-item cursor
after a successful fire, and counts failures.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..core.circuit_breaker import CircuitBreakerConfig, CircuitState, circuit_state
from ..core.logger import get_logger
from ..storage.models import TriggerState, as_utc, utcnow
from ..storage.repositories import TriggerStateRepository

logger = get_logger("automation.state")

MAX_ERROR_MESSAGE_LENGTH = 1000


@dataclass(frozen=True)
class TriggerStateSnapshot:
    """Read-only copy of a workflow's trigger state handed to executors."""

    workflow_id: int
    last_processed_item_id: str | None = None
    last_unread_count: int = 0
    last_checked_at: datetime | None = None
    last_triggered_at: datetime | None = None
    consecutive_failures: int = 0
    last_error_message: str | None = None

    @classmethod
    def from_model(cls, state: TriggerState) -> TriggerStateSnapshot:
        return cls(
            workflow_id=state.workflow_id,
            last_processed_item_id=state.last_processed_item_id,
            last_unread_count=state.last_unread_count or 0,
            last_checked_at=as_utc(state.last_checked_at),
            last_triggered_at=as_utc(state.last_triggered_at),
            consecutive_failures=state.consecutive_failures or 0,
            last_error_message=state.last_error_message,
        )


def truncate_message(message: str | None, limit: int = MAX_ERROR_MESSAGE_LENGTH) -> str | None:
    if message is None:
        return None
    return message if len(message) <= limit else message[:limit]


class TriggerStateService:
    """Owns every mutation of ``workflow_trigger_states``."""

    def __init__(
        self,
        repository: TriggerStateRepository,
        breaker_config: CircuitBreakerConfig | None = None,
    ) -> None:
        self._repository = repository
        self._breaker_config = breaker_config or CircuitBreakerConfig()

    @property
    def failure_threshold(self) -> int:
        return self._breaker_config.failure_threshold

    def get_or_create_state(self, workflow_id: int) -> TriggerState:
        return self._repository.get_or_create(workflow_id)

    def snapshot(self, workflow_id: int) -> TriggerStateSnapshot:
        return TriggerStateSnapshot.from_model(self.get_or_create_state(workflow_id))

    def breaker_state(self, workflow_id: int) -> CircuitState:
        state = self._repository.find_by_workflow_id(workflow_id)
        failures = state.consecutive_failures if state is not None else 0
        return circuit_state(failures, self._breaker_config)

    def should_skip_due_to_failures(self, workflow_id: int) -> bool:
        """True when the workflow has failed too many times in a row.

        There is no time-based recovery; only a successful fire or
        :meth:`reset_failure_count` closes the breaker again.
        """
        state = self.get_or_create_state(workflow_id)
        if circuit_state(state.consecutive_failures, self._breaker_config) is CircuitState.OPEN:
            logger.warning(
                "Skipping workflow %s: %d consecutive failures",
                workflow_id,
                state.consecutive_failures,
            )
            return True
        return False

    def update_checked_time(self, workflow_id: int) -> None:
        self.get_or_create_state(workflow_id)
        self._repository.update_fields(workflow_id, last_checked_at=utcnow())

    def update_state_after_success(
        self, workflow_id: int, last_item_id: str | None, item_count: int
    ) -> None:
        """Record a successful fire and close the breaker.

        Args:
            workflow_id: Workflow that fired
            last_item_id: New cursor; None (timer fires) keeps the current cursor
            item_count: Number of new items that caused the fire
        """
        self.get_or_create_state(workflow_id)
        now = utcnow()
        values = {
            "last_unread_count": item_count,
            "last_checked_at": now,
            "last_triggered_at": now,
            "consecutive_failures": 0,
            "last_error_message": None,
        }
        if last_item_id is not None:
            values["last_processed_item_id"] = last_item_id
        self._repository.update_fields(workflow_id, **values)
        logger.debug(
            "Workflow %s state updated: cursor=%s count=%d", workflow_id, last_item_id, item_count
        )

    def record_failure(self, workflow_id: int, error_message: str | None) -> None:
        """Count a failure. The processed-item cursor is never touched here."""
        self.get_or_create_state(workflow_id)
        self._repository.increment_failures(
            workflow_id, truncate_message(error_message), checked_at=utcnow()
        )
        state = self._repository.find_by_workflow_id(workflow_id)
        failures = state.consecutive_failures if state is not None else 0
        if failures >= self.failure_threshold:
            logger.error(
                "Workflow %s reached %d consecutive failures; circuit breaker is open",
                workflow_id,
                failures,
            )
        else:
            logger.warning(
                "Workflow %s failure %d/%d: %s",
                workflow_id,
                failures,
                self.failure_threshold,
                error_message,
            )

    def reset_failure_count(self, workflow_id: int) -> None:
        self.get_or_create_state(workflow_id)
        self._repository.update_fields(
            workflow_id, consecutive_failures=0, last_error_message=None
        )
        logger.info("Failure count reset for workflow %s", workflow_id)

    def get_last_processed_item_id(self, workflow_id: int) -> str | None:
        state = self._repository.find_by_workflow_id(workflow_id)
        return state.last_processed_item_id if state is not None else None
