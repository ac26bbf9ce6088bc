"""Stores used by the polling engine.

Each repository opens a short session per call through
:class:`DatabaseManager`; returned ORM objects are detached snapshots.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..core.logger import get_logger
from .database import DatabaseManager
from .models import (
    ExecutionLogEntry,
    ExecutionStatus,
    ServiceConnection,
    TriggerState,
    Workflow,
    utcnow,
)

logger = get_logger("storage.repositories")


class WorkflowRepository:
    """Read access to workflows. The engine never writes them."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def find_active_workflows(self) -> list[Workflow]:
        with self._db.get_session() as session:
            stmt = select(Workflow).where(Workflow.active.is_(True)).order_by(Workflow.id)
            return list(session.scalars(stmt))

    def find_by_id(self, workflow_id: int) -> Workflow | None:
        with self._db.get_session() as session:
            return session.get(Workflow, workflow_id)

    def find_all(self) -> list[Workflow]:
        with self._db.get_session() as session:
            return list(session.scalars(select(Workflow).order_by(Workflow.id)))

    def add(self, workflow: Workflow) -> Workflow:
        """Persist a new workflow (used by seeding tools and tests)."""
        with self._db.get_session() as session:
            session.add(workflow)
            session.flush()
            return workflow


class ConnectionRepository:
    """Lookup of stored service connections."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def find_connection_by_id(self, connection_id: int) -> ServiceConnection | None:
        with self._db.get_session() as session:
            return session.get(ServiceConnection, connection_id)

    def add(self, connection: ServiceConnection) -> ServiceConnection:
        with self._db.get_session() as session:
            session.add(connection)
            session.flush()
            return connection


class TriggerStateRepository:
    """Persistence for per-workflow trigger state.

    Counter updates are single UPDATE statements so that concurrent
    evaluations of the same workflow never lose an increment.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def find_by_workflow_id(self, workflow_id: int) -> TriggerState | None:
        with self._db.get_session() as session:
            stmt = select(TriggerState).where(TriggerState.workflow_id == workflow_id)
            return session.scalars(stmt).first()

    def get_or_create(self, workflow_id: int) -> TriggerState:
        """Return the state row of a workflow, creating it if needed.

        Two callers racing on the same workflow both end up with the single
        row: the loser's insert fails on the unique constraint and it re-reads.
        """
        with self._db.get_session() as session:
            stmt = select(TriggerState).where(TriggerState.workflow_id == workflow_id)
            state = session.scalars(stmt).first()
            if state is not None:
                return state

            try:
                with session.begin_nested():
                    state = TriggerState(
                        workflow_id=workflow_id,
                        last_unread_count=0,
                        consecutive_failures=0,
                    )
                    session.add(state)
            except IntegrityError:
                logger.debug("Trigger state for workflow %s created concurrently", workflow_id)
                state = session.scalars(stmt).first()
                if state is None:
                    raise
            return state

    def update_fields(self, workflow_id: int, **values: Any) -> int:
        """Set columns of a workflow's state row. Returns the affected row count."""
        with self._db.get_session() as session:
            result = session.execute(
                update(TriggerState)
                .where(TriggerState.workflow_id == workflow_id)
                .values(**values)
            )
            return result.rowcount

    def increment_failures(self, workflow_id: int, message: str | None, checked_at: datetime) -> int:
        with self._db.get_session() as session:
            result = session.execute(
                update(TriggerState)
                .where(TriggerState.workflow_id == workflow_id)
                .values(
                    consecutive_failures=TriggerState.consecutive_failures + 1,
                    last_checked_at=checked_at,
                    last_error_message=message,
                )
            )
            return result.rowcount


class ExecutionLogRepository:
    """Append-only store of execution log entries."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def log_execution(
        self,
        workflow_id: int,
        status: ExecutionStatus | str,
        trigger_service: str | None,
        trigger_action: str | None,
        actions_executed: int,
        details: str | None,
        duration_ms: int,
        trigger_count: int,
    ) -> None:
        """Insert one log entry.

        ``details`` is stored as execution details for SUCCESS and SKIPPED
        entries and as the error message for FAILURE entries.
        """
        entry = ExecutionLogEntry(
            workflow_id=workflow_id,
            executed_at=utcnow(),
            status=ExecutionStatus(status).value,
            trigger_service=trigger_service,
            trigger_action=trigger_action,
            trigger_count=trigger_count,
            actions_executed=actions_executed,
            execution_time_ms=duration_ms,
        )
        if ExecutionStatus(status) is ExecutionStatus.FAILURE:
            entry.error_message = details
        else:
            entry.execution_details = details

        with self._db.get_session() as session:
            session.add(entry)

    def recent(self, workflow_id: int | None = None, limit: int = 20) -> list[ExecutionLogEntry]:
        with self._db.get_session() as session:
            stmt = select(ExecutionLogEntry)
            if workflow_id is not None:
                stmt = stmt.where(ExecutionLogEntry.workflow_id == workflow_id)
            stmt = stmt.order_by(ExecutionLogEntry.id.desc()).limit(limit)
            return list(session.scalars(stmt))
