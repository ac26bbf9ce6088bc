"""Persistence layer: SQLAlchemy models, session management and stores."""

from .database import DatabaseManager, init_database
from .models import (
    Base,
    ExecutionLogEntry,
    ExecutionStatus,
    ServiceConnection,
    TriggerState,
    Workflow,
)
from .repositories import (
    ConnectionRepository,
    ExecutionLogRepository,
    TriggerStateRepository,
    WorkflowRepository,
)

__all__ = [
    "Base",
    "ConnectionRepository",
    "DatabaseManager",
    "ExecutionLogEntry",
    "ExecutionLogRepository",
    "ExecutionStatus",
    "ServiceConnection",
    "TriggerState",
    "TriggerStateRepository",
    "Workflow",
    "WorkflowRepository",
    "init_database",
]
