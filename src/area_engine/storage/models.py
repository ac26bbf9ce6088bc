"""Database models for workflows, connections and polling state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes.

    SQLite returns naive datetimes even when timezone=True is set.
    """
    if value is None:
        return None
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ExecutionStatus(str, Enum):
    """Status of one workflow evaluation in the execution log."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    SKIPPED = "SKIPPED"


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class ServiceConnection(Base):
    """Credentials and metadata for one connected external service account.

    Attributes:
        id: Primary key
        service_type: gmail, github, discord or timer
        access_token: Opaque token handed to the service client
        refresh_token: Optional refresh token (refresh itself is out of scope)
        metadata_json: Service-specific JSON blob, e.g. Discord ``{"channelId": "..."}``
    """

    __tablename__ = "service_connections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    service_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<ServiceConnection(id={self.id}, service_type='{self.service_type}')>"


class Workflow(Base):
    """A user workflow: one trigger plus an ordered list of reactions.

    ``workflow_data`` holds the JSON document; the orchestrator only reads it.
    """

    __tablename__ = "workflows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    workflow_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    trigger_connection_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("service_connections.id", ondelete="SET NULL"), nullable=True
    )
    reaction_connection_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("service_connections.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    trigger_state: Mapped[Optional[TriggerState]] = relationship(
        back_populates="workflow", cascade="all, delete-orphan", uselist=False
    )
    execution_logs: Mapped[list[ExecutionLogEntry]] = relationship(
        back_populates="workflow", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Workflow(id={self.id}, name='{self.name}', active={self.active})>"


class TriggerState(Base):
    """Persisted polling state of one workflow (exactly one row per workflow).

    Attributes:
        last_processed_item_id: Cursor of the newest item already handled
        last_unread_count: Number of items in the last successful fire
        last_checked_at: Last time the trigger was evaluated
        last_triggered_at: Last time the workflow fired successfully
        consecutive_failures: Failures since the last success or manual reset
        last_error_message: Most recent failure message (at most 1000 chars)
    """

    __tablename__ = "workflow_trigger_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    workflow_id: Mapped[int] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    last_processed_item_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_unread_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_triggered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    consecutive_failures: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error_message: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    workflow: Mapped[Workflow] = relationship(back_populates="trigger_state")

    def __repr__(self) -> str:
        return (
            f"<TriggerState(workflow_id={self.workflow_id}, "
            f"failures={self.consecutive_failures})>"
        )


class ExecutionLogEntry(Base):
    """One row per workflow evaluation. Insert only."""

    __tablename__ = "workflow_execution_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    workflow_id: Mapped[int] = mapped_column(
        ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True
    )
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    trigger_service: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    trigger_action: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    trigger_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    actions_executed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    execution_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    execution_time_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    workflow: Mapped[Workflow] = relationship(back_populates="execution_logs")

    def to_dict(self) -> dict[str, Any]:
        """Convert the entry to a dictionary.

        Returns:
            Dictionary representation of the log entry
        """
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "status": self.status,
            "trigger_service": self.trigger_service,
            "trigger_action": self.trigger_action,
            "trigger_count": self.trigger_count,
            "actions_executed": self.actions_executed,
            "execution_details": self.execution_details,
            "error_message": self.error_message,
            "execution_time_ms": self.execution_time_ms,
        }
