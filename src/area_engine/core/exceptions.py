"""Exceptions raised by the workflow engine.

Every workflow-level error is caught by the orchestrator and recorded through
the trigger state service; none of these propagate out of a polling cycle.
"""

from __future__ import annotations


class AreaEngineError(Exception):
    """Base exception for workflow engine errors."""

    pass


class WorkflowParseError(AreaEngineError):
    """Raised when a workflow document is missing or malformed."""

    def __init__(self, message: str, workflow_id: int | None = None) -> None:
        self.workflow_id = workflow_id
        super().__init__(message)


class NoExecutorFoundError(AreaEngineError):
    """Raised when no executor is registered for a trigger or reaction type."""

    def __init__(self, kind: str, executor_type: str) -> None:
        """Initialize the exception.

        Args:
            kind: "action" or "reaction"
            executor_type: The full type string that was looked up
        """
        self.kind = kind
        self.executor_type = executor_type
        super().__init__(f"No {kind} executor found for type: {executor_type}")


class DuplicateExecutorError(AreaEngineError):
    """Raised at registry build time when two executors claim the same type."""

    def __init__(self, kind: str, executor_type: str) -> None:
        self.kind = kind
        self.executor_type = executor_type
        super().__init__(f"Duplicate {kind} executor for type: {executor_type}")


class TransientSourceError(AreaEngineError):
    """Raised by a service client when fetching trigger items fails."""

    def __init__(self, message: str, service: str, status_code: int | None = None) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(message)


class SinkError(AreaEngineError):
    """Raised when delivering a reaction to an external sink fails.

    ``retriable`` tells the client's backoff policy whether another attempt
    can succeed: 4xx responses are permanent, 5xx and network errors are not.
    """

    retriable: bool = True

    def __init__(self, message: str, service: str, status_code: int | None = None) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(message)


class TransientSinkError(SinkError):
    """Sink failed with a 5xx response or a network error."""

    retriable = True


class PermanentSinkError(SinkError):
    """Sink rejected the request (4xx); retrying will not help."""

    retriable = False


class InvalidReactionConfigError(AreaEngineError):
    """Raised when a reaction is missing a required configuration field."""

    def __init__(self, reaction_type: str, message: str) -> None:
        self.reaction_type = reaction_type
        super().__init__(message)
