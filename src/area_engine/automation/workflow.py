"""Workflow document model.

A workflow's ``workflow_data`` column holds a JSON document of the form::

    {
        "trigger": {"service": "gmail", "type": "email_received",
                    "config": {...}, "connectionId": 3},
        "actions": [
            {"service": "discord", "type": "send_message", "config": {...}}
        ]
    }

``type`` and ``connectionId`` may be null; the effective type then comes from
well-known config keys.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.exceptions import WorkflowParseError

TRIGGER_TYPE_KEYS = ("actionType",)
REACTION_TYPE_KEYS = ("reactionType", "type")


class StepDescriptor(BaseModel):
    """One trigger or reaction entry of a workflow document."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    service: str
    type: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    connection_id: int | None = Field(default=None, alias="connectionId")

    @field_validator("service")
    @classmethod
    def validate_service(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("service must not be blank")
        return value.strip()

    @field_validator("config", mode="before")
    @classmethod
    def default_config(cls, value: Any) -> Any:
        return {} if value is None else value

    def full_type(self, fallback_keys: tuple[str, ...] = ()) -> str:
        """Return the registry key ``service.type`` in lower case.

        Args:
            fallback_keys: Config keys consulted in order when ``type`` is absent

        Returns:
            The normalised type. A type already prefixed with the service is
            not prefixed twice; an unresolvable type yields ``service.null``.
        """
        service = self.service.lower()
        step_type = self.type
        if not step_type:
            for key in fallback_keys:
                candidate = self.config.get(key)
                if isinstance(candidate, str) and candidate.strip():
                    step_type = candidate
                    break

        if not step_type:
            return f"{service}.null"

        step_type = step_type.strip().lower()
        if step_type.startswith(f"{service}."):
            return step_type
        return f"{service}.{step_type}"

    @property
    def type_name(self) -> str:
        """The part of the full type after the service prefix."""
        return self.full_type().split(".", 1)[1]


class TriggerDescriptor(StepDescriptor):
    def full_type(self, fallback_keys: tuple[str, ...] = TRIGGER_TYPE_KEYS) -> str:
        return super().full_type(fallback_keys)


class ReactionDescriptor(StepDescriptor):
    def full_type(self, fallback_keys: tuple[str, ...] = REACTION_TYPE_KEYS) -> str:
        return super().full_type(fallback_keys)


class WorkflowDocument(BaseModel):
    """Parsed ``workflow_data`` document."""

    model_config = ConfigDict(extra="ignore")

    trigger: TriggerDescriptor | None = None
    actions: list[ReactionDescriptor] = Field(default_factory=list)

    @field_validator("actions", mode="before")
    @classmethod
    def default_actions(cls, value: Any) -> Any:
        return [] if value is None else value


def parse_workflow_data(raw: str | None, workflow_id: int | None = None) -> WorkflowDocument:
    """Parse and validate a workflow document.

    Args:
        raw: JSON text from the workflow row
        workflow_id: Used for error context only

    Returns:
        The parsed document, guaranteed to carry a trigger

    Raises:
        WorkflowParseError: If the text is blank, not JSON, malformed, or has no trigger
    """
    if raw is None or not raw.strip():
        raise WorkflowParseError("Invalid workflow data: document is empty", workflow_id)

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise WorkflowParseError(f"Failed to parse workflow data: {exc}", workflow_id) from exc

    if not isinstance(payload, dict):
        raise WorkflowParseError(
            "Failed to parse workflow data: top-level value must be an object", workflow_id
        )

    try:
        document = WorkflowDocument.model_validate(payload)
    except ValidationError as exc:
        raise WorkflowParseError(f"Failed to parse workflow data: {exc}", workflow_id) from exc

    if document.trigger is None:
        raise WorkflowParseError(
            "Invalid workflow data: missing trigger configuration", workflow_id
        )
    return document


def trigger_service_of(raw: str | None) -> str | None:
    """Return the lower-cased trigger service of a document, or None if unparseable."""
    try:
        document = parse_workflow_data(raw)
    except WorkflowParseError:
        return None
    return document.trigger.service.lower() if document.trigger else None
