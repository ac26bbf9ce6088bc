"""Adapter between the generic workflow document and per-service executors.

Executors never see the raw JSON. They receive a :class:`WorkflowView` (the
trigger side) or a :class:`ReactionView` (one per reaction), which resolve
connections and typed step configs with fixed alias precedence.
"""

from __future__ import annotations

from typing import Protocol

from ..storage.models import ServiceConnection
from .context import TriggerContext
from .state import TriggerStateSnapshot
from .step_configs import (
    DiscordReactionConfig,
    GitHubReactionConfig,
    GitHubTriggerConfig,
    GmailTriggerConfig,
    TimerConfig,
)
from .workflow import ReactionDescriptor, TriggerDescriptor, WorkflowDocument

# (collection key, count key) pairs that signal new items
FIRE_SIGNALS = (
    ("newMessages", "messageCount"),
    ("newIssues", "issueCount"),
    ("newPRs", "prCount"),
)
COUNT_KEYS = ("messageCount", "issueCount", "prCount")


class ConnectionStore(Protocol):
    def find_connection_by_id(self, connection_id: int) -> ServiceConnection | None: ...


class WorkflowView:
    """Trigger-side view of one workflow for one evaluation pass."""

    def __init__(
        self,
        workflow_id: int,
        document: WorkflowDocument,
        state: TriggerStateSnapshot,
        connections: ConnectionStore,
        trigger_connection_id: int | None = None,
        reaction_connection_id: int | None = None,
        name: str | None = None,
    ) -> None:
        self.workflow_id = workflow_id
        self.document = document
        self.state = state
        self.name = name
        self._connections = connections
        self._trigger_connection_id = trigger_connection_id
        self._reaction_connection_id = reaction_connection_id

    @property
    def trigger(self) -> TriggerDescriptor:
        if self.document.trigger is None:
            raise ValueError(f"Workflow {self.workflow_id} has no trigger")
        return self.document.trigger

    @property
    def reactions(self) -> list[ReactionDescriptor]:
        return self.document.actions

    def _lookup(self, connection_id: int | None) -> ServiceConnection | None:
        if connection_id is None:
            return None
        return self._connections.find_connection_by_id(connection_id)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def action_connection(self) -> ServiceConnection | None:
        """Workflow's own trigger connection, else the trigger's ``connectionId``."""
        connection_id = self._trigger_connection_id
        if connection_id is None:
            connection_id = self.trigger.connection_id
        return self._lookup(connection_id)

    def reaction_connection(self) -> ServiceConnection | None:
        """Workflow's own reaction connection, else the first reaction's ``connectionId``."""
        return self._lookup(self.default_reaction_connection_id())

    def default_reaction_connection_id(self) -> int | None:
        if self._reaction_connection_id is not None:
            return self._reaction_connection_id
        if self.reactions:
            return self.reactions[0].connection_id
        return None

    # ------------------------------------------------------------------
    # Typed configs
    # ------------------------------------------------------------------

    def gmail_config(self) -> GmailTriggerConfig:
        return GmailTriggerConfig.from_mapping(self.trigger.config)

    def github_trigger_config(self) -> GitHubTriggerConfig:
        return GitHubTriggerConfig.from_mapping(self.trigger.config)

    def timer_config(self) -> TimerConfig:
        return TimerConfig.from_mapping(self.trigger.type_name, self.trigger.config)

    def discord_config(self) -> DiscordReactionConfig:
        config = self.reactions[0].config if self.reactions else {}
        return DiscordReactionConfig.from_mapping(config)

    def github_reaction_config(self) -> GitHubReactionConfig:
        config = self.reactions[0].config if self.reactions else {}
        return GitHubReactionConfig.from_mapping(config)

    def reaction_view(self, index: int) -> ReactionView:
        return ReactionView(self, self.reactions[index], index)

    def __repr__(self) -> str:
        return f"WorkflowView(workflow_id={self.workflow_id}, trigger={self.trigger.full_type()})"


class ReactionView:
    """View of a single reaction; configs come from that reaction only."""

    def __init__(self, workflow: WorkflowView, reaction: ReactionDescriptor, index: int) -> None:
        self.workflow = workflow
        self.reaction = reaction
        self.index = index

    @property
    def workflow_id(self) -> int:
        return self.workflow.workflow_id

    @property
    def state(self) -> TriggerStateSnapshot:
        return self.workflow.state

    @property
    def reaction_type(self) -> str:
        return self.reaction.full_type()

    def action_connection(self) -> ServiceConnection | None:
        return self.workflow.action_connection()

    def reaction_connection(self) -> ServiceConnection | None:
        """The reaction's own ``connectionId``, else the workflow-level fallback."""
        if self.reaction.connection_id is not None:
            return self.workflow._lookup(self.reaction.connection_id)
        return self.workflow.reaction_connection()

    def gmail_config(self) -> GmailTriggerConfig:
        return self.workflow.gmail_config()

    def github_trigger_config(self) -> GitHubTriggerConfig:
        return self.workflow.github_trigger_config()

    def timer_config(self) -> TimerConfig:
        return self.workflow.timer_config()

    def discord_config(self) -> DiscordReactionConfig:
        return DiscordReactionConfig.from_mapping(self.reaction.config)

    def github_reaction_config(self) -> GitHubReactionConfig:
        return GitHubReactionConfig.from_mapping(self.reaction.config)


def _positive_count(context: TriggerContext, count_key: str) -> bool:
    count = context.get_int(count_key)
    return count is not None and count > 0


def has_fired(context: TriggerContext) -> bool:
    """Decide whether a trigger context represents new activity.

    True when one of the collection/count pairs is present with a positive
    count, or when a timer context carries ``triggered=True``. Anything else,
    including an empty context, means "did not fire".
    """
    for collection_key, count_key in FIRE_SIGNALS:
        if context.has(collection_key) and _positive_count(context, count_key):
            return True
    return context.get("triggered") is True


def is_timer_not_due(context: TriggerContext) -> bool:
    """True when a timer reported that its interval has not elapsed yet."""
    return context.get("triggered") is False


def extract_last_item_id(context: TriggerContext) -> str | None:
    """Return the cursor to persist after a successful fire."""
    message_id = context.get_str("messageId")
    if message_id:
        return message_id
    if context.has("issueNumber") and context.get("issueNumber") is not None:
        return f"issue:{context.get('issueNumber')}"
    if context.has("prNumber") and context.get("prNumber") is not None:
        return f"pr:{context.get('prNumber')}"
    return None


def trigger_count(context: TriggerContext) -> int:
    for key in COUNT_KEYS:
        value = context.get_int(key)
        if value is not None:
            return value
    return 1


def build_execution_details(document: WorkflowDocument, context: TriggerContext) -> str:
    """Summarise a successful run, e.g. ``Trigger: gmail.email_received | Subject: Hi | ...``."""
    parts: list[str] = []
    if document.trigger is not None:
        parts.append(f"Trigger: {document.trigger.full_type()}")
    if context.has("subject"):
        parts.append(f"Subject: {context.get_str('subject')}")
    if context.has("issueTitle"):
        parts.append(f"Issue: {context.get_str('issueTitle')}")
    if context.has("prTitle"):
        parts.append(f"PR: {context.get_str('prTitle')}")
    if context.has("daysUntilMessage"):
        parts.append(f"Timer: {context.get_str('daysUntilMessage')}")
    parts.append(f"Actions executed: {len(document.actions)}")
    return " | ".join(parts)
