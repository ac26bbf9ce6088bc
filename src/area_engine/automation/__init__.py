"""Workflow automation: triggers, reactions and the polling orchestrator.

This module provides:
- TriggerContext: values produced by one trigger evaluation
- Action (trigger) and reaction executors for Gmail, GitHub, Discord and timers
- Executor registries keyed by ``service.type``
- The workflow document model and the adapter executors see it through
- TriggerStateService: per-workflow cursor and circuit breaker state
- PollingOrchestrator: one polling cycle over the active workflows
"""

from .adapter import (
    ReactionView,
    WorkflowView,
    build_execution_details,
    extract_last_item_id,
    has_fired,
    is_timer_not_due,
    trigger_count,
)
from .context import TriggerContext
from .orchestrator import (
    CycleReport,
    PollingOrchestrator,
    PollingStatus,
    WorkflowOutcome,
    WorkflowResult,
)
from .reactions import (
    BaseReactionExecutor,
    DiscordSendMessageExecutor,
    DiscordSendWebhookExecutor,
    GitHubCreateIssueExecutor,
    GitHubCreatePullRequestExecutor,
)
from .registry import ActionExecutorRegistry, ExecutorRegistry, ReactionExecutorRegistry
from .state import TriggerStateService, TriggerStateSnapshot
from .templating import render_template
from .triggers import (
    BaseActionExecutor,
    GitHubIssueCreatedExecutor,
    GitHubPullRequestCreatedExecutor,
    GmailEmailReceivedExecutor,
    TimerActionExecutor,
    timer_executors,
)
from .workflow import (
    ReactionDescriptor,
    StepDescriptor,
    TriggerDescriptor,
    WorkflowDocument,
    parse_workflow_data,
    trigger_service_of,
)

__all__ = [
    # Context & adapter
    "TriggerContext",
    "WorkflowView",
    "ReactionView",
    "has_fired",
    "is_timer_not_due",
    "extract_last_item_id",
    "trigger_count",
    "build_execution_details",
    "render_template",
    # Documents
    "StepDescriptor",
    "TriggerDescriptor",
    "ReactionDescriptor",
    "WorkflowDocument",
    "parse_workflow_data",
    "trigger_service_of",
    # Executors
    "BaseActionExecutor",
    "GmailEmailReceivedExecutor",
    "GitHubIssueCreatedExecutor",
    "GitHubPullRequestCreatedExecutor",
    "TimerActionExecutor",
    "timer_executors",
    "BaseReactionExecutor",
    "DiscordSendMessageExecutor",
    "DiscordSendWebhookExecutor",
    "GitHubCreateIssueExecutor",
    "GitHubCreatePullRequestExecutor",
    # Registries
    "ExecutorRegistry",
    "ActionExecutorRegistry",
    "ReactionExecutorRegistry",
    # State & orchestration
    "TriggerStateService",
    "TriggerStateSnapshot",
    "PollingOrchestrator",
    "PollingStatus",
    "CycleReport",
    "WorkflowOutcome",
    "WorkflowResult",
]
