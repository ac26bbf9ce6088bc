"""Application wiring for the AREA workflow engine.

Builds the database, stores, service clients, executor registries, the two
polling orchestrators (workflow and timer) and the scheduler that drives them.
"""

from __future__ import annotations

import asyncio
import signal
import threading
from pathlib import Path
from types import FrameType
from typing import Any

from .automation.orchestrator import CycleReport, PollingOrchestrator
from .automation.reactions import (
    BaseReactionExecutor,
    DiscordSendMessageExecutor,
    DiscordSendWebhookExecutor,
    GitHubCreateIssueExecutor,
    GitHubCreatePullRequestExecutor,
)
from .automation.registry import ActionExecutorRegistry, ReactionExecutorRegistry
from .automation.state import TriggerStateService, TriggerStateSnapshot
from .automation.triggers import (
    BaseActionExecutor,
    GitHubIssueCreatedExecutor,
    GitHubPullRequestCreatedExecutor,
    GmailEmailReceivedExecutor,
    timer_executors,
)
from .automation.workflow import trigger_service_of
from .core.circuit_breaker import CircuitState
from .core.config import EngineConfig
from .core.logger import get_logger, setup_logging
from .scheduler.scheduler import PollingScheduler
from .services.discord import DiscordClient
from .services.github import GitHubClient
from .services.gmail import GmailClient
from .storage.database import DatabaseManager
from .storage.models import Workflow
from .storage.repositories import (
    ConnectionRepository,
    ExecutionLogRepository,
    TriggerStateRepository,
    WorkflowRepository,
)

logger = get_logger("engine")

WORKFLOW_LOOP = "workflow"
TIMER_LOOP = "timer"


def is_timer_workflow(workflow: Workflow) -> bool:
    return trigger_service_of(workflow.workflow_data) == "timer"


def is_polled_workflow(workflow: Workflow) -> bool:
    # Unparseable documents stay here so their failures are recorded
    return not is_timer_workflow(workflow)


class AreaEngine:
    """The assembled workflow engine."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        db: DatabaseManager | None = None,
        action_executors: list[BaseActionExecutor] | None = None,
        reaction_executors: list[BaseReactionExecutor] | None = None,
        scheduler: PollingScheduler | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Engine configuration; defaults plus environment when omitted
            db: Database manager to use instead of one built from ``config.database``
            action_executors: Replaces the built-in trigger executors
            reaction_executors: Replaces the built-in reaction executors
            scheduler: Replaces the APScheduler-backed polling scheduler
        """
        self.config = config or EngineConfig()
        self.db = db or DatabaseManager(self.config.database.url, echo=self.config.database.echo)
        if self.config.database.create_tables:
            self.db.create_tables()

        self.workflows = WorkflowRepository(self.db)
        self.connections = ConnectionRepository(self.db)
        self.execution_log = ExecutionLogRepository(self.db)
        self.trigger_states = TriggerStateRepository(self.db)
        self.state_service = TriggerStateService(self.trigger_states, self.config.circuit_breaker)

        services = self.config.services
        self.gmail = GmailClient(services.gmail_base_url, self.config.http, services.gmail_max_results)
        self.github = GitHubClient(
            services.github_base_url, self.config.http, services.github_max_results
        )
        self.discord = DiscordClient(services.discord_base_url, self.config.http)

        self.action_registry = ActionExecutorRegistry(
            action_executors if action_executors is not None else self._default_action_executors()
        )
        self.reaction_registry = ReactionExecutorRegistry(
            reaction_executors
            if reaction_executors is not None
            else self._default_reaction_executors()
        )

        self.workflow_orchestrator = self._orchestrator(
            WORKFLOW_LOOP, self.config.polling, is_polled_workflow
        )
        self.timer_orchestrator = self._orchestrator(
            TIMER_LOOP, self.config.timer_polling, is_timer_workflow
        )
        self.scheduler = scheduler or PollingScheduler(self.config.scheduler)

        self._running = False
        self._loops_registered = False
        self._shutdown_event = threading.Event()
        self._signal_handlers: dict[int, Any] = {}

    @classmethod
    def from_config(cls, config_path: str | Path) -> AreaEngine:
        config = EngineConfig.from_yaml(config_path)
        setup_logging(config.logging)
        return cls(config)

    def _default_action_executors(self) -> list[BaseActionExecutor]:
        return [
            GmailEmailReceivedExecutor(self.gmail),
            GitHubIssueCreatedExecutor(self.github),
            GitHubPullRequestCreatedExecutor(self.github),
            *timer_executors(),
        ]

    def _default_reaction_executors(self) -> list[BaseReactionExecutor]:
        return [
            DiscordSendMessageExecutor(self.discord),
            DiscordSendWebhookExecutor(self.discord),
            GitHubCreateIssueExecutor(self.github),
            GitHubCreatePullRequestExecutor(self.github),
        ]

    def _orchestrator(self, name, loop_config, workflow_filter) -> PollingOrchestrator:
        return PollingOrchestrator(
            workflows=self.workflows,
            connections=self.connections,
            state_service=self.state_service,
            action_registry=self.action_registry,
            reaction_registry=self.reaction_registry,
            execution_log=self.execution_log,
            config=loop_config,
            name=name,
            workflow_filter=workflow_filter,
        )

    @property
    def orchestrators(self) -> dict[str, PollingOrchestrator]:
        return {WORKFLOW_LOOP: self.workflow_orchestrator, TIMER_LOOP: self.timer_orchestrator}

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def poll_once(self, loops: list[str] | None = None) -> list[CycleReport]:
        """Run one cycle of each selected loop in the calling thread."""
        selected = loops or [WORKFLOW_LOOP, TIMER_LOOP]
        reports = []
        for name in selected:
            orchestrator = self.orchestrators[name]
            reports.append(asyncio.run(orchestrator.run_cycle()))
        return reports

    def reset_breaker(self, workflow_id: int) -> bool:
        """Close the breaker of a workflow by hand. Returns False for unknown workflows."""
        if self.workflows.find_by_id(workflow_id) is None:
            return False
        self.state_service.reset_failure_count(workflow_id)
        return True

    def workflow_status(self) -> list[dict[str, Any]]:
        """Per-workflow state rows for status output. Never creates state rows."""
        rows = []
        for workflow in self.workflows.find_all():
            state = self.trigger_states.find_by_workflow_id(workflow.id)
            snapshot = (
                TriggerStateSnapshot.from_model(state)
                if state is not None
                else TriggerStateSnapshot(workflow_id=workflow.id)
            )
            rows.append(
                {
                    "id": workflow.id,
                    "name": workflow.name,
                    "active": workflow.active,
                    "trigger": trigger_service_of(workflow.workflow_data),
                    "cursor": snapshot.last_processed_item_id,
                    "failures": snapshot.consecutive_failures,
                    "breaker": (
                        CircuitState.OPEN
                        if snapshot.consecutive_failures >= self.state_service.failure_threshold
                        else CircuitState.CLOSED
                    ).value,
                    "last_checked_at": snapshot.last_checked_at,
                    "last_triggered_at": snapshot.last_triggered_at,
                    "last_error": snapshot.last_error_message,
                }
            )
        return rows

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Register the polling loops and start the scheduler."""
        if self._running:
            logger.warning("Engine already running")
            return
        if not self._loops_registered:
            for name, orchestrator in self.orchestrators.items():
                loop_config = (
                    self.config.polling if name == WORKFLOW_LOOP else self.config.timer_polling
                )
                self.scheduler.add_loop(name, orchestrator, loop_config)
            self._loops_registered = True
        self.scheduler.start()
        self._running = True
        self._shutdown_event.clear()
        logger.info(
            "Engine started: %d action and %d reaction executors",
            len(self.action_registry),
            len(self.reaction_registry),
        )

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._shutdown_event.set()
        self.scheduler.shutdown(wait=True)
        logger.info("Engine stopped")

    def run_forever(self) -> None:
        """Start and block until SIGINT/SIGTERM."""
        self._setup_signal_handlers()
        try:
            self.start()
            while self._running:
                try:
                    if self._shutdown_event.wait(timeout=1.0):
                        break
                except KeyboardInterrupt:
                    logger.info("Keyboard interrupt received; signalling shutdown")
                    break
        finally:
            self.stop()
            self._restore_signal_handlers()
            self.db.dispose()

    def _setup_signal_handlers(self) -> None:
        def signal_handler(sig: int, frame: FrameType | None) -> None:
            logger.info("Received signal %s, initiating shutdown", sig)
            self._shutdown_event.set()

        for sig in (getattr(signal, "SIGINT", None), getattr(signal, "SIGTERM", None)):
            if sig is None:
                continue
            try:
                self._signal_handlers[sig] = signal.getsignal(sig)
                signal.signal(sig, signal_handler)
            except (AttributeError, OSError, ValueError) as exc:
                logger.warning("Unable to register handler for signal %s: %s", sig, exc)

    def _restore_signal_handlers(self) -> None:
        for sig, handler in self._signal_handlers.items():
            try:
                signal.signal(sig, handler if handler is not None else signal.SIG_DFL)
            except (AttributeError, OSError, ValueError) as exc:
                logger.debug("Unable to restore handler for signal %s: %s", sig, exc)
        self._signal_handlers.clear()
