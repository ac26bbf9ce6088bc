"""Polling orchestrator.

One polling cycle evaluates every active workflow selected for this loop:

1. skip it when its circuit breaker is open,
2. parse the workflow document,
3. resolve and run the trigger's action executor,
4. stop quietly when nothing new happened,
5. run the reactions in order, aborting on the first failure,
6. record the outcome through the trigger state service and the execution log.

Workflows are evaluated concurrently up to a fixed limit, each one strictly
sequentially. Nothing a single workflow does can abort the cycle.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol

from ..core.circuit_breaker import CIRCUIT_OPEN_REASON
from ..core.config import PollingLoopConfig
from ..core.exceptions import NoExecutorFoundError, WorkflowParseError
from ..core.logger import get_logger
from ..storage.models import ExecutionStatus, Workflow, utcnow
from .adapter import (
    ConnectionStore,
    WorkflowView,
    build_execution_details,
    extract_last_item_id,
    has_fired,
    is_timer_not_due,
    trigger_count,
)
from .context import TriggerContext
from .registry import ActionExecutorRegistry, ReactionExecutorRegistry
from .state import TriggerStateService
from .workflow import TriggerDescriptor, WorkflowDocument, parse_workflow_data

logger = get_logger("automation.orchestrator")


class WorkflowOutcome(str, Enum):
    """Terminal state of one workflow evaluation."""

    SKIPPED_BREAKER = "skipped_breaker"
    SKIPPED_NO_FIRE = "skipped_no_fire"
    FAILED_PARSE = "failed_parse"
    FAILED_NO_EXECUTOR = "failed_no_executor"
    FAILED_TRIGGER = "failed_trigger"
    FAILED_REACTION = "failed_reaction"
    FAILED_INTERNAL = "failed_internal"
    SUCCESS = "success"

    @property
    def status(self) -> ExecutionStatus:
        if self is WorkflowOutcome.SUCCESS:
            return ExecutionStatus.SUCCESS
        if self in (WorkflowOutcome.SKIPPED_BREAKER, WorkflowOutcome.SKIPPED_NO_FIRE):
            return ExecutionStatus.SKIPPED
        return ExecutionStatus.FAILURE


@dataclass
class WorkflowResult:
    workflow_id: int
    outcome: WorkflowOutcome
    message: str | None = None
    actions_executed: int = 0
    duration_ms: int = 0

    @property
    def status(self) -> ExecutionStatus:
        return self.outcome.status


@dataclass
class CycleReport:
    """Summary of one polling cycle."""

    loop: str
    started_at: datetime
    finished_at: datetime | None = None
    total: int = 0
    deferred: int = 0
    results: list[WorkflowResult] = field(default_factory=list)

    def count(self, status: ExecutionStatus) -> int:
        return sum(1 for result in self.results if result.status is status)

    @property
    def succeeded(self) -> int:
        return self.count(ExecutionStatus.SUCCESS)

    @property
    def failed(self) -> int:
        return self.count(ExecutionStatus.FAILURE)

    @property
    def skipped(self) -> int:
        return self.count(ExecutionStatus.SKIPPED)

    def summary(self) -> str:
        return (
            f"{self.total} workflows: {self.succeeded} succeeded, {self.failed} failed, "
            f"{self.skipped} skipped, {self.deferred} deferred"
        )


@dataclass
class PollingStatus:
    """Observable state of one orchestrator."""

    loop: str
    running: bool = False
    cycles_completed: int = 0
    last_cycle_started_at: datetime | None = None
    last_report: CycleReport | None = None


class WorkflowStore(Protocol):
    def find_active_workflows(self) -> list[Workflow]: ...


class ExecutionLogSink(Protocol):
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
    ) -> None: ...


class PollingOrchestrator:
    """Runs polling cycles over the active workflows of one loop."""

    def __init__(
        self,
        workflows: WorkflowStore,
        connections: ConnectionStore,
        state_service: TriggerStateService,
        action_registry: ActionExecutorRegistry,
        reaction_registry: ReactionExecutorRegistry,
        execution_log: ExecutionLogSink,
        config: PollingLoopConfig | None = None,
        name: str = "workflow",
        workflow_filter: Callable[[Workflow], bool] | None = None,
    ) -> None:
        self.workflows = workflows
        self.connections = connections
        self.state_service = state_service
        self.action_registry = action_registry
        self.reaction_registry = reaction_registry
        self.execution_log = execution_log
        self.config = config or PollingLoopConfig()
        self.name = name
        self.workflow_filter = workflow_filter
        self._status = PollingStatus(loop=name)

    @property
    def status(self) -> PollingStatus:
        return self._status

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def select_workflows(self) -> list[Workflow]:
        workflows = self.workflows.find_active_workflows()
        if self.workflow_filter is not None:
            workflows = [workflow for workflow in workflows if self.workflow_filter(workflow)]
        return workflows

    async def run_cycle(self) -> CycleReport:
        """Evaluate every selected workflow once.

        Returns:
            The cycle report; it is also kept as ``status.last_report``
        """
        report = CycleReport(loop=self.name, started_at=utcnow())
        self._status.running = True
        self._status.last_cycle_started_at = report.started_at
        try:
            try:
                workflows = await asyncio.to_thread(self.select_workflows)
            except Exception as exc:
                logger.error("Failed to load active workflows for %s loop: %s", self.name, exc)
                workflows = []

            report.total = len(workflows)
            if workflows:
                logger.info("Polling %d active %s workflow(s)", len(workflows), self.name)
                await self._run_bounded(workflows, report)
            else:
                logger.debug("No active %s workflows to poll", self.name)
        finally:
            report.finished_at = utcnow()
            self._status.running = False
            self._status.cycles_completed += 1
            self._status.last_report = report

        logger.info("%s polling cycle finished: %s", self.name.capitalize(), report.summary())
        return report

    async def _run_bounded(self, workflows: Iterable[Workflow], report: CycleReport) -> None:
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        started: set[int] = set()

        async def guarded(workflow: Workflow) -> WorkflowResult:
            async with semaphore:
                started.add(workflow.id)
                return await self.process_workflow(workflow)

        tasks = {asyncio.create_task(guarded(workflow)): workflow for workflow in workflows}
        done, pending = await asyncio.wait(tasks, timeout=self.config.cycle_timeout_seconds)

        if pending:
            not_started = [task for task in pending if tasks[task].id not in started]
            in_flight = [task for task in pending if tasks[task].id in started]
            for task in not_started:
                task.cancel()
            report.deferred = len(not_started)
            logger.warning(
                "%s polling cycle timed out after %.0fs: %d workflow(s) deferred, "
                "waiting for %d in flight",
                self.name.capitalize(),
                self.config.cycle_timeout_seconds,
                len(not_started),
                len(in_flight),
            )
            await asyncio.gather(*not_started, return_exceptions=True)
            if in_flight:
                await asyncio.wait(in_flight)
            done = done | set(in_flight)

        for task in done:
            if task.cancelled():
                continue
            result = task.result()
            report.results.append(result)
        report.results.sort(key=lambda result: result.workflow_id)

    # ------------------------------------------------------------------
    # Single workflow
    # ------------------------------------------------------------------

    async def process_workflow(self, workflow: Workflow) -> WorkflowResult:
        """Evaluate one workflow. Never raises."""
        started = time.perf_counter()
        try:
            return await self._process(workflow, started)
        except Exception as exc:
            logger.exception("Unexpected error processing workflow %s", workflow.id)
            return self._fail(
                workflow.id,
                WorkflowOutcome.FAILED_INTERNAL,
                f"Unexpected error: {exc}",
                started,
            )

    async def _process(self, workflow: Workflow, started: float) -> WorkflowResult:
        workflow_id = workflow.id
        # State and log writes are short synchronous SQLite calls made on the loop
        # thread; cycle_timeout_seconds bounds the awaited trigger and reaction I/O.

        if self.state_service.should_skip_due_to_failures(workflow_id):
            return self._finish(
                workflow_id,
                WorkflowOutcome.SKIPPED_BREAKER,
                CIRCUIT_OPEN_REASON,
                started,
            )

        try:
            document = parse_workflow_data(workflow.workflow_data, workflow_id)
        except WorkflowParseError as exc:
            logger.error("Workflow %s has invalid data: %s", workflow_id, exc)
            return self._fail(workflow_id, WorkflowOutcome.FAILED_PARSE, str(exc), started)

        trigger = document.trigger
        trigger_type = trigger.full_type()
        try:
            executor = self.action_registry.get_executor(trigger_type)
        except NoExecutorFoundError as exc:
            logger.error("Workflow %s: %s", workflow_id, exc)
            return self._fail(
                workflow_id, WorkflowOutcome.FAILED_NO_EXECUTOR, str(exc), started, trigger
            )

        view = WorkflowView(
            workflow_id=workflow_id,
            document=document,
            state=self.state_service.snapshot(workflow_id),
            connections=self.connections,
            trigger_connection_id=workflow.trigger_connection_id,
            reaction_connection_id=workflow.reaction_connection_id,
            name=workflow.name,
        )

        try:
            context = await executor.get_trigger_context(view)
        except Exception as exc:
            logger.error("Workflow %s trigger %s raised: %s", workflow_id, trigger_type, exc)
            return self._fail(
                workflow_id, WorkflowOutcome.FAILED_TRIGGER, str(exc), started, trigger
            )

        if context.source_error is not None:
            return self._fail(
                workflow_id,
                WorkflowOutcome.FAILED_TRIGGER,
                f"Trigger check failed: {context.source_error}",
                started,
                trigger,
            )

        if not has_fired(context):
            logger.debug("Workflow %s: trigger %s did not fire", workflow_id, trigger_type)
            # A timer that is not due keeps its anchor
            if not is_timer_not_due(context):
                self.state_service.update_checked_time(workflow_id)
            return self._finish(
                workflow_id,
                WorkflowOutcome.SKIPPED_NO_FIRE,
                "No new activity",
                started,
                trigger,
            )

        logger.info("Workflow %s fired (%s)", workflow_id, trigger_type)
        return await self._run_reactions(workflow_id, document, view, context, started)

    async def _run_reactions(
        self,
        workflow_id: int,
        document: WorkflowDocument,
        view: WorkflowView,
        context: TriggerContext,
        started: float,
    ) -> WorkflowResult:
        trigger = document.trigger
        count = trigger_count(context)
        reactions = document.actions
        if not reactions:
            logger.warning("Workflow %s fired but has no reactions configured", workflow_id)

        executed = 0
        for index, reaction in enumerate(reactions):
            reaction_type = reaction.full_type()
            try:
                executor = self.reaction_registry.get_executor(reaction_type)
                await executor.execute(view.reaction_view(index), context)
            except Exception as exc:
                message = f"Reaction {index + 1}/{len(reactions)} ({reaction_type}) failed: {exc}"
                logger.error("Workflow %s: %s", workflow_id, message)
                return self._fail(
                    workflow_id,
                    WorkflowOutcome.FAILED_REACTION,
                    message,
                    started,
                    trigger,
                    actions_executed=executed,
                    count=count,
                )
            executed += 1

        self.state_service.update_state_after_success(
            workflow_id, extract_last_item_id(context), count
        )
        details = build_execution_details(document, context)
        result = self._finish(
            workflow_id,
            WorkflowOutcome.SUCCESS,
            details,
            started,
            trigger,
            actions_executed=executed,
            count=count,
        )
        logger.info("Successfully processed workflow %s in %dms", workflow_id, result.duration_ms)
        return result

    # ------------------------------------------------------------------
    # Outcome recording
    # ------------------------------------------------------------------

    def _fail(
        self,
        workflow_id: int,
        outcome: WorkflowOutcome,
        message: str,
        started: float,
        trigger: TriggerDescriptor | None = None,
        actions_executed: int = 0,
        count: int = 0,
    ) -> WorkflowResult:
        try:
            self.state_service.record_failure(workflow_id, message)
        except Exception as exc:
            logger.error("Failed to record failure for workflow %s: %s", workflow_id, exc)
        return self._finish(
            workflow_id, outcome, message, started, trigger, actions_executed, count
        )

    def _finish(
        self,
        workflow_id: int,
        outcome: WorkflowOutcome,
        message: str | None,
        started: float,
        trigger: TriggerDescriptor | None = None,
        actions_executed: int = 0,
        count: int = 0,
    ) -> WorkflowResult:
        duration_ms = int((time.perf_counter() - started) * 1000)
        result = WorkflowResult(
            workflow_id=workflow_id,
            outcome=outcome,
            message=message,
            actions_executed=actions_executed,
            duration_ms=duration_ms,
        )
        try:
            self.execution_log.log_execution(
                workflow_id,
                outcome.status,
                trigger.service if trigger else None,
                trigger.type_name if trigger else None,
                actions_executed,
                message,
                duration_ms,
                count,
            )
        except Exception as exc:
            logger.error("Failed to write execution log for workflow %s: %s", workflow_id, exc)
        return result
