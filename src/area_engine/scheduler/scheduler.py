"""Fixed-delay polling scheduler.

This module wraps APScheduler to drive the polling loops:
- Each loop is a one-shot ``date`` job that re-arms itself after the cycle
  completes, so the next cycle starts ``interval`` after the previous one ended
- Every tick runs one async polling cycle with ``asyncio.run``
- A failing cycle is logged and the loop keeps going
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler

from ..automation.orchestrator import CycleReport, PollingOrchestrator
from ..core.config import PollingLoopConfig, SchedulerConfig
from ..core.logger import get_logger

logger = get_logger("scheduler")


@dataclass
class PollingLoop:
    name: str
    orchestrator: PollingOrchestrator
    config: PollingLoopConfig

    @property
    def job_id(self) -> str:
        return f"poll-{self.name}"


class PollingScheduler:
    """Runs polling loops on a background APScheduler instance.

    Example:
        ```python
        scheduler = PollingScheduler(config.scheduler)
        scheduler.add_loop("workflow", orchestrator, config.polling)
        scheduler.start()
        ```
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        """Initialize the polling scheduler.

        Args:
            config: Scheduler configuration
            scheduler: Pre-built APScheduler instance (tests)
        """
        self.config = config or SchedulerConfig()
        self._loops: dict[str, PollingLoop] = {}
        self._stopping = False
        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler or self._build_scheduler()

    def _build_scheduler(self) -> BackgroundScheduler:
        scheduler = BackgroundScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": ThreadPoolExecutor(max_workers=self.config.max_workers)},
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": None},
            timezone=self.config.timezone,
        )
        scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)
        logger.info("Scheduler initialized with timezone: %s", self.config.timezone)
        return scheduler

    def _job_error(self, event: JobExecutionEvent) -> None:
        logger.error(
            "Job %s failed with exception: %s", event.job_id, event.exception, exc_info=event.exception
        )

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    def add_loop(
        self, name: str, orchestrator: PollingOrchestrator, config: PollingLoopConfig
    ) -> PollingLoop | None:
        """Register a polling loop and arm its first run after the initial delay."""
        if not config.enabled:
            logger.info("Polling loop %s is disabled", name)
            return None
        if name in self._loops:
            raise ValueError(f"Polling loop already registered: {name}")

        loop = PollingLoop(name=name, orchestrator=orchestrator, config=config)
        self._loops[name] = loop
        self._arm(loop, config.initial_delay_seconds)
        logger.info(
            "Polling loop %s registered: initial delay %.0fs, interval %.0fs, concurrency %d",
            name,
            config.initial_delay_seconds,
            config.interval_seconds,
            config.max_concurrency,
        )
        return loop

    def _arm(self, loop: PollingLoop, delay_seconds: float) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        self._scheduler.add_job(
            self._run_loop,
            trigger="date",
            run_date=run_date,
            args=[loop.name],
            id=loop.job_id,
            name=f"{loop.name} polling cycle",
            replace_existing=True,
        )

    def _run_loop(self, name: str) -> CycleReport | None:
        """Run one cycle of a loop, then schedule the next one."""
        loop = self._loops.get(name)
        if loop is None:
            logger.warning("Polling loop %s is not registered", name)
            return None

        report = None
        try:
            report = asyncio.run(loop.orchestrator.run_cycle())
        except Exception as exc:
            logger.error("%s polling cycle crashed: %s", name, exc, exc_info=True)
        finally:
            if not self._stopping:
                self._arm(loop, loop.config.interval_seconds)
        return report

    def run_once(self, name: str) -> CycleReport:
        """Run one cycle of a loop synchronously without touching the schedule."""
        loop = self._loops[name]
        return asyncio.run(loop.orchestrator.run_cycle())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the backend; after a shutdown, re-arm loops whose job is gone."""
        if not self._scheduler.running:
            restarting = self._stopping
            self._stopping = False
            if restarting:
                # A shut down APScheduler cannot reuse its thread pool
                if self._owns_scheduler:
                    self._scheduler = self._build_scheduler()
                for loop in self._loops.values():
                    if self._scheduler.get_job(loop.job_id) is None:
                        self._arm(loop, loop.config.initial_delay_seconds)
            self._scheduler.start()
            logger.info("Scheduler started with %d polling loop(s)", len(self._loops))

    def shutdown(self, wait: bool = True) -> None:
        """Stop re-arming loops and shut the scheduler down.

        Args:
            wait: Whether to wait for running cycles to complete
        """
        self._stopping = True
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Scheduler shut down")

    def is_running(self) -> bool:
        return bool(self._scheduler.running)

    @property
    def loops(self) -> dict[str, PollingLoop]:
        return dict(self._loops)

    def get_status(self) -> dict[str, Any]:
        """Describe every loop: next run and last cycle summary."""
        status: dict[str, Any] = {"running": self.is_running(), "loops": {}}
        for name, loop in self._loops.items():
            job = self._scheduler.get_job(loop.job_id)
            polling = loop.orchestrator.status
            report = polling.last_report
            status["loops"][name] = {
                "next_run_time": getattr(job, "next_run_time", None),
                "cycle_running": polling.running,
                "cycles_completed": polling.cycles_completed,
                "last_cycle_started_at": polling.last_cycle_started_at,
                "last_summary": report.summary() if report else None,
            }
        return status
