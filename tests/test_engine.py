"""Tests for the assembled AreaEngine.

Tests cover:
- Default executor registration
- Loop registration on start
- Workflow/timer loop split in poll_once
- Breaker reset and status rows
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from area_engine import AreaEngine, EngineConfig
from area_engine.automation import BaseReactionExecutor, timer_executors
from area_engine.core import DatabaseConfig
from area_engine.engine import TIMER_LOOP, WORKFLOW_LOOP, is_polled_workflow, is_timer_workflow
from area_engine.storage import ExecutionStatus, Workflow


class _Journal(BaseReactionExecutor):
    reaction_type = "test.record"

    def __init__(self) -> None:
        self.contexts = []

    async def execute(self, view, context):
        self.contexts.append(context)


@pytest.fixture
def config():
    return EngineConfig(database=DatabaseConfig(url="sqlite:///:memory:"))


@pytest.fixture
def scheduler():
    return Mock()


@pytest.fixture
def engine(config, db, scheduler):
    return AreaEngine(config, db=db, scheduler=scheduler)


# ==============================================================================
# Wiring
# ==============================================================================


class TestWiring:
    """Tests for the default engine assembly."""

    def test_default_executors(self, engine):
        assert engine.action_registry.types() == [
            "github.issue_created",
            "github.pr_created",
            "gmail.email_received",
            "timer.current_date",
            "timer.current_time",
            "timer.days_until",
            "timer.recurring",
        ]
        assert engine.reaction_registry.types() == [
            "discord.send_message",
            "discord.send_webhook",
            "github.create_issue",
            "github.create_pr",
        ]

    def test_builds_own_database(self, config, scheduler):
        engine = AreaEngine(config, scheduler=scheduler)
        try:
            assert engine.workflow_status() == []
        finally:
            engine.db.dispose()

    def test_start_registers_both_loops(self, engine, scheduler, config):
        engine.start()

        names = [call.args[0] for call in scheduler.add_loop.call_args_list]
        assert names == [WORKFLOW_LOOP, TIMER_LOOP]
        assert scheduler.add_loop.call_args_list[1].args[2] is config.timer_polling
        scheduler.start.assert_called_once()

        engine.start()
        assert scheduler.add_loop.call_count == 2

        engine.stop()
        scheduler.shutdown.assert_called_once_with(wait=True)

    def test_restart_after_stop(self, engine, scheduler):
        """Loops are registered once; a restart only restarts the scheduler."""
        engine.start()
        engine.stop()
        engine.start()

        assert scheduler.add_loop.call_count == 2
        assert scheduler.start.call_count == 2
        engine.stop()

    def test_loop_filters(self):
        timer = Workflow(name="t", workflow_data='{"trigger": {"service": "timer"}}')
        gmail = Workflow(name="g", workflow_data='{"trigger": {"service": "gmail"}}')
        broken = Workflow(name="b", workflow_data="{broken")

        assert is_timer_workflow(timer) and not is_polled_workflow(timer)
        assert is_polled_workflow(gmail)
        assert is_polled_workflow(broken)


# ==============================================================================
# Operations
# ==============================================================================


class TestOperations:
    """Tests for poll_once, reset_breaker and workflow_status."""

    def test_poll_once_routes_timers_to_timer_loop(self, config, db, scheduler, make_workflow, execution_log):
        """A never-fired timer is due on the first timer cycle only."""
        journal = _Journal()
        engine = AreaEngine(
            config,
            db=db,
            action_executors=timer_executors(),
            reaction_executors=[journal],
            scheduler=scheduler,
        )
        workflow = make_workflow(
            {"service": "timer", "type": "recurring", "config": {"intervalMinutes": 60}},
            [{"service": "test", "type": "record"}],
        )

        workflow_report, timer_report = engine.poll_once()

        assert workflow_report.total == 0
        assert timer_report.total == 1
        assert timer_report.succeeded == 1
        assert len(journal.contexts) == 1
        assert execution_log.recent(workflow.id)[0].status == ExecutionStatus.SUCCESS.value

        (second,) = engine.poll_once([TIMER_LOOP])
        assert second.succeeded == 0
        assert len(journal.contexts) == 1

    def test_reset_breaker(self, engine, make_workflow, state_repo):
        workflow = make_workflow({"service": "timer", "type": "recurring"})
        state_repo.get_or_create(workflow.id)
        state_repo.update_fields(workflow.id, consecutive_failures=7)

        assert engine.reset_breaker(workflow.id) is True
        assert state_repo.find_by_workflow_id(workflow.id).consecutive_failures == 0
        assert engine.reset_breaker(9999) is False

    def test_workflow_status(self, engine, make_workflow, state_repo):
        healthy = make_workflow({"service": "gmail", "type": "email_received"}, name="mail")
        tripped = make_workflow({"service": "timer", "type": "recurring"}, name="clock")
        state_repo.get_or_create(tripped.id)
        state_repo.update_fields(
            tripped.id, consecutive_failures=5, last_error_message="boom"
        )

        rows = {row["name"]: row for row in engine.workflow_status()}

        assert rows["mail"]["id"] == healthy.id
        assert rows["mail"]["trigger"] == "gmail"
        assert rows["mail"]["breaker"] == "closed"
        assert rows["mail"]["failures"] == 0
        assert rows["clock"]["breaker"] == "open"
        assert rows["clock"]["last_error"] == "boom"

    def test_workflow_status_creates_no_state_rows(self, engine, make_workflow, state_repo):
        workflow = make_workflow({"service": "github", "type": "issue_created"}, name="issues")

        (row,) = engine.workflow_status()

        assert row["failures"] == 0
        assert row["breaker"] == "closed"
        assert state_repo.find_by_workflow_id(workflow.id) is None
