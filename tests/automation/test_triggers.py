"""Tests for the action (trigger) executors.

Tests cover:
- Gmail: connection checks, cursor hand-off, context keys, source errors
- GitHub issues and pull requests
- Timers: interval gate, fire values, days_until
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from area_engine.automation import (
    GitHubIssueCreatedExecutor,
    GitHubPullRequestCreatedExecutor,
    GmailEmailReceivedExecutor,
    TimerActionExecutor,
    TriggerStateSnapshot,
    WorkflowView,
    extract_last_item_id,
    has_fired,
    parse_workflow_data,
)
from area_engine.automation.triggers import days_until_weekday
from area_engine.core import TransientSourceError
from area_engine.storage import ServiceConnection

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def _view(
    trigger: dict,
    connection: ServiceConnection | None = None,
    state: TriggerStateSnapshot | None = None,
) -> WorkflowView:
    store = Mock()
    store.find_connection_by_id.return_value = connection
    return WorkflowView(
        workflow_id=1,
        document=parse_workflow_data(json.dumps({"trigger": trigger, "actions": []})),
        state=state or TriggerStateSnapshot(workflow_id=1),
        connections=store,
        trigger_connection_id=connection.id if connection else None,
    )


def _gmail_message(message_id: str, subject: str) -> dict:
    return {
        "id": message_id,
        "subject": subject,
        "from": "alice@example.com",
        "snippet": f"snippet of {subject}",
        "receivedAt": "2025-03-10T11:00:00+00:00",
    }


# ==============================================================================
# Gmail
# ==============================================================================


class TestGmailEmailReceivedExecutor:
    """Tests for the Gmail trigger."""

    GMAIL_TRIGGER = {"service": "gmail", "type": "email_received", "config": {"label": "INBOX"}}

    @pytest.mark.anyio
    async def test_new_messages_fire(self):
        """New messages fire and the newest id becomes the cursor."""
        client = AsyncMock()
        client.fetch_new_items.return_value = [
            _gmail_message("msg101", "First"),
            _gmail_message("msg102", "Second"),
        ]
        connection = ServiceConnection(id=3, service_type="gmail", access_token="t")
        view = _view(
            self.GMAIL_TRIGGER,
            connection,
            TriggerStateSnapshot(workflow_id=1, last_processed_item_id="msg100"),
        )

        context = await GmailEmailReceivedExecutor(client).get_trigger_context(view)

        client.fetch_new_items.assert_awaited_once()
        args = client.fetch_new_items.await_args.args
        assert args[0] is connection
        assert args[1].label == "INBOX"
        assert args[2] == "msg100"
        assert has_fired(context)
        assert context.get_int("messageCount") == 2
        assert context.get_str("subject") == "Second"
        assert context.get_str("from") == "alice@example.com"
        assert extract_last_item_id(context) == "msg102"
        assert context.get("latestMessage")["id"] == "msg102"

    @pytest.mark.anyio
    async def test_no_new_messages(self):
        client = AsyncMock()
        client.fetch_new_items.return_value = []
        connection = ServiceConnection(id=3, service_type="gmail", access_token="t")

        context = await GmailEmailReceivedExecutor(client).get_trigger_context(
            _view(self.GMAIL_TRIGGER, connection)
        )

        assert not has_fired(context)
        assert context.source_error is None
        assert context.get_int("messageCount") == 0
        assert not context.has("messageId")

    @pytest.mark.anyio
    async def test_missing_connection(self):
        """A workflow without a Gmail connection reports a failed check."""
        client = AsyncMock()
        context = await GmailEmailReceivedExecutor(client).get_trigger_context(
            _view(self.GMAIL_TRIGGER)
        )
        assert context.source_error == "Gmail connection not configured for this workflow"
        client.fetch_new_items.assert_not_called()

    @pytest.mark.anyio
    async def test_source_error_is_reported_not_raised(self):
        client = AsyncMock()
        client.fetch_new_items.side_effect = TransientSourceError("gmail API returned 503", "gmail", 503)
        connection = ServiceConnection(id=3, service_type="gmail", access_token="t")

        context = await GmailEmailReceivedExecutor(client).get_trigger_context(
            _view(self.GMAIL_TRIGGER, connection)
        )

        assert context.source_error == "gmail API returned 503"
        assert not has_fired(context)


# ==============================================================================
# GitHub
# ==============================================================================


class TestGitHubTriggers:
    """Tests for the GitHub issue and pull request triggers."""

    @pytest.mark.anyio
    async def test_issue_trigger(self):
        client = AsyncMock()
        client.fetch_new_items.return_value = [
            {"number": 4, "title": "Old", "body": "", "url": "u4", "author": "bob"},
            {"number": 5, "title": "Crash", "body": "trace", "url": "u5", "author": "amy"},
        ]
        connection = ServiceConnection(id=2, service_type="github", access_token="t")
        view = _view(
            {"service": "github", "type": "issue_created", "config": {"repository": "octo/repo"}},
            connection,
            TriggerStateSnapshot(workflow_id=1, last_processed_item_id="issue:3"),
        )

        context = await GitHubIssueCreatedExecutor(client).get_trigger_context(view)

        assert client.fetch_new_items.await_args.kwargs["kind"] == "issues"
        assert client.fetch_new_items.await_args.args[2] == "issue:3"
        assert has_fired(context)
        assert context.get_int("issueCount") == 2
        assert context.get_str("issueTitle") == "Crash"
        assert context.get_str("issueAuthor") == "amy"
        assert context.get_str("repository") == "octo/repo"
        assert extract_last_item_id(context) == "issue:5"

    @pytest.mark.anyio
    async def test_pull_request_trigger(self):
        client = AsyncMock()
        client.fetch_new_items.return_value = [
            {"number": 8, "title": "Add docs", "body": "", "url": "u8", "author": "amy"}
        ]
        connection = ServiceConnection(id=2, service_type="github", access_token="t")
        view = _view(
            {
                "service": "github",
                "type": "pr_created",
                "config": {"repositoryOwner": "octo", "repositoryName": "repo"},
            },
            connection,
        )

        context = await GitHubPullRequestCreatedExecutor(client).get_trigger_context(view)

        assert client.fetch_new_items.await_args.kwargs["kind"] == "pulls"
        assert context.get_int("prCount") == 1
        assert context.get("latestPR")["number"] == 8
        assert extract_last_item_id(context) == "pr:8"

    @pytest.mark.anyio
    async def test_repository_required(self):
        client = AsyncMock()
        connection = ServiceConnection(id=2, service_type="github", access_token="t")
        context = await GitHubIssueCreatedExecutor(client).get_trigger_context(
            _view({"service": "github", "type": "issue_created"}, connection)
        )
        assert context.source_error == "GitHub repository not configured"
        client.fetch_new_items.assert_not_called()


# ==============================================================================
# Timers
# ==============================================================================


class TestTimerActionExecutor:
    """Tests for the timer triggers."""

    @pytest.mark.anyio
    async def test_never_fired_timer_is_due(self):
        executor = TimerActionExecutor("current_time", clock=lambda: NOW)
        context = await executor.get_trigger_context(
            _view({"service": "timer", "type": "current_time"})
        )

        assert context.get("triggered") is True
        assert context.get_int("timestamp") == int(NOW.timestamp() * 1000)
        assert context.get_str("timerType") == "current_time"
        assert context.has("date")
        assert context.has("time")
        assert context.has("dayOfWeek")

    @pytest.mark.anyio
    async def test_under_interval_does_not_fire(self):
        """Ten minutes after the last fire a 30 minute timer stays quiet."""
        executor = TimerActionExecutor("recurring", clock=lambda: NOW)
        view = _view(
            {"service": "timer", "type": "recurring", "config": {"intervalMinutes": 30}},
            state=TriggerStateSnapshot(workflow_id=1, last_triggered_at=NOW - timedelta(minutes=10)),
        )

        context = await executor.get_trigger_context(view)

        assert context.get("triggered") is False
        assert not has_fired(context)
        assert context.get_int("intervalMinutes") == 30

    @pytest.mark.anyio
    async def test_never_fired_timer_is_gated_on_last_check(self):
        """Without a previous fire the last check time is the anchor."""
        executor = TimerActionExecutor("recurring", clock=lambda: NOW)
        view = _view(
            {"service": "timer", "type": "recurring", "config": {"intervalMinutes": 30}},
            state=TriggerStateSnapshot(workflow_id=1, last_checked_at=NOW - timedelta(minutes=10)),
        )

        context = await executor.get_trigger_context(view)

        assert context.get("triggered") is False
        assert not has_fired(context)

    @pytest.mark.anyio
    async def test_last_fire_takes_precedence_over_last_check(self):
        executor = TimerActionExecutor("recurring", clock=lambda: NOW)
        view = _view(
            {"service": "timer", "type": "recurring", "config": {"intervalMinutes": 30}},
            state=TriggerStateSnapshot(
                workflow_id=1,
                last_triggered_at=NOW - timedelta(minutes=45),
                last_checked_at=NOW - timedelta(minutes=1),
            ),
        )

        assert has_fired(await executor.get_trigger_context(view))

    @pytest.mark.anyio
    async def test_fires_once_interval_elapsed(self):
        executor = TimerActionExecutor("recurring", clock=lambda: NOW)
        view = _view(
            {"service": "timer", "type": "recurring", "config": {"intervalMinutes": 30}},
            state=TriggerStateSnapshot(workflow_id=1, last_triggered_at=NOW - timedelta(minutes=31)),
        )

        context = await executor.get_trigger_context(view)

        assert has_fired(context)
        assert context.get_int("intervalMinutes") == 30
        assert extract_last_item_id(context) is None

    @pytest.mark.anyio
    async def test_days_until_count(self):
        executor = TimerActionExecutor("days_until", clock=lambda: NOW)
        context = await executor.get_trigger_context(
            _view({"service": "timer", "type": "days_until", "config": {"daysCount": 3}})
        )

        assert context.get_int("daysCount") == 3
        assert context.get_str("daysUntilMessage").startswith("In 3 days, it will be ")
        assert context.has("futureDay")
        assert context.has("futureDate")

    @pytest.mark.anyio
    async def test_days_until_single_day(self):
        executor = TimerActionExecutor("days_until", clock=lambda: NOW)
        context = await executor.get_trigger_context(
            _view({"service": "timer", "type": "days_until", "config": {"daysCount": 1}})
        )
        assert context.get_str("daysUntilMessage").startswith("In 1 day, ")

    def test_days_until_weekday(self):
        """Monday to Friday is four days; the same weekday counts as a week."""
        monday = datetime(2025, 3, 10)
        assert days_until_weekday(monday, "Friday") == 4
        assert days_until_weekday(monday, "monday") == 7
        assert days_until_weekday(monday, "someday") is None

    def test_unknown_timer_type(self):
        with pytest.raises(ValueError):
            TimerActionExecutor("hourly")
