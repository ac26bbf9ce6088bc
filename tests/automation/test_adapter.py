"""Tests for the workflow adapter and typed step configs.

Tests cover:
- Connection resolution precedence for triggers and reactions
- Config alias precedence (message templates, labels, repositories)
- Timer config defaults
- has_fired / extract_last_item_id / trigger_count / execution details
"""

from __future__ import annotations

import json
from unittest.mock import Mock

from area_engine.automation import (
    TriggerContext,
    TriggerStateSnapshot,
    WorkflowView,
    build_execution_details,
    extract_last_item_id,
    has_fired,
    is_timer_not_due,
    parse_workflow_data,
    trigger_count,
)
from area_engine.automation.step_configs import (
    DiscordReactionConfig,
    GitHubReactionConfig,
    GitHubTriggerConfig,
    GmailTriggerConfig,
    TimerConfig,
    parse_labels,
)
from area_engine.storage import ServiceConnection


def _connections(*items: ServiceConnection) -> Mock:
    by_id = {item.id: item for item in items}
    store = Mock()
    store.find_connection_by_id.side_effect = by_id.get
    return store


def _view(document: dict, connections: Mock, **kwargs) -> WorkflowView:
    return WorkflowView(
        workflow_id=1,
        document=parse_workflow_data(json.dumps(document)),
        state=TriggerStateSnapshot(workflow_id=1),
        connections=connections,
        **kwargs,
    )


# ==============================================================================
# Connections
# ==============================================================================


class TestConnectionResolution:
    """Tests for action/reaction connection lookup."""

    def test_workflow_trigger_connection_wins(self):
        """The workflow column is preferred over the trigger's connectionId."""
        store = _connections(
            ServiceConnection(id=1, service_type="gmail"),
            ServiceConnection(id=2, service_type="gmail"),
        )
        view = _view(
            {"trigger": {"service": "gmail", "type": "email_received", "connectionId": 2}},
            store,
            trigger_connection_id=1,
        )
        assert view.action_connection().id == 1

    def test_trigger_connection_id_fallback(self):
        """Without a workflow column the trigger's connectionId is used."""
        store = _connections(ServiceConnection(id=2, service_type="gmail"))
        view = _view(
            {"trigger": {"service": "gmail", "type": "email_received", "connectionId": 2}}, store
        )
        assert view.action_connection().id == 2

    def test_missing_connection(self):
        """No connection id anywhere resolves to None without a lookup."""
        store = _connections()
        view = _view({"trigger": {"service": "gmail", "type": "email_received"}}, store)
        assert view.action_connection() is None
        store.find_connection_by_id.assert_not_called()

    def test_reaction_connection_precedence(self):
        """A reaction's own connectionId beats the workflow-level fallback."""
        store = _connections(
            ServiceConnection(id=5, service_type="discord"),
            ServiceConnection(id=6, service_type="github"),
            ServiceConnection(id=7, service_type="discord"),
        )
        view = _view(
            {
                "trigger": {"service": "timer", "type": "recurring"},
                "actions": [
                    {"service": "discord", "type": "send_message", "connectionId": 5},
                    {"service": "github", "type": "create_issue", "connectionId": 6},
                    {"service": "discord", "type": "send_message"},
                ],
            },
            store,
        )
        assert view.reaction_view(0).reaction_connection().id == 5
        assert view.reaction_view(1).reaction_connection().id == 6
        # Third reaction has no id of its own: falls back to the first reaction's
        assert view.reaction_view(2).reaction_connection().id == 5

    def test_workflow_reaction_connection_column(self):
        store = _connections(ServiceConnection(id=7, service_type="discord"))
        view = _view(
            {
                "trigger": {"service": "timer", "type": "recurring"},
                "actions": [{"service": "discord", "type": "send_message"}],
            },
            store,
            reaction_connection_id=7,
        )
        assert view.reaction_connection().id == 7
        assert view.reaction_view(0).reaction_connection().id == 7


# ==============================================================================
# Step configs
# ==============================================================================


class TestStepConfigs:
    """Tests for typed config extraction."""

    def test_message_template_precedence(self):
        """message beats messageTemplate, blank values are skipped."""
        config = DiscordReactionConfig.from_mapping(
            {"message": "  ", "messageTemplate": "second", "body": "third"}
        )
        assert config.message_template == "second"

        config = DiscordReactionConfig.from_mapping({"message": "first", "content": "x"})
        assert config.message_template == "first"

    def test_discord_config_fields(self):
        config = DiscordReactionConfig.from_mapping(
            {"webhookUrl": "https://hook", "channelId": 123}
        )
        assert config.webhook_url == "https://hook"
        assert config.channel_id == "123"
        assert config.message_template is None

    def test_gmail_search_query(self):
        """label/labelName, subject and sender build a Gmail query."""
        config = GmailTriggerConfig.from_mapping(
            {"labelName": "Work", "subjectContains": "invoice", "fromAddress": "a@b.c"}
        )
        assert config.search_query() == 'label:Work subject:"invoice" from:a@b.c'
        assert GmailTriggerConfig.from_mapping({}).search_query() == ""

    def test_repository_forms(self):
        """owner/name comes from repository or the split keys."""
        assert GitHubTriggerConfig.from_mapping({"repository": "octo/repo"}).full_name == "octo/repo"
        split = GitHubTriggerConfig.from_mapping(
            {"repositoryOwner": "octo", "repositoryName": "cat"}
        )
        assert split.full_name == "octo/cat"
        assert GitHubTriggerConfig.from_mapping({"repository": "broken"}).full_name is None

    def test_github_reaction_aliases(self):
        config = GitHubReactionConfig.from_mapping(
            {"repository": "o/r", "title": "T", "body": "B", "labels": "bug, urgent"}
        )
        assert config.issue_title == "T"
        assert config.issue_body == "B"
        assert config.labels == ["bug", "urgent"]
        assert config.target_branch == "main"

    def test_parse_labels(self):
        assert parse_labels(None) == []
        assert parse_labels(["a", " b ", ""]) == ["a", "b"]
        assert parse_labels(42) == []

    def test_timer_defaults(self):
        """Intervals default to an hour, a day for days_until."""
        assert TimerConfig.from_mapping("recurring", {}).effective_interval_minutes == 60
        assert TimerConfig.from_mapping("days_until", {}).effective_interval_minutes == 1440
        config = TimerConfig.from_mapping("recurring", {"intervalMinutes": "15"})
        assert config.effective_interval_minutes == 15

    def test_timer_type_from_view(self):
        """The timer kind is the trigger's type name."""
        view = _view(
            {"trigger": {"service": "timer", "type": "days_until", "config": {"daysCount": 3}}},
            _connections(),
        )
        config = view.timer_config()
        assert config.timer_type == "days_until"
        assert config.days_count == 3


# ==============================================================================
# Context helpers
# ==============================================================================


class TestHasFired:
    """Tests for has_fired."""

    def test_empty_context_did_not_fire(self):
        assert has_fired(TriggerContext()) is False

    def test_collection_with_positive_count(self):
        assert has_fired(TriggerContext({"newMessages": [{}], "messageCount": 1}))
        assert has_fired(TriggerContext({"newIssues": [{}], "issueCount": "2"}))
        assert has_fired(TriggerContext({"newPRs": [{}], "prCount": 1}))

    def test_zero_count_did_not_fire(self):
        assert not has_fired(TriggerContext({"newMessages": [], "messageCount": 0}))

    def test_count_without_collection_did_not_fire(self):
        assert not has_fired(TriggerContext({"messageCount": 3}))

    def test_timer_flag_must_be_true(self):
        """Only a real True fires; truthy strings do not."""
        assert has_fired(TriggerContext({"triggered": True}))
        assert not has_fired(TriggerContext({"triggered": False}))
        assert not has_fired(TriggerContext({"triggered": "true"}))

    def test_timer_not_due(self):
        assert is_timer_not_due(TriggerContext({"triggered": False}))
        assert not is_timer_not_due(TriggerContext({"triggered": True}))
        assert not is_timer_not_due(TriggerContext({"messageCount": 0}))


class TestContextHelpers:
    """Tests for cursor, count and execution detail extraction."""

    def test_extract_last_item_id(self):
        assert extract_last_item_id(TriggerContext({"messageId": "msg9"})) == "msg9"
        assert extract_last_item_id(TriggerContext({"issueNumber": 12})) == "issue:12"
        assert extract_last_item_id(TriggerContext({"prNumber": 3})) == "pr:3"
        assert extract_last_item_id(TriggerContext({"triggered": True})) is None

    def test_trigger_count(self):
        assert trigger_count(TriggerContext({"messageCount": 4})) == 4
        assert trigger_count(TriggerContext({"prCount": 2})) == 2
        assert trigger_count(TriggerContext({"triggered": True})) == 1

    def test_execution_details(self):
        document = parse_workflow_data(
            json.dumps(
                {
                    "trigger": {"service": "gmail", "type": "email_received"},
                    "actions": [{"service": "discord", "type": "send_message"}],
                }
            )
        )
        details = build_execution_details(document, TriggerContext({"subject": "Hi"}))
        assert details == "Trigger: gmail.email_received | Subject: Hi | Actions executed: 1"
