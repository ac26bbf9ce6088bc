"""Tests for the executor registries."""

from __future__ import annotations

import pytest

from area_engine.automation import (
    ActionExecutorRegistry,
    BaseActionExecutor,
    BaseReactionExecutor,
    ReactionExecutorRegistry,
    TriggerContext,
    timer_executors,
)
from area_engine.core import DuplicateExecutorError, NoExecutorFoundError


class _Action(BaseActionExecutor):
    def __init__(self, action_type: str) -> None:
        self.action_type = action_type

    async def get_trigger_context(self, view):
        return TriggerContext()


class _Reaction(BaseReactionExecutor):
    def __init__(self, reaction_type: str) -> None:
        self.reaction_type = reaction_type

    async def execute(self, view, context):
        return None


class TestActionExecutorRegistry:
    """Tests for trigger executor lookup."""

    def test_lookup_is_case_insensitive(self):
        executor = _Action("gmail.email_received")
        registry = ActionExecutorRegistry([executor])
        assert registry.get_executor("GMAIL.Email_Received") is executor
        assert registry.has_executor("gmail.email_received")

    def test_unknown_type_raises(self):
        registry = ActionExecutorRegistry([_Action("gmail.email_received")])
        with pytest.raises(NoExecutorFoundError) as exc_info:
            registry.get_executor("slack.unknown")
        assert str(exc_info.value) == "No action executor found for type: slack.unknown"
        assert exc_info.value.kind == "action"

    def test_duplicate_registration_fails(self):
        """Two executors for one type are rejected when the registry is built."""
        with pytest.raises(DuplicateExecutorError, match="timer.recurring"):
            ActionExecutorRegistry([_Action("timer.recurring"), _Action("Timer.Recurring")])

    def test_timer_executors_cover_every_kind(self):
        registry = ActionExecutorRegistry(timer_executors())
        assert registry.types() == [
            "timer.current_date",
            "timer.current_time",
            "timer.days_until",
            "timer.recurring",
        ]
        assert len(registry) == 4


class TestReactionExecutorRegistry:
    """Tests for reaction executor lookup."""

    def test_lookup(self):
        executor = _Reaction("discord.send_message")
        registry = ReactionExecutorRegistry([executor, _Reaction("github.create_issue")])
        assert registry.get_executor("discord.send_message") is executor
        assert not registry.has_executor("discord.null")

    def test_unknown_reaction(self):
        registry = ReactionExecutorRegistry([])
        with pytest.raises(NoExecutorFoundError, match="No reaction executor found"):
            registry.get_executor("discord.null")

    def test_duplicate_reaction(self):
        with pytest.raises(DuplicateExecutorError):
            ReactionExecutorRegistry(
                [_Reaction("discord.send_message"), _Reaction("discord.send_message")]
            )
