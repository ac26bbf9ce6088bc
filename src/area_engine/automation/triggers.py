"""Action (trigger) executors.

An action executor looks at one external source on behalf of one workflow
and reports what it found as a :class:`TriggerContext`. Executors read the
trigger state snapshot from the view but never write state; the orchestrator
does that through the trigger state service.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from ..core.exceptions import TransientSourceError
from ..core.logger import get_logger
from .adapter import WorkflowView, has_fired
from .context import TriggerContext

if TYPE_CHECKING:
    from ..services.github import GitHubClient
    from ..services.gmail import GmailClient

logger = get_logger("automation.triggers")

TIMER_TYPES = ("recurring", "current_date", "current_time", "days_until")
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class BaseActionExecutor(ABC):
    """Base class for action executors."""

    action_type: str

    @abstractmethod
    async def get_trigger_context(self, view: WorkflowView) -> TriggerContext:
        """Evaluate the trigger source.

        Implementations must not raise for upstream failures; they return
        ``TriggerContext.failed(message)`` instead.

        Args:
            view: Trigger-side view of the workflow

        Returns:
            The context describing any new activity
        """

    async def is_triggered(self, view: WorkflowView) -> bool:
        return has_fired(await self.get_trigger_context(view))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.action_type})"


class GmailEmailReceivedExecutor(BaseActionExecutor):
    """Fires on unread Gmail messages newer than the stored cursor."""

    action_type = "gmail.email_received"

    def __init__(self, client: GmailClient) -> None:
        self.client = client

    async def get_trigger_context(self, view: WorkflowView) -> TriggerContext:
        connection = view.action_connection()
        if connection is None:
            logger.error("No Gmail connection for workflow %s", view.workflow_id)
            return TriggerContext.failed("Gmail connection not configured for this workflow")

        try:
            messages = await self.client.fetch_new_items(
                connection, view.gmail_config(), view.state.last_processed_item_id
            )
        except TransientSourceError as exc:
            logger.error("Error checking Gmail for workflow %s: %s", view.workflow_id, exc)
            return TriggerContext.failed(str(exc))

        context = TriggerContext({"newMessages": messages, "messageCount": len(messages)})
        if messages:
            latest = max(messages, key=lambda message: message["id"])
            context.update(
                {
                    "latestMessage": latest,
                    "subject": latest.get("subject"),
                    "from": latest.get("from"),
                    "snippet": latest.get("snippet"),
                    "receivedAt": latest.get("receivedAt"),
                    "messageId": latest["id"],
                }
            )
            logger.info(
                "Gmail trigger for workflow %s found %d new message(s)",
                view.workflow_id,
                len(messages),
            )
        return context


class _GitHubItemsExecutor(BaseActionExecutor):
    """Shared logic of the issue and pull request triggers."""

    kind: str
    collection_key: str
    count_key: str
    latest_key: str
    prefix: str

    def __init__(self, client: GitHubClient) -> None:
        self.client = client

    async def get_trigger_context(self, view: WorkflowView) -> TriggerContext:
        config = view.github_trigger_config()
        if config.full_name is None:
            logger.error("GitHub repository not configured for workflow %s", view.workflow_id)
            return TriggerContext.failed("GitHub repository not configured")

        connection = view.action_connection()
        if connection is None:
            logger.error("No GitHub connection for workflow %s", view.workflow_id)
            return TriggerContext.failed("GitHub connection not configured for this workflow")

        try:
            items = await self.client.fetch_new_items(
                connection, config, view.state.last_processed_item_id, kind=self.kind
            )
        except TransientSourceError as exc:
            logger.error(
                "Error checking GitHub %s for workflow %s: %s", self.kind, view.workflow_id, exc
            )
            return TriggerContext.failed(str(exc))

        context = TriggerContext({self.collection_key: items, self.count_key: len(items)})
        if items:
            latest = max(items, key=lambda item: item["number"])
            context.put(self.latest_key, latest)
            context.update(
                {
                    f"{self.prefix}Number": latest["number"],
                    f"{self.prefix}Title": latest.get("title"),
                    f"{self.prefix}Body": latest.get("body"),
                    f"{self.prefix}Url": latest.get("url"),
                    f"{self.prefix}Author": latest.get("author"),
                    "repository": config.full_name,
                }
            )
            logger.info(
                "GitHub %s trigger for workflow %s found %d new item(s) in %s",
                self.kind,
                view.workflow_id,
                len(items),
                config.full_name,
            )
        return context


class GitHubIssueCreatedExecutor(_GitHubItemsExecutor):
    action_type = "github.issue_created"
    kind = "issues"
    collection_key = "newIssues"
    count_key = "issueCount"
    latest_key = "latestIssue"
    prefix = "issue"


class GitHubPullRequestCreatedExecutor(_GitHubItemsExecutor):
    action_type = "github.pr_created"
    kind = "pulls"
    collection_key = "newPRs"
    count_key = "prCount"
    latest_key = "latestPR"
    prefix = "pr"


class TimerActionExecutor(BaseActionExecutor):
    """Time based trigger gated on its own interval.

    The interval is measured from the last time the workflow fired, or from
    the last check when it never fired; a timer with neither is due
    immediately. One instance is registered per timer kind.
    """

    def __init__(self, timer_type: str, clock: Callable[[], datetime] = utc_clock) -> None:
        if timer_type not in TIMER_TYPES:
            raise ValueError(f"Unknown timer type: {timer_type}")
        self.timer_type = timer_type
        self.action_type = f"timer.{timer_type}"
        self._clock = clock

    async def get_trigger_context(self, view: WorkflowView) -> TriggerContext:
        config = view.timer_config()
        interval = config.effective_interval_minutes
        now = self._clock()

        # Before the first fire, the last check is the anchor
        anchor = view.state.last_triggered_at or view.state.last_checked_at
        if anchor is not None:
            minutes_since = int((now - anchor).total_seconds() // 60)
            if minutes_since < interval:
                logger.debug(
                    "Timer for workflow %s not due: %d minutes since last fire or check (interval %d)",
                    view.workflow_id,
                    minutes_since,
                    interval,
                )
                return TriggerContext(
                    {"triggered": False, "timerType": self.timer_type, "intervalMinutes": interval}
                )

        local_now = now.astimezone()
        context = TriggerContext(
            {
                "date": local_now.strftime("%d/%m"),
                "time": local_now.strftime("%H:%M"),
                "timestamp": int(now.timestamp() * 1000),
                "triggered": True,
                "dayOfWeek": local_now.strftime("%A"),
                "timerType": self.timer_type,
            }
        )

        if self.timer_type == "days_until":
            days = config.days_count
            if days is None and config.target_day:
                days = days_until_weekday(local_now, config.target_day)
            if days is not None:
                context.update(days_until_values(local_now, days))

        if config.interval_minutes is not None:
            context.put("intervalMinutes", config.interval_minutes)

        logger.info(
            "Timer triggered for workflow %s (type: %s, interval: %d minutes)",
            view.workflow_id,
            self.timer_type,
            interval,
        )
        return context


def days_until_weekday(today: datetime, target_day: str) -> int | None:
    """Days from ``today`` to the next ``target_day``; the same weekday counts as a week."""
    try:
        target = WEEKDAYS.index(target_day.strip().lower())
    except ValueError:
        logger.warning("Unknown target day for timer: %s", target_day)
        return None
    return (target - today.weekday()) % 7 or 7


def days_until_values(today: datetime, days: int) -> dict[str, Any]:
    future = today + timedelta(days=days)
    future_day = future.strftime("%A")
    future_date = future.strftime("%d/%m")
    return {
        "daysUntilMessage": (
            f"In {days} day{'' if days == 1 else 's'}, it will be {future_day} ({future_date})"
        ),
        "daysCount": days,
        "futureDay": future_day,
        "futureDate": future_date,
    }


def timer_executors(clock: Callable[[], datetime] = utc_clock) -> list[TimerActionExecutor]:
    return [TimerActionExecutor(timer_type, clock) for timer_type in TIMER_TYPES]
