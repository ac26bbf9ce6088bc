"""Reaction executors.

A reaction executor performs one effect on an external sink. It renders its
templates against the trigger context and hands the result to its service
client. Sink failures surface as :class:`SinkError` subclasses; a missing
required setting raises :class:`InvalidReactionConfigError`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from ..core.exceptions import InvalidReactionConfigError
from ..core.logger import get_logger
from ..services.discord import email_embed, extract_channel_id
from ..storage.models import ServiceConnection
from .adapter import ReactionView
from .context import TriggerContext
from .step_configs import GitHubReactionConfig
from .templating import render_optional, render_template

if TYPE_CHECKING:
    from ..services.discord import DiscordClient
    from ..services.github import GitHubClient

logger = get_logger("automation.reactions")

DEFAULT_EMAIL_MESSAGE = "You have {count} new email(s) matching your AREA filters."
DEFAULT_MESSAGE = "AREA triggered successfully!"


class BaseReactionExecutor(ABC):
    """Base class for reaction executors."""

    reaction_type: str

    @abstractmethod
    async def execute(self, view: ReactionView, context: TriggerContext) -> None:
        """Perform the reaction.

        Args:
            view: View of this reaction within its workflow
            context: Context produced by the trigger in this evaluation pass
        """

    def _require_connection(self, view: ReactionView, service_type: str) -> ServiceConnection:
        connection = view.reaction_connection()
        if connection is None:
            raise InvalidReactionConfigError(
                self.reaction_type, f"{service_type.capitalize()} connection not configured"
            )
        if (connection.service_type or "").lower() != service_type:
            raise InvalidReactionConfigError(
                self.reaction_type,
                f"Invalid reaction connection type: expected {service_type}, "
                f"found {connection.service_type}",
            )
        return connection

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.reaction_type})"


class DiscordSendMessageExecutor(BaseReactionExecutor):
    """Posts to a Discord channel through the bot API.

    The bot token is the connection's access token; the channel comes from
    the connection metadata, falling back to a ``channelId`` in the reaction
    config. Without a message template, a Gmail trigger produces a rich
    embed and anything else a default text.
    """

    reaction_type = "discord.send_message"

    def __init__(self, client: DiscordClient) -> None:
        self.client = client

    def format_message(self, template: str | None, context: TriggerContext) -> str:
        if not template or not template.strip():
            count = context.get_int("messageCount")
            if count is not None and count > 0:
                return DEFAULT_EMAIL_MESSAGE.format(count=count)
            return DEFAULT_MESSAGE
        return render_template(template, context.to_dict())

    def _embeds(self, template: str | None, context: TriggerContext) -> list[dict[str, Any]] | None:
        latest = context.get("latestMessage")
        if isinstance(latest, dict) and not (template and template.strip()):
            return [email_embed(latest)]
        return None

    async def execute(self, view: ReactionView, context: TriggerContext) -> None:
        config = view.discord_config()
        template = config.message_template
        embeds = self._embeds(template, context)
        content = None if embeds else self.format_message(template, context)
        await self._deliver(view, config.channel_id, content, embeds)

    async def _deliver(
        self,
        view: ReactionView,
        fallback_channel_id: str | None,
        content: str | None,
        embeds: list[dict[str, Any]] | None,
    ) -> None:
        connection = self._require_connection(view, "discord")
        if not connection.access_token:
            raise InvalidReactionConfigError(
                self.reaction_type, "Discord bot token not found in connection"
            )
        channel_id = extract_channel_id(connection.metadata_json) or fallback_channel_id
        if not channel_id:
            raise InvalidReactionConfigError(
                self.reaction_type, "Discord channel ID not found in connection metadata"
            )

        logger.debug(
            "Workflow %s: sending Discord message to channel %s", view.workflow_id, channel_id
        )
        await self.client.send_channel_message(
            connection.access_token, channel_id, content=content, embeds=embeds
        )


class DiscordSendWebhookExecutor(DiscordSendMessageExecutor):
    """Posts to a configured Discord webhook URL, else through the bot API."""

    reaction_type = "discord.send_webhook"

    async def execute(self, view: ReactionView, context: TriggerContext) -> None:
        config = view.discord_config()
        template = config.message_template
        embeds = self._embeds(template, context)
        content = None if embeds else self.format_message(template, context)

        if config.webhook_url:
            logger.debug("Workflow %s: sending Discord webhook message", view.workflow_id)
            await self.client.send_webhook_message(
                config.webhook_url,
                content=content,
                embeds=embeds,
                username="AREA Bot" if embeds else None,
            )
            return
        await self._deliver(view, config.channel_id, content, embeds)


class _GitHubReactionExecutor(BaseReactionExecutor):
    def __init__(self, client: GitHubClient) -> None:
        self.client = client

    def _config(self, view: ReactionView) -> GitHubReactionConfig:
        config = view.github_reaction_config()
        if not config.owner or not config.repo:
            raise InvalidReactionConfigError(self.reaction_type, "GitHub repository not configured")
        return config


class GitHubCreateIssueExecutor(_GitHubReactionExecutor):
    reaction_type = "github.create_issue"

    async def execute(self, view: ReactionView, context: TriggerContext) -> None:
        config = self._config(view)
        if not config.issue_title:
            raise InvalidReactionConfigError(self.reaction_type, "GitHub issue title not configured")
        connection = self._require_connection(view, "github")

        values = context.to_dict()
        rendered = config.model_copy(
            update={
                "issue_title": render_template(config.issue_title, values),
                "issue_body": render_optional(config.issue_body, values),
            }
        )
        created = await self.client.create_issue(connection, rendered)
        logger.info(
            "Workflow %s created issue #%s in %s/%s",
            view.workflow_id,
            created.get("number"),
            config.owner,
            config.repo,
        )


class GitHubCreatePullRequestExecutor(_GitHubReactionExecutor):
    reaction_type = "github.create_pr"

    async def execute(self, view: ReactionView, context: TriggerContext) -> None:
        config = self._config(view)
        for value, label in (
            (config.pr_title, "PR title"),
            (config.source_branch, "source branch"),
            (config.file_path, "file path"),
        ):
            if not value:
                raise InvalidReactionConfigError(
                    self.reaction_type, f"GitHub {label} not configured"
                )
        connection = self._require_connection(view, "github")

        values = context.to_dict()
        pr_title = render_template(config.pr_title, values)
        rendered = config.model_copy(
            update={
                "pr_title": pr_title,
                "pr_body": render_optional(config.pr_body, values),
                "source_branch": render_template(config.source_branch, values),
                "file_path": render_template(config.file_path, values),
                "file_content": render_optional(config.file_content, values) or "",
                "commit_message": render_optional(config.commit_message, values) or pr_title,
            }
        )
        created = await self.client.create_pull_request(connection, rendered)
        logger.info(
            "Workflow %s created PR #%s in %s/%s",
            view.workflow_id,
            created.get("number"),
            config.owner,
            config.repo,
        )
