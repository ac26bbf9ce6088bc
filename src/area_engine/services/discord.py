"""Discord client: bot API channel messages and webhook posts."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from ..core.config import HTTPClientConfig
from ..core.exceptions import PermanentSinkError
from ..core.logger import get_logger
from .http import ServiceHTTPClient, ServiceHTTPError

logger = get_logger("services.discord")

MAX_CONTENT_LENGTH = 2000
EMBED_COLOR = 3447003


def truncate(text: str | None, limit: int) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit]


def extract_channel_id(metadata_json: str | None) -> str | None:
    """Read ``channelId`` from a connection's metadata JSON."""
    if not metadata_json or not metadata_json.strip():
        logger.warning("Discord connection metadata is empty")
        return None
    try:
        metadata = json.loads(metadata_json)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse Discord connection metadata: %s", exc)
        return None
    channel_id = metadata.get("channelId") if isinstance(metadata, dict) else None
    if channel_id is None:
        logger.warning("channelId not found in Discord connection metadata")
        return None
    return str(channel_id)


def email_embed(message: dict[str, Any]) -> dict[str, Any]:
    """Build a rich embed describing a Gmail message."""
    return {
        "title": truncate(f"New Email: {message.get('subject') or ''}", 256),
        "description": truncate(message.get("snippet"), 4096),
        "color": EMBED_COLOR,
        "fields": [
            {"name": "From", "value": truncate(message.get("from"), 1024) or "Unknown", "inline": True},
            {"name": "Received", "value": message.get("receivedAt") or "Unknown", "inline": True},
        ],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class DiscordClient(ServiceHTTPClient):
    service_name = "discord"

    def __init__(
        self,
        base_url: str = "https://discord.com/api/v10",
        config: HTTPClientConfig | None = None,
    ) -> None:
        super().__init__(base_url, config)

    async def send_channel_message(
        self,
        bot_token: str,
        channel_id: str,
        content: str | None = None,
        embeds: list[dict[str, Any]] | None = None,
    ) -> None:
        """Post a message to a channel through the bot API.

        Raises:
            PermanentSinkError: On missing arguments or a 4xx response
            TransientSinkError: On 5xx responses or network errors after retries
        """
        if not bot_token:
            raise PermanentSinkError("Discord bot token is required", self.service_name)
        if not channel_id:
            raise PermanentSinkError("Discord channel ID is required", self.service_name)
        if not content and not embeds:
            raise PermanentSinkError("Message content is required", self.service_name)

        payload: dict[str, Any] = {}
        if content:
            payload["content"] = truncate(content, MAX_CONTENT_LENGTH)
        if embeds:
            payload["embeds"] = embeds

        logger.debug(
            "Sending Discord message to channel %s (%d chars)", channel_id, len(content or "")
        )
        try:
            async with self._client() as client:
                await self._request_with_retry(
                    client,
                    "POST",
                    f"/channels/{channel_id}/messages",
                    json=payload,
                    headers={"Authorization": f"Bot {bot_token}"},
                )
        except ServiceHTTPError as exc:
            raise exc.as_sink_error() from exc
        logger.info("Discord message sent to channel %s", channel_id)

    async def send_webhook_message(
        self,
        webhook_url: str,
        content: str | None = None,
        embeds: list[dict[str, Any]] | None = None,
        username: str | None = None,
    ) -> None:
        """Post a message to an incoming webhook URL."""
        if not webhook_url:
            raise PermanentSinkError("Discord webhook URL is required", self.service_name)
        if not content and not embeds:
            raise PermanentSinkError("Message content is required", self.service_name)

        payload: dict[str, Any] = {}
        if content:
            payload["content"] = truncate(content, MAX_CONTENT_LENGTH)
        if embeds:
            payload["embeds"] = embeds
        if username:
            payload["username"] = username

        try:
            async with self._client() as client:
                await self._request_with_retry(client, "POST", webhook_url, json=payload)
        except ServiceHTTPError as exc:
            raise exc.as_sink_error() from exc
        logger.info("Discord webhook message sent")
