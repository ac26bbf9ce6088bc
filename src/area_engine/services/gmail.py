"""Gmail API client used by the ``gmail.email_received`` trigger."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from ..automation.step_configs import GmailTriggerConfig
from ..core.config import HTTPClientConfig
from ..core.logger import get_logger
from ..storage.models import ServiceConnection
from .http import ServiceHTTPClient, ServiceHTTPError, bearer_headers

logger = get_logger("services.gmail")

MESSAGES_PATH = "/gmail/v1/users/me/messages"


def parse_from_address(header: str | None) -> str:
    """Extract ``email@example.com`` from ``Name <email@example.com>``."""
    if not header:
        return "Unknown"
    start, end = header.find("<"), header.find(">")
    if start != -1 and end > start:
        return header[start + 1 : end]
    return header.strip()


def parse_message(detail: dict[str, Any]) -> dict[str, Any]:
    """Flatten a Gmail message resource into the fields triggers use."""
    subject: str | None = None
    sender: str | None = None
    for header in (detail.get("payload") or {}).get("headers") or []:
        name = str(header.get("name", "")).lower()
        if name == "subject":
            subject = header.get("value")
        elif name == "from":
            sender = parse_from_address(header.get("value"))

    received_at = None
    internal_date = detail.get("internalDate")
    if internal_date is not None:
        try:
            received_at = datetime.fromtimestamp(
                int(internal_date) / 1000, tz=timezone.utc
            ).isoformat()
        except (TypeError, ValueError):
            received_at = None

    return {
        "id": detail.get("id"),
        "threadId": detail.get("threadId"),
        "subject": subject or "(No Subject)",
        "from": sender or "Unknown",
        "snippet": detail.get("snippet") or "",
        "receivedAt": received_at,
    }


class GmailClient(ServiceHTTPClient):
    """Fetches unread messages newer than a cursor."""

    service_name = "gmail"

    def __init__(
        self,
        base_url: str = "https://gmail.googleapis.com",
        config: HTTPClientConfig | None = None,
        max_results: int = 10,
    ) -> None:
        super().__init__(base_url, config)
        self.max_results = max_results

    async def fetch_new_items(
        self,
        connection: ServiceConnection,
        config: GmailTriggerConfig,
        after_cursor: str | None,
    ) -> list[dict[str, Any]]:
        """Return unread messages whose id sorts after ``after_cursor``.

        Raises:
            TransientSourceError: If the Gmail API cannot be reached or rejects the call
        """
        query = config.search_query()
        params: dict[str, Any] = {"labelIds": "UNREAD", "maxResults": self.max_results}
        if query:
            params["q"] = query
        headers = bearer_headers(connection.access_token)

        logger.debug(
            "Fetching Gmail messages: query=%r after=%s connection=%s",
            query,
            after_cursor,
            connection.id,
        )
        try:
            async with self._client() as client:
                response = await self._request_with_retry(
                    client, "GET", MESSAGES_PATH, params=params, headers=headers
                )
                refs = response.json().get("messages") or []
                new_ids = [
                    ref["id"]
                    for ref in refs
                    if ref.get("id") and (after_cursor is None or ref["id"] > after_cursor)
                ]
                messages = []
                for message_id in new_ids:
                    detail = await self._request_with_retry(
                        client,
                        "GET",
                        f"{MESSAGES_PATH}/{message_id}",
                        params={"format": "metadata", "metadataHeaders": ["Subject", "From"]},
                        headers=headers,
                    )
                    messages.append(parse_message(detail.json()))
        except ServiceHTTPError as exc:
            raise exc.as_source_error() from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ServiceHTTPError(str(exc), self.service_name).as_source_error() from exc

        logger.debug("Retrieved %d new Gmail messages", len(messages))
        return messages
