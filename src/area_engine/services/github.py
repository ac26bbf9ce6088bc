"""GitHub REST client for the issue/PR triggers and reactions."""

from __future__ import annotations

import base64
from typing import Any
from urllib.parse import quote

import httpx

from ..automation.step_configs import GitHubReactionConfig, GitHubTriggerConfig
from ..core.config import HTTPClientConfig
from ..core.exceptions import SinkError
from ..core.logger import get_logger
from ..storage.models import ServiceConnection
from .http import ServiceHTTPClient, ServiceHTTPError

logger = get_logger("services.github")

ISSUES = "issues"
PULLS = "pulls"


def parse_cursor_number(cursor: str | None) -> int | None:
    """Parse ``issue:123``, ``pr:456`` or a bare ``123`` into a number."""
    if cursor is None:
        return None
    text = cursor.strip()
    if ":" in text:
        text = text.rsplit(":", 1)[1]
    try:
        return int(text)
    except ValueError:
        return None


def normalise_item(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "number": item.get("number"),
        "title": item.get("title") or "",
        "body": item.get("body") or "",
        "url": item.get("html_url") or item.get("url"),
        "author": (item.get("user") or {}).get("login"),
        "createdAt": item.get("created_at"),
        "labels": [label.get("name") for label in item.get("labels") or [] if isinstance(label, dict)],
    }


class GitHubClient(ServiceHTTPClient):
    """Lists new issues/PRs and creates issues and pull requests."""

    service_name = "github"

    def __init__(
        self,
        base_url: str = "https://api.github.com",
        config: HTTPClientConfig | None = None,
        max_results: int = 10,
    ) -> None:
        super().__init__(base_url, config)
        self.max_results = max_results

    def _headers(self, connection: ServiceConnection) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if connection.access_token:
            headers["Authorization"] = f"Bearer {connection.access_token}"
        return headers

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def fetch_new_items(
        self,
        connection: ServiceConnection,
        config: GitHubTriggerConfig,
        after_cursor: str | None,
        kind: str = ISSUES,
    ) -> list[dict[str, Any]]:
        """Return open issues or pull requests numbered above the cursor.

        Args:
            connection: GitHub connection carrying the token
            config: Repository to watch; items must carry every configured label
            after_cursor: ``issue:N`` / ``pr:N`` / ``N`` or None
            kind: ``issues`` or ``pulls``

        Raises:
            TransientSourceError: If the API call fails
        """
        after = parse_cursor_number(after_cursor)
        path = f"/repos/{config.owner}/{config.repo}/{kind}"
        params = {
            "state": "open",
            "sort": "created",
            "direction": "desc",
            "per_page": self.max_results,
        }
        if kind == ISSUES and config.labels:
            params["labels"] = ",".join(config.labels)
        try:
            async with self._client() as client:
                response = await self._request_with_retry(
                    client, "GET", path, params=params, headers=self._headers(connection)
                )
                payload = response.json()
        except ServiceHTTPError as exc:
            raise exc.as_source_error() from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ServiceHTTPError(str(exc), self.service_name).as_source_error() from exc

        items = []
        for raw in payload if isinstance(payload, list) else []:
            # The issues endpoint also lists pull requests
            if kind == ISSUES and "pull_request" in raw:
                continue
            number = raw.get("number")
            if not isinstance(number, int):
                continue
            if after is not None and number <= after:
                continue
            item = normalise_item(raw)
            # The pulls endpoint has no label filter
            if config.labels and not set(config.labels) <= set(item["labels"]):
                continue
            items.append(item)

        logger.debug("Retrieved %d new GitHub %s from %s", len(items), kind, config.full_name)
        return items

    async def fetch_new_issues(
        self, connection: ServiceConnection, config: GitHubTriggerConfig, after_cursor: str | None
    ) -> list[dict[str, Any]]:
        return await self.fetch_new_items(connection, config, after_cursor, kind=ISSUES)

    async def fetch_new_pull_requests(
        self, connection: ServiceConnection, config: GitHubTriggerConfig, after_cursor: str | None
    ) -> list[dict[str, Any]]:
        return await self.fetch_new_items(connection, config, after_cursor, kind=PULLS)

    # ------------------------------------------------------------------
    # Sinks
    # ------------------------------------------------------------------

    async def create_issue(
        self, connection: ServiceConnection, config: GitHubReactionConfig
    ) -> dict[str, Any]:
        """Open an issue from an already rendered config.

        Raises:
            PermanentSinkError: On 4xx responses
            TransientSinkError: On 5xx responses or network errors
        """
        body: dict[str, Any] = {"title": config.issue_title}
        if config.issue_body:
            body["body"] = config.issue_body
        if config.labels:
            body["labels"] = list(config.labels)

        try:
            async with self._client() as client:
                response = await self._request_with_retry(
                    client,
                    "POST",
                    f"/repos/{config.owner}/{config.repo}/issues",
                    json=body,
                    headers=self._headers(connection),
                )
                created = response.json()
        except ServiceHTTPError as exc:
            raise exc.as_sink_error() from exc

        logger.info(
            "Created issue #%s in %s/%s: %s",
            created.get("number"),
            config.owner,
            config.repo,
            created.get("html_url"),
        )
        return normalise_item(created)

    async def create_pull_request(
        self, connection: ServiceConnection, config: GitHubReactionConfig
    ) -> dict[str, Any]:
        """Create a branch, commit one file to it and open a pull request.

        An existing source branch (422 on creation) is reused.
        """
        owner, repo = config.owner, config.repo
        source, target = config.source_branch, config.target_branch or "main"
        headers = self._headers(connection)
        logger.info("Creating pull request in %s/%s: %s -> %s", owner, repo, source, target)

        try:
            async with self._client() as client:
                target_sha = await self._get_ref_sha(client, owner, repo, target, headers)

                created = await self._request_with_retry(
                    client,
                    "POST",
                    f"/repos/{owner}/{repo}/git/refs",
                    json={"ref": f"refs/heads/{source}", "sha": target_sha},
                    headers=headers,
                    accept_statuses=(422,),
                )
                if created.status_code == 422:
                    logger.warning(
                        "Branch %s already exists in %s/%s, using existing branch", source, owner, repo
                    )
                    await self._get_ref_sha(client, owner, repo, source, headers)

                content = base64.b64encode((config.file_content or "").encode("utf-8")).decode("ascii")
                await self._request_with_retry(
                    client,
                    "PUT",
                    f"/repos/{owner}/{repo}/contents/{quote(config.file_path or '', safe='/')}",
                    json={
                        "message": config.commit_message or config.pr_title,
                        "content": content,
                        "branch": source,
                    },
                    headers=headers,
                )

                response = await self._request_with_retry(
                    client,
                    "POST",
                    f"/repos/{owner}/{repo}/pulls",
                    json={
                        "title": config.pr_title,
                        "body": config.pr_body or "",
                        "head": source,
                        "base": target,
                    },
                    headers=headers,
                )
                pull = response.json()
        except ServiceHTTPError as exc:
            raise exc.as_sink_error() from exc

        logger.info("Created PR #%s in %s/%s", pull.get("number"), owner, repo)
        return normalise_item(pull)

    async def _get_ref_sha(
        self,
        client: httpx.AsyncClient,
        owner: str | None,
        repo: str | None,
        branch: str,
        headers: dict[str, str],
    ) -> str:
        response = await self._request_with_retry(
            client, "GET", f"/repos/{owner}/{repo}/git/ref/heads/{branch}", headers=headers
        )
        sha = (response.json().get("object") or {}).get("sha")
        if not sha:
            raise SinkError(f"No SHA returned for branch {branch}", self.service_name)
        return sha
