"""Async HTTP base for service clients with common retry and error handling.

This module provides:
- Exponential backoff retry on 5xx responses and network errors
- No retry on 4xx responses
- Structured logging with service context
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from ..core.config import HTTPClientConfig
from ..core.exceptions import (
    AreaEngineError,
    PermanentSinkError,
    SinkError,
    TransientSinkError,
    TransientSourceError,
)
from ..core.logger import get_logger

logger = get_logger("services.http")


class ServiceHTTPError(AreaEngineError):
    """An HTTP call to an external service failed.

    ``status_code`` is None for network errors. 4xx failures are not retriable.
    """

    def __init__(self, message: str, service: str, status_code: int | None = None) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(message)

    @property
    def retriable(self) -> bool:
        return self.status_code is None or self.status_code >= 500

    def as_sink_error(self) -> SinkError:
        error_class = TransientSinkError if self.retriable else PermanentSinkError
        return error_class(str(self), self.service, self.status_code)

    def as_source_error(self) -> TransientSourceError:
        return TransientSourceError(str(self), self.service, self.status_code)


class ServiceHTTPClient:
    """Base class for the per-service API clients.

    A fresh ``httpx.AsyncClient`` is opened per operation so that a client
    object can be shared across event loops (each polling tick runs its own).
    """

    service_name: str = "http"

    def __init__(self, base_url: str, config: HTTPClientConfig | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.config = config or HTTPClientConfig()

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.config.timeout) as client:
            yield client

    async def _request_with_retry(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        accept_statuses: tuple[int, ...] = (),
    ) -> httpx.Response:
        """Make an HTTP request with exponential backoff retry.

        Args:
            client: Open httpx AsyncClient
            method: HTTP method
            url: Path relative to the base URL, or an absolute URL
            json: JSON body
            params: Query parameters
            headers: Request headers
            accept_statuses: Error statuses returned to the caller instead of raised

        Returns:
            The successful (or accepted) response

        Raises:
            ServiceHTTPError: On a 4xx response, or when all attempts failed
        """
        retry = self.config.retry
        delay = retry.backoff_seconds
        last_error: ServiceHTTPError | None = None

        for attempt in range(retry.max_attempts):
            try:
                response = await client.request(
                    method, url, json=json, params=params, headers=headers
                )
                if response.status_code in accept_statuses:
                    return response
                response.raise_for_status()
                return response

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                last_error = ServiceHTTPError(
                    f"{self.service_name} API returned {status} for {method} {url}",
                    self.service_name,
                    status,
                )
                if not last_error.retriable:
                    logger.error(
                        "HTTP request rejected",
                        extra={
                            "service": self.service_name,
                            "url": url,
                            "status_code": status,
                        },
                    )
                    raise last_error from e

            except httpx.HTTPError as e:
                last_error = ServiceHTTPError(
                    f"{self.service_name} request failed for {method} {url}: {e}",
                    self.service_name,
                )

            if attempt < retry.max_attempts - 1:
                logger.warning(
                    "HTTP request failed, retrying",
                    extra={
                        "service": self.service_name,
                        "url": url,
                        "attempt": attempt + 1,
                        "max_attempts": retry.max_attempts,
                        "status_code": last_error.status_code,
                        "retry_delay": delay,
                    },
                )
                await asyncio.sleep(delay)
                delay = min(delay * retry.backoff_multiplier, retry.max_backoff_seconds)

        logger.error(
            "HTTP request failed after all retries",
            extra={
                "service": self.service_name,
                "url": url,
                "attempts": retry.max_attempts,
                "status_code": last_error.status_code if last_error else None,
            },
        )
        if last_error is not None:
            raise last_error
        raise RuntimeError("Unknown error during HTTP request")


def bearer_headers(token: str | None) -> dict[str, str]:
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers
