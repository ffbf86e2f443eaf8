"""Request-level timeout and retry wrapper using httpx.

ConnectionTimeoutHandler makes a single HTTP call resilient: each attempt is
bounded by a timeout that cancels the in-flight request, retryable statuses
and transport errors are retried with exponential backoff plus jitter, and
callers get a distinguishable error for each failure kind:

- ConnectionTimeoutError when an attempt's timeout fired (with
  ``skip_retry``), so callers can apply timeout-specific backoff.
- RetryableError once the retry budget is exhausted, wrapping the last
  underlying error.
- httpx.HTTPStatusError for non-retryable error statuses (4xx other than
  408/429), which are not retried.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from cadence.core.config import ConnectionTimeoutConfig
from cadence.core.errors import CadenceError, ConnectionTimeoutError, RetryableError
from cadence.core.logging import get_logger

_logger = get_logger("transport.timeout")

RequestFunction = Callable[..., Awaitable[Any]]

_JITTER_FACTOR = 0.1


class ConnectionTimeoutHandler:
    """Timeout, retry and backoff around ``httpx.AsyncClient.request``.

    Owns its HTTP client unless one is injected; injected clients are left
    open on ``aclose()``.
    """

    def __init__(
        self,
        config: ConnectionTimeoutConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or ConnectionTimeoutConfig()
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client.

        Returns:
            Configured httpx.AsyncClient instance.
        """
        if self._client is None or self._client.is_closed:
            # Deadlines are enforced per attempt with asyncio.wait_for.
            self._client = httpx.AsyncClient(timeout=None)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the owned HTTP client."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def get_config(self) -> ConnectionTimeoutConfig:
        return self._config.model_copy()

    def update_config(self, **changes: Any) -> None:
        """Apply partial config changes.

        Raises:
            pydantic.ValidationError: If the merged config is invalid.
        """
        merged = self._config.model_dump()
        merged.update(changes)
        self._config = ConnectionTimeoutConfig.model_validate(merged)

    def calculate_delay_ms(self, attempt: int) -> float:
        """Backoff before the attempt after ``attempt``.

        ``base * multiplier^(attempt-1)`` plus up to 10% random jitter,
        capped at ``max_delay_ms``.
        """
        exponential = self._config.base_delay_ms * (
            self._config.retry_multiplier ** (attempt - 1)
        )
        jitter = random.random() * _JITTER_FACTOR * exponential
        return min(exponential + jitter, self._config.max_delay_ms)

    async def request_with_timeout(
        self,
        url: str,
        *,
        method: str = "GET",
        timeout_ms: float | None = None,
        retries: int | None = None,
        skip_retry: bool = False,
        **request_kwargs: Any,
    ) -> Any:
        """Make a request with per-attempt timeout and retries.

        Args:
            url: Target URL.
            method: HTTP method.
            timeout_ms: Per-attempt timeout; defaults to the configured one.
            retries: Retries after the first attempt; defaults to the
                configured ``max_retries``.
            skip_retry: Make a single attempt and re-raise its error as is.
            **request_kwargs: Passed through to ``httpx.AsyncClient.request``
                (``json``, ``headers``, ``content``...).

        Returns:
            Parsed body: decoded JSON, text for ``text/*``, bytes otherwise.

        Raises:
            ConnectionTimeoutError: The attempt timed out (``skip_retry``).
            RetryableError: All attempts failed.
            httpx.HTTPStatusError: A non-retryable error status was returned.
        """
        timeout = timeout_ms if timeout_ms is not None else self._config.default_timeout_ms
        max_retries = retries if retries is not None else self._config.max_retries
        max_attempts = 1 if skip_retry else max_retries + 1

        client = await self._get_client()

        for attempt in range(1, max_attempts + 1):
            _logger.debug(
                "timeout.request_attempt",
                url=url,
                method=method,
                attempt=attempt,
                max_attempts=max_attempts,
            )
            try:
                response = await self._send(client, method, url, timeout, attempt, request_kwargs)

                if self._is_retryable_status(response.status_code) and attempt < max_attempts:
                    delay_ms = self.calculate_delay_ms(attempt)
                    _logger.warning(
                        "timeout.retry_status",
                        url=url,
                        status_code=response.status_code,
                        attempt=attempt,
                        delay_ms=round(delay_ms),
                    )
                    await asyncio.sleep(delay_ms / 1000.0)
                    continue

                if not response.is_success:
                    raise httpx.HTTPStatusError(
                        f"HTTP {response.status_code}: {response.reason_phrase}",
                        request=response.request,
                        response=response,
                    )
                return self._parse_response(response)

            except Exception as e:
                if skip_retry or self._is_final_status_error(e):
                    raise

                if attempt == max_attempts:
                    _logger.warning(
                        "timeout.retries_exhausted",
                        url=url,
                        attempts=attempt,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise RetryableError(attempt, max_retries, e) from e

                delay_ms = self.calculate_delay_ms(attempt)
                _logger.warning(
                    "timeout.retry_error",
                    url=url,
                    attempt=attempt,
                    delay_ms=round(delay_ms),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await asyncio.sleep(delay_ms / 1000.0)

        # Unreachable: the final attempt either returns or raises.
        raise CadenceError(f"Request to {url} made no attempts")

    def create_request_function(self, **base_options: Any) -> RequestFunction:
        """Bind default options for ``request_with_timeout``.

        Per-call options override the bound ones.
        """

        async def request(url: str, **options: Any) -> Any:
            return await self.request_with_timeout(url, **{**base_options, **options})

        return request

    # ─── Internal ─────────────────────────────────────────────────────

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        timeout_ms: float,
        attempt: int,
        request_kwargs: dict[str, Any],
    ) -> httpx.Response:
        try:
            return await asyncio.wait_for(
                client.request(method, url, **request_kwargs),
                timeout=timeout_ms / 1000.0,
            )
        except (TimeoutError, httpx.TimeoutException) as e:
            raise ConnectionTimeoutError(timeout_ms, attempt) from e

    def _is_retryable_status(self, status_code: int) -> bool:
        return status_code in self._config.retryable_statuses

    def _is_final_status_error(self, error: Exception) -> bool:
        return isinstance(error, httpx.HTTPStatusError) and not self._is_retryable_status(
            error.response.status_code
        )

    def _parse_response(self, response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        try:
            if "application/json" in content_type:
                return response.json()
            if "text/" in content_type:
                return response.text
            return response.content
        except ValueError as e:
            raise CadenceError(f"Failed to parse response: {e}") from e


def create_api_timeout_handler(
    client: httpx.AsyncClient | None = None,
    **overrides: Any,
) -> ConnectionTimeoutHandler:
    """Handler tuned for API calls: 15 s timeout, 2 retries, 500 ms base delay."""
    settings: dict[str, Any] = {
        "default_timeout_ms": 15000,
        "max_retries": 2,
        "base_delay_ms": 500,
        **overrides,
    }
    return ConnectionTimeoutHandler(ConnectionTimeoutConfig(**settings), client=client)


def create_upload_timeout_handler(
    client: httpx.AsyncClient | None = None,
    **overrides: Any,
) -> ConnectionTimeoutHandler:
    """Handler tuned for uploads: 60 s timeout, 1 retry, 2 s base delay."""
    settings: dict[str, Any] = {
        "default_timeout_ms": 60000,
        "max_retries": 1,
        "base_delay_ms": 2000,
        **overrides,
    }
    return ConnectionTimeoutHandler(ConnectionTimeoutConfig(**settings), client=client)


def create_critical_timeout_handler(
    client: httpx.AsyncClient | None = None,
    **overrides: Any,
) -> ConnectionTimeoutHandler:
    """Handler for critical operations: 45 s timeout, 5 retries, 15 s max delay."""
    settings: dict[str, Any] = {
        "default_timeout_ms": 45000,
        "max_retries": 5,
        "base_delay_ms": 1000,
        "max_delay_ms": 15000,
        **overrides,
    }
    return ConnectionTimeoutHandler(ConnectionTimeoutConfig(**settings), client=client)


__all__ = [
    "ConnectionTimeoutHandler",
    "RequestFunction",
    "create_api_timeout_handler",
    "create_critical_timeout_handler",
    "create_upload_timeout_handler",
]
