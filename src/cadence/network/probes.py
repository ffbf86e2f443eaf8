"""Timed HTTP latency probes.

Probes are timing beacons only: the response body is never read. A batch of
probes runs concurrently and every probe settles on its own, so one endpoint timing
out or refusing the connection cannot block or fail the others.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from urllib.parse import urlparse

import httpx

from cadence.core.logging import get_logger
from cadence.network.models import LatencyTestResult
from cadence.utils.time import epoch_now

_logger = get_logger("network.probes")


def _hostname(url: str) -> str:
    return urlparse(url).hostname or url


class LatencyProbe:
    """Measures round-trip latency to HTTP endpoints.

    Owns an ``httpx.AsyncClient`` unless one is injected; injected clients are
    left open on ``aclose()``.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            # Per-probe deadlines are enforced with asyncio.wait_for.
            self._client = httpx.AsyncClient(
                timeout=None,
                follow_redirects=False,
                headers={"Cache-Control": "no-cache"},
            )
            self._owns_client = True
        return self._client

    async def probe(
        self,
        url: str,
        *,
        method: str = "HEAD",
        timeout_ms: float = 5000.0,
        require_success_status: bool = False,
    ) -> LatencyTestResult:
        """Probe a single endpoint. Never raises.

        Args:
            url: Endpoint to probe.
            method: HTTP method, HEAD for connectivity probes, GET for
                analytics tests against endpoints that reject HEAD.
            timeout_ms: Per-probe timeout; the in-flight request is cancelled
                when it elapses.
            require_success_status: When True, a non-2xx response counts as a
                failed probe (the latency is still reported).

        Returns:
            LatencyTestResult tagged with the endpoint hostname.
        """
        source = _hostname(url)
        start = time.monotonic()
        try:
            client = await self._get_client()
            response = await asyncio.wait_for(
                client.request(method, url),
                timeout=timeout_ms / 1000.0,
            )
        except (TimeoutError, httpx.HTTPError, OSError) as e:
            _logger.debug(
                "probe.failed",
                url=url,
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )
            return LatencyTestResult(
                url=url,
                source=source,
                latency_ms=None,
                success=False,
                timestamp=epoch_now(),
            )

        latency_ms = (time.monotonic() - start) * 1000.0
        success = response.is_success if require_success_status else True
        return LatencyTestResult(
            url=url,
            source=source,
            latency_ms=latency_ms,
            success=success,
            timestamp=epoch_now(),
        )

    async def probe_all(
        self,
        urls: Sequence[str],
        *,
        method: str = "HEAD",
        timeout_ms: float = 5000.0,
        require_success_status: bool = False,
    ) -> list[LatencyTestResult]:
        """Probe every endpoint concurrently; one result per URL, in order."""
        outcomes = await asyncio.gather(
            *(
                self.probe(
                    url,
                    method=method,
                    timeout_ms=timeout_ms,
                    require_success_status=require_success_status,
                )
                for url in urls
            ),
            return_exceptions=True,
        )

        results: list[LatencyTestResult] = []
        for url, outcome in zip(urls, outcomes, strict=True):
            if isinstance(outcome, LatencyTestResult):
                results.append(outcome)
                continue
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            _logger.warning(
                "probe.crashed",
                url=url,
                error=str(outcome),
                error_type=type(outcome).__name__,
            )
            results.append(
                LatencyTestResult(
                    url=url,
                    source=_hostname(url),
                    latency_ms=None,
                    success=False,
                    timestamp=epoch_now(),
                )
            )
        return results

    async def aclose(self) -> None:
        """Close the owned HTTP client."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None if self._owns_client else self._client


__all__ = ["LatencyProbe"]
