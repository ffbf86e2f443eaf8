"""Tests for cadence.network.probes."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from cadence.analytics.engine import ConnectionAnalytics
from cadence.core.config import AnalyticsConfig
from cadence.network.probes import LatencyProbe

ENDPOINTS = [
    "https://alpha.example/ping",
    "https://beta.example/ping",
    "https://gamma.example/ping",
]


def _response(status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    return response


def _client(request: Any) -> MagicMock:
    client = MagicMock()
    client.is_closed = False
    client.request = AsyncMock(side_effect=request)
    client.aclose = AsyncMock()
    return client


async def _ok_request(*args: Any, **kwargs: Any) -> MagicMock:
    return _response(200)


def _two_up_one_refused() -> MagicMock:
    async def request(method: str, url: str, **kwargs: Any) -> MagicMock:
        if "gamma" in url:
            raise httpx.ConnectError("connection refused")
        return _response(200)

    return _client(request)


class TestProbe:
    """Single-endpoint probing."""

    @pytest.mark.asyncio
    async def test_successful_probe_reports_latency(self) -> None:
        probe = LatencyProbe(client=_client(_ok_request))
        result = await probe.probe("https://alpha.example/ping")

        assert result.success is True
        assert result.source == "alpha.example"
        assert result.latency_ms is not None
        assert result.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_head_is_the_default_method(self) -> None:
        client = _client(_ok_request)
        probe = LatencyProbe(client=client)
        await probe.probe("https://alpha.example/ping")

        client.request.assert_awaited_once_with("HEAD", "https://alpha.example/ping")

    @pytest.mark.asyncio
    async def test_transport_error_is_a_failed_result(self) -> None:
        async def request(*args: Any, **kwargs: Any) -> MagicMock:
            raise httpx.ConnectError("refused")

        probe = LatencyProbe(client=_client(request))
        result = await probe.probe("https://alpha.example/ping")

        assert result.success is False
        assert result.latency_ms is None

    @pytest.mark.asyncio
    async def test_timeout_cancels_and_fails(self) -> None:
        cancelled: list[bool] = []

        async def request(*args: Any, **kwargs: Any) -> MagicMock:
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise
            return _response(200)

        probe = LatencyProbe(client=_client(request))
        result = await probe.probe("https://alpha.example/ping", timeout_ms=10)

        assert result.success is False
        assert result.latency_ms is None
        assert cancelled == [True]

    @pytest.mark.asyncio
    async def test_error_status_counts_only_when_required(self) -> None:
        async def request(*args: Any, **kwargs: Any) -> MagicMock:
            return _response(503)

        probe = LatencyProbe(client=_client(request))
        lenient = await probe.probe("https://alpha.example/ping")
        strict = await probe.probe("https://alpha.example/ping", require_success_status=True)

        assert lenient.success is True
        assert strict.success is False
        assert strict.latency_ms is not None


class TestProbeAll:
    """Concurrent probing with settle-all semantics."""

    @pytest.mark.asyncio
    async def test_one_result_per_endpoint_in_order(self) -> None:
        probe = LatencyProbe(client=_two_up_one_refused())
        results = await probe.probe_all(ENDPOINTS)

        assert [r.url for r in results] == ENDPOINTS
        assert [r.source for r in results] == ["alpha.example", "beta.example", "gamma.example"]
        assert [r.success for r in results] == [True, True, False]

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_failed_result(self) -> None:
        async def request(method: str, url: str, **kwargs: Any) -> MagicMock:
            if "beta" in url:
                raise RuntimeError("boom")
            return _response(200)

        probe = LatencyProbe(client=_client(request))
        results = await probe.probe_all(ENDPOINTS)

        assert len(results) == 3
        assert results[1].success is False
        assert results[1].source == "beta.example"

    @pytest.mark.asyncio
    async def test_empty_endpoint_list(self) -> None:
        probe = LatencyProbe(client=_two_up_one_refused())
        assert await probe.probe_all([]) == []


class TestAnalyticsLatencyTests:
    """ConnectionAnalytics.perform_latency_tests against mocked endpoints."""

    @pytest.mark.asyncio
    async def test_two_succeed_one_rejects(self) -> None:
        client = _two_up_one_refused()
        analytics = ConnectionAnalytics(
            AnalyticsConfig(latency_test_urls=ENDPOINTS),
            probe=LatencyProbe(client=client),
        )

        results = await analytics.perform_latency_tests()

        assert len(results) == 3
        for entry in results:
            assert set(entry) == {"source", "latency_ms", "success"}
            assert isinstance(entry["success"], bool)
        assert [e["source"] for e in results] == [
            "alpha.example",
            "beta.example",
            "gamma.example",
        ]
        assert [e["success"] for e in results] == [True, True, False]
        assert all(call.args[0] == "GET" for call in client.request.await_args_list)


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_injected_client_is_left_open(self) -> None:
        client = _two_up_one_refused()
        probe = LatencyProbe(client=client)
        await probe.aclose()
        client.aclose.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owned_client_is_created_lazily_and_closed(self) -> None:
        probe = LatencyProbe()
        client = await probe._get_client()
        assert isinstance(client, httpx.AsyncClient)
        assert client.headers["Cache-Control"] == "no-cache"

        await probe.aclose()
        assert client.is_closed
