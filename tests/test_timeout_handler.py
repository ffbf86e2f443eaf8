"""Tests for cadence.transport.timeout."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from pydantic import ValidationError

from cadence.core.config import ConnectionTimeoutConfig
from cadence.core.errors import CadenceError, ConnectionTimeoutError, RetryableError
from cadence.transport.timeout import (
    ConnectionTimeoutHandler,
    create_api_timeout_handler,
    create_critical_timeout_handler,
    create_upload_timeout_handler,
)

URL = "https://api.example.com/v1/sessions"


def _response(status_code: int = 200, **kwargs: Any) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("GET", URL), **kwargs)


def _client(*outcomes: Any) -> MagicMock:
    """Mock AsyncClient whose request() yields the given responses or errors in turn."""
    client = MagicMock(spec=httpx.AsyncClient)
    client.is_closed = False
    client.request = AsyncMock(side_effect=list(outcomes))
    client.aclose = AsyncMock()
    return client


def _handler(client: MagicMock, **config: Any) -> ConnectionTimeoutHandler:
    settings: dict[str, Any] = {"base_delay_ms": 0, "max_delay_ms": 0, **config}
    return ConnectionTimeoutHandler(ConnectionTimeoutConfig(**settings), client=client)


# ─── Response parsing ─────────────────────────────────────────────────


class TestResponseParsing:
    @pytest.mark.asyncio
    async def test_json_body(self) -> None:
        handler = _handler(_client(_response(json={"ok": True})))
        assert await handler.request_with_timeout(URL) == {"ok": True}

    @pytest.mark.asyncio
    async def test_text_body(self) -> None:
        handler = _handler(_client(_response(text="pong")))
        assert await handler.request_with_timeout(URL) == "pong"

    @pytest.mark.asyncio
    async def test_binary_body(self) -> None:
        handler = _handler(_client(_response(content=b"\x00\x01")))
        assert await handler.request_with_timeout(URL) == b"\x00\x01"

    @pytest.mark.asyncio
    async def test_malformed_json_raises(self) -> None:
        response = _response(content=b"{oops", headers={"content-type": "application/json"})
        handler = _handler(_client(response))
        with pytest.raises(CadenceError, match="Failed to parse response"):
            await handler.request_with_timeout(URL, skip_retry=True)

    @pytest.mark.asyncio
    async def test_request_options_are_forwarded(self) -> None:
        client = _client(_response(json={}))
        handler = _handler(client)

        await handler.request_with_timeout(
            URL, method="POST", json={"a": 1}, headers={"x-token": "t"}
        )

        client.request.assert_awaited_once_with(
            "POST", URL, json={"a": 1}, headers={"x-token": "t"}
        )


# ─── Retry behavior ───────────────────────────────────────────────────


class TestRetries:
    @pytest.mark.asyncio
    async def test_retryable_status_then_success(self) -> None:
        client = _client(_response(503), _response(json={"ok": True}))
        handler = _handler(client)

        assert await handler.request_with_timeout(URL) == {"ok": True}
        assert client.request.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_retryable_error(self) -> None:
        client = _client(*[_response(502) for _ in range(3)])
        handler = _handler(client, max_retries=2)

        with pytest.raises(RetryableError) as exc_info:
            await handler.request_with_timeout(URL)

        assert client.request.await_count == 3
        assert exc_info.value.attempt == 3
        assert exc_info.value.max_retries == 2
        assert isinstance(exc_info.value.original_error, httpx.HTTPStatusError)
        assert exc_info.value.__cause__ is exc_info.value.original_error

    @pytest.mark.asyncio
    async def test_non_retryable_status_is_not_retried(self) -> None:
        client = _client(_response(404), _response(json={}))
        handler = _handler(client)

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await handler.request_with_timeout(URL)

        assert exc_info.value.response.status_code == 404
        assert client.request.await_count == 1

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self) -> None:
        client = _client(httpx.ConnectError("refused"), _response(text="ok"))
        handler = _handler(client)

        assert await handler.request_with_timeout(URL) == "ok"
        assert client.request.await_count == 2

    @pytest.mark.asyncio
    async def test_skip_retry_reraises_original_error(self) -> None:
        client = _client(httpx.ConnectError("refused"))
        handler = _handler(client)

        with pytest.raises(httpx.ConnectError):
            await handler.request_with_timeout(URL, skip_retry=True)

        assert client.request.await_count == 1

    @pytest.mark.asyncio
    async def test_per_call_retries_override_config(self) -> None:
        client = _client(*[httpx.ConnectError("refused") for _ in range(2)])
        handler = _handler(client, max_retries=5)

        with pytest.raises(RetryableError):
            await handler.request_with_timeout(URL, retries=1)

        assert client.request.await_count == 2


# ─── Timeouts ─────────────────────────────────────────────────────────


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_timeout_with_skip_retry(self) -> None:
        cancelled = asyncio.Event()

        async def hang(*args: Any, **kwargs: Any) -> httpx.Response:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return _response()

        client = _client()
        client.request = AsyncMock(side_effect=hang)
        handler = _handler(client)

        with pytest.raises(ConnectionTimeoutError) as exc_info:
            await handler.request_with_timeout(URL, timeout_ms=20, skip_retry=True)

        assert exc_info.value.timeout_ms == 20
        assert exc_info.value.attempt == 1
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_timeouts_exhaust_into_retryable_error(self) -> None:
        async def hang(*args: Any, **kwargs: Any) -> httpx.Response:
            await asyncio.sleep(10)
            return _response()

        client = _client()
        client.request = AsyncMock(side_effect=hang)
        handler = _handler(client, max_retries=1)

        with pytest.raises(RetryableError) as exc_info:
            await handler.request_with_timeout(URL, timeout_ms=10)

        assert client.request.await_count == 2
        assert isinstance(exc_info.value.original_error, ConnectionTimeoutError)
        assert exc_info.value.original_error.attempt == 2

    @pytest.mark.asyncio
    async def test_httpx_timeout_maps_to_connection_timeout(self) -> None:
        client = _client(httpx.ReadTimeout("read timed out"))
        handler = _handler(client)

        with pytest.raises(ConnectionTimeoutError):
            await handler.request_with_timeout(URL, skip_retry=True)


# ─── Backoff ──────────────────────────────────────────────────────────


class TestCalculateDelay:
    def test_exponential_without_jitter(self) -> None:
        handler = ConnectionTimeoutHandler(ConnectionTimeoutConfig(), client=_client())
        with patch("cadence.transport.timeout.random.random", return_value=0.0):
            assert handler.calculate_delay_ms(1) == 1000.0
            assert handler.calculate_delay_ms(2) == 2000.0
            assert handler.calculate_delay_ms(3) == 4000.0

    def test_jitter_adds_up_to_ten_percent(self) -> None:
        handler = ConnectionTimeoutHandler(ConnectionTimeoutConfig(), client=_client())
        with patch("cadence.transport.timeout.random.random", return_value=1.0):
            assert handler.calculate_delay_ms(2) == pytest.approx(2200.0)

    def test_delay_is_capped(self) -> None:
        handler = ConnectionTimeoutHandler(ConnectionTimeoutConfig(), client=_client())
        with patch("cadence.transport.timeout.random.random", return_value=0.5):
            assert handler.calculate_delay_ms(10) == 10000.0

    @pytest.mark.asyncio
    async def test_backoff_sleeps_between_attempts(self) -> None:
        client = _client(_response(503), _response(json={}))
        handler = ConnectionTimeoutHandler(
            ConnectionTimeoutConfig(base_delay_ms=250, max_delay_ms=250), client=client
        )

        with patch("cadence.transport.timeout.asyncio.sleep", new=AsyncMock()) as sleep:
            await handler.request_with_timeout(URL)

        sleep.assert_awaited_once_with(0.25)


# ─── Configuration and factories ──────────────────────────────────────


class TestConfiguration:
    @pytest.mark.asyncio
    async def test_create_request_function_binds_options(self) -> None:
        client = _client(_response(json={}), _response(json={}))
        handler = _handler(client)
        post = handler.create_request_function(method="POST", headers={"x": "1"})

        await post(URL, json={"n": 1})
        await post(URL, method="PUT")

        first, second = client.request.await_args_list
        assert first.args == ("POST", URL)
        assert first.kwargs == {"headers": {"x": "1"}, "json": {"n": 1}}
        assert second.args == ("PUT", URL)

    def test_update_config_merges(self) -> None:
        handler = _handler(_client())
        handler.update_config(max_retries=7)
        config = handler.get_config()
        assert config.max_retries == 7
        assert config.default_timeout_ms == 30000.0

    def test_update_config_validates(self) -> None:
        handler = ConnectionTimeoutHandler(client=_client())
        with pytest.raises(ValidationError):
            handler.update_config(max_delay_ms=10)
        assert handler.get_config().max_delay_ms == 10000.0

    def test_get_config_is_a_copy(self) -> None:
        handler = _handler(_client())
        handler.get_config().max_retries = 42
        assert handler.get_config().max_retries == 3

    def test_factory_presets(self) -> None:
        api = create_api_timeout_handler(client=_client()).get_config()
        assert (api.default_timeout_ms, api.max_retries, api.base_delay_ms) == (15000, 2, 500)

        upload = create_upload_timeout_handler(client=_client()).get_config()
        assert (upload.default_timeout_ms, upload.max_retries, upload.base_delay_ms) == (
            60000,
            1,
            2000,
        )

        critical = create_critical_timeout_handler(client=_client()).get_config()
        assert critical.max_retries == 5
        assert critical.max_delay_ms == 15000

    def test_factory_overrides(self) -> None:
        handler = create_api_timeout_handler(client=_client(), max_retries=0)
        assert handler.get_config().max_retries == 0


# ─── Client lifecycle ─────────────────────────────────────────────────


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self) -> None:
        client = _client()
        handler = _handler(client)
        await handler.aclose()
        client.aclose.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owned_client_is_created_and_closed(self) -> None:
        handler = ConnectionTimeoutHandler()
        client = await handler._get_client()
        assert await handler._get_client() is client

        await handler.aclose()

        assert client.is_closed
