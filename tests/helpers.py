"""Shared test doubles for Cadence tests."""

from collections.abc import Callable, Sequence
from typing import Any
from urllib.parse import urlparse

from cadence.network.models import ConnectivityState, LatencyTestResult

# Fixed wall-clock instant (2023-11-14T22:13:20Z) for clock-injected components.
NOW = 1_700_000_000.0


def make_result(
    url: str = "https://probe.example/ping",
    latency_ms: float | None = 50.0,
    success: bool = True,
) -> LatencyTestResult:
    """Build a LatencyTestResult tagged with the URL's hostname."""
    return LatencyTestResult(
        url=url,
        source=urlparse(url).hostname or url,
        latency_ms=latency_ms,
        success=success,
        timestamp=NOW,
    )


class FakeProbe:
    """Stands in for LatencyProbe; every probe_all() call returns ``latencies``.

    A ``None`` latency yields a failed result. Assign ``latencies`` between
    calls to change what the next detection sees.
    """

    def __init__(self, latencies: Sequence[float | None] = (50.0, 50.0, 50.0)) -> None:
        self.latencies = list(latencies)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def probe_all(self, urls: Sequence[str], **options: Any) -> list[LatencyTestResult]:
        self.calls.append({"urls": list(urls), **options})
        return [
            make_result(
                url=f"https://probe-{i}.example/ping",
                latency_ms=latency,
                success=latency is not None,
            )
            for i, latency in enumerate(self.latencies)
        ]

    async def aclose(self) -> None:
        self.closed = True


class FakeConnectivitySource:
    """Connectivity source whose state and change events are driven by the test."""

    def __init__(self, state: ConnectivityState | None = None) -> None:
        self.state = state or wifi_state()
        self.callback: Callable[[ConnectivityState], None] | None = None
        self.unsubscribed = False
        self.fetch_error: Exception | None = None

    async def fetch(self) -> ConnectivityState:
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.state

    def subscribe(self, callback: Callable[[ConnectivityState], None]) -> Callable[[], None]:
        self.callback = callback

        def _unsubscribe() -> None:
            self.unsubscribed = True
            self.callback = None

        return _unsubscribe

    def emit(self, state: ConnectivityState) -> None:
        """Deliver a connectivity change to the subscriber."""
        self.state = state
        assert self.callback is not None, "nothing subscribed"
        self.callback(state)


def wifi_state(**details: Any) -> ConnectivityState:
    return ConnectivityState(
        type="wifi",
        is_connected=True,
        is_internet_reachable=True,
        details=dict(details),
    )


def cellular_state(generation: str | None = "4g", **details: Any) -> ConnectivityState:
    if generation is not None:
        details["cellular_generation"] = generation
    return ConnectivityState(
        type="cellular",
        is_connected=True,
        is_internet_reachable=True,
        details=details,
    )


def ethernet_state() -> ConnectivityState:
    return ConnectivityState(type="ethernet", is_connected=True, is_internet_reachable=True)
