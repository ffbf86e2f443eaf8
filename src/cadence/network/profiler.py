"""Network profiling: connectivity subscription, latency probing, stability.

NetworkProfiler turns raw platform connectivity readings into NetworkProfile
snapshots and resolves a ConnectionStrategy for each one. Connectivity
changes are coalesced behind a debounce slot so flapping networks deliver
only the last update in a window.

The profiler never raises from its public surface: probe failures become
unsuccessful results, and a failing connectivity source yields an
``unknown``/``unknown`` profile.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable
from typing import Any, Protocol

from cadence.core.config import NetworkDetectionConfig
from cadence.core.logging import get_logger
from cadence.network.models import (
    ConnectionStrategy,
    ConnectivityState,
    LatencyTestResult,
    NetworkProfile,
    NetworkQuality,
    NetworkType,
)
from cadence.network.probes import LatencyProbe
from cadence.network.strategies import StrategyCatalog
from cadence.utils.tasks import log_task_exception

_logger = get_logger("network.profiler")

ProfileListener = Callable[[NetworkProfile, ConnectionStrategy], None]
"""Called with ``(profile, strategy)`` on every meaningful change."""

ConnectivityCallback = Callable[[ConnectivityState], None]

_PROBE_HISTORY_MAX = 50
_PROBE_HISTORY_KEEP = 30
_STABILITY_CHANGE_THRESHOLD = 0.1


class ConnectivitySource(Protocol):
    """Platform connectivity API."""

    async def fetch(self) -> ConnectivityState:
        """Read the current connectivity state."""
        ...

    def subscribe(self, callback: ConnectivityCallback) -> Callable[[], None]:
        """Register for change notifications; returns an unsubscribe function."""
        ...


class StaticConnectivitySource:
    """Connectivity source for hosts without a platform connectivity API.

    Always reports a connected, reachable network of a fixed type and never
    emits change notifications.
    """

    def __init__(self, network_type: str = "wifi") -> None:
        self._state = ConnectivityState(
            type=network_type,
            is_connected=True,
            is_internet_reachable=True,
        )

    async def fetch(self) -> ConnectivityState:
        return self._state

    def subscribe(self, callback: ConnectivityCallback) -> Callable[[], None]:
        return lambda: None


class NetworkProfiler:
    """Produces NetworkProfile snapshots and notifies listeners on change.

    A change is meaningful when the network type or quality differs, or the
    stability score moves by more than 0.1. Listeners fire in registration
    order; a listener that raises is logged and does not affect the others.
    """

    def __init__(
        self,
        config: NetworkDetectionConfig | None = None,
        source: ConnectivitySource | None = None,
        probe: LatencyProbe | None = None,
        catalog: StrategyCatalog | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or NetworkDetectionConfig()
        self._source: ConnectivitySource = source or StaticConnectivitySource()
        self._probe = probe or LatencyProbe()
        self._catalog = catalog or StrategyCatalog()
        self._clock = clock

        self._current_profile: NetworkProfile | None = None
        self._current_strategy: ConnectionStrategy | None = None
        self._probe_history: list[LatencyTestResult] = []
        self._listeners: list[ProfileListener] = []
        self._unsubscribe: Callable[[], None] | None = None
        self._pending_update: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._running = False
        self._strategy_changes = 0
        self._last_profile_update: float | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Subscribe to connectivity changes and run an initial detection."""
        if self._running:
            return
        self._running = True
        self._unsubscribe = self._source.subscribe(self._on_connectivity_change)
        _logger.info(
            "profiler.started",
            probe_urls=len(self._config.quality_test_urls),
            debounce_seconds=self._config.adaptation_delay_seconds,
        )
        await self.detect_network_profile()

    async def stop(self) -> None:
        """Unsubscribe, cancel the debounce slot and in-flight detections."""
        if not self._running:
            return
        self._running = False

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        if self._pending_update is not None:
            self._pending_update.cancel()
            self._pending_update = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        _logger.info("profiler.stopped")

    def get_current_profile(self) -> NetworkProfile | None:
        return self._current_profile

    def get_current_strategy(self) -> ConnectionStrategy | None:
        return self._current_strategy

    def add_listener(self, listener: ProfileListener) -> Callable[[], None]:
        """Register a change listener.

        The listener is invoked immediately when a profile is already known.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)
        if self._current_profile is not None and self._current_strategy is not None:
            self._invoke_listener(listener, self._current_profile, self._current_strategy)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def detect_network_profile(self) -> NetworkProfile:
        """Force an immediate detection, bypassing the debounce slot."""
        try:
            state = await self._source.fetch()
        except Exception as e:
            _logger.warning(
                "profiler.connectivity_fetch_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            profile = NetworkProfile(
                type=NetworkType.UNKNOWN,
                quality=NetworkQuality.UNKNOWN,
                stability=self._calculate_stability(),
            )
        else:
            profile = await self._build_profile(state)

        self._update_profile(profile)
        return profile

    def get_statistics(self) -> dict[str, Any]:
        """Summarize probe history and profile churn."""
        total = len(self._probe_history)
        latencies = [
            r.latency_ms
            for r in self._probe_history
            if r.success and r.latency_ms is not None
        ]
        return {
            "total_tests": total,
            "success_rate": (
                sum(1 for r in self._probe_history if r.success) / total
                if total
                else 0.0
            ),
            "average_latency_ms": sum(latencies) / len(latencies) if latencies else None,
            "current_stability": self._calculate_stability(),
            "strategy_changes": self._strategy_changes,
            "last_profile_update": self._last_profile_update,
        }

    # ─── Connectivity events ─────────────────────────────────────────────

    def _on_connectivity_change(self, state: ConnectivityState) -> None:
        if not self._running:
            return
        _logger.debug(
            "profiler.connectivity_changed",
            network_type=state.type,
            is_connected=state.is_connected,
            is_internet_reachable=state.is_internet_reachable,
        )
        task = asyncio.get_running_loop().create_task(
            self._profile_and_schedule(state),
            name="cadence-profile-detection",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_detection_done)

    def _on_detection_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        log_task_exception(task, _logger, "profiler.detection_failed")

    async def _profile_and_schedule(self, state: ConnectivityState) -> None:
        profile = await self._build_profile(state)
        if self._running:
            self._schedule_update(profile)

    def _schedule_update(self, profile: NetworkProfile) -> None:
        if self._pending_update is not None:
            self._pending_update.cancel()
        loop = asyncio.get_running_loop()
        self._pending_update = loop.call_later(
            self._config.adaptation_delay_seconds,
            self._apply_pending,
            profile,
        )

    def _apply_pending(self, profile: NetworkProfile) -> None:
        self._pending_update = None
        self._update_profile(profile)

    # ─── Profile construction ────────────────────────────────────────────

    async def _build_profile(self, state: ConnectivityState) -> NetworkProfile:
        network_type = NetworkType.from_platform(state.type)
        if state.is_connected and state.is_internet_reachable:
            quality = await self._assess_quality()
        else:
            quality = NetworkQuality.UNKNOWN

        details = state.details or {}
        strength: int | None = None
        if network_type in (NetworkType.WIFI, NetworkType.CELLULAR):
            strength = details.get("strength") or None

        generation: str | None = None
        if network_type is NetworkType.CELLULAR:
            generation = details.get("cellular_generation") or None

        is_expensive = network_type is NetworkType.CELLULAR or bool(
            details.get("is_connection_expensive", False)
        )

        return NetworkProfile(
            type=network_type,
            quality=quality,
            stability=self._calculate_stability(),
            strength=strength,
            is_expensive=is_expensive,
            generation=generation,
            is_internet_reachable=bool(state.is_internet_reachable),
        )

    async def _assess_quality(self) -> NetworkQuality:
        results = await self._probe.probe_all(
            self._config.quality_test_urls,
            method="HEAD",
            timeout_ms=self._config.test_timeout_ms,
        )
        self._probe_history.extend(results)
        if len(self._probe_history) > _PROBE_HISTORY_MAX:
            self._probe_history = self._probe_history[-_PROBE_HISTORY_KEEP:]

        latencies = [
            r.latency_ms for r in results if r.success and r.latency_ms is not None
        ]
        if not latencies:
            return NetworkQuality.UNKNOWN
        return self._classify(sum(latencies) / len(latencies))

    def _classify(self, avg_latency_ms: float) -> NetworkQuality:
        if avg_latency_ms < self._config.excellent_latency_ms:
            return NetworkQuality.EXCELLENT
        if avg_latency_ms < self._config.good_latency_ms:
            return NetworkQuality.GOOD
        if avg_latency_ms < self._config.poor_latency_ms:
            return NetworkQuality.POOR
        return NetworkQuality.UNKNOWN

    def _calculate_stability(self) -> float:
        """Blend probe success rate with latency consistency.

        ``0.6 * success_rate + 0.4 * max(0, 1 - stddev / mean)`` over the
        stability window.
        """
        if len(self._probe_history) < 3:
            return 1.0

        recent = self._probe_history[-self._config.stability_window:]
        success_rate = sum(1 for r in recent if r.success) / len(recent)
        latencies = [
            r.latency_ms for r in recent if r.success and r.latency_ms is not None
        ]
        if len(latencies) < 2:
            return success_rate

        mean = sum(latencies) / len(latencies)
        if mean <= 0:
            latency_stability = 1.0
        else:
            variance = sum((lat - mean) ** 2 for lat in latencies) / len(latencies)
            latency_stability = max(0.0, 1.0 - math.sqrt(variance) / mean)

        return 0.6 * success_rate + 0.4 * latency_stability

    # ─── Updates ─────────────────────────────────────────────────────────

    def _has_changed(self, profile: NetworkProfile) -> bool:
        current = self._current_profile
        if current is None:
            return True
        return (
            current.type != profile.type
            or current.quality != profile.quality
            or abs(current.stability - profile.stability) > _STABILITY_CHANGE_THRESHOLD
        )

    def _update_profile(self, profile: NetworkProfile) -> None:
        if not self._has_changed(profile):
            return

        strategy = self._catalog.get_optimal_strategy(profile)
        self._current_profile = profile
        self._current_strategy = strategy
        self._strategy_changes += 1
        self._last_profile_update = self._clock()

        _logger.info(
            "profiler.profile_updated",
            network_type=profile.type.value,
            quality=profile.quality.value,
            stability=round(profile.stability, 2),
            is_expensive=profile.is_expensive,
            generation=profile.generation,
        )

        for listener in list(self._listeners):
            self._invoke_listener(listener, profile, strategy)

    def _invoke_listener(
        self,
        listener: ProfileListener,
        profile: NetworkProfile,
        strategy: ConnectionStrategy,
    ) -> None:
        try:
            listener(profile, strategy)
        except Exception:
            _logger.exception("profiler.listener_failed")


__all__ = [
    "ConnectivitySource",
    "NetworkProfiler",
    "ProfileListener",
    "StaticConnectivitySource",
]
