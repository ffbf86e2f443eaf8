"""Composition root for one client's connection layer.

ConnectionLayer constructs the profiler, strategy catalog, analytics engine,
health monitor, interval coordinator, stale session cleaner and timeout
handler for a single client, wires them together, and owns their
lifecycle. Nothing here is process-global: tests and multi-account hosts
can run several layers side by side.

Wiring:

- profile changes reset the health monitor when the network type changes,
  rebase the heartbeat on the learned interval, and are forwarded to the
  transport consumer as ``(profile, strategy)``;
- ping results feed the health monitor and analytics, and every
  ``reconcile_every_pings`` pings the heartbeat is rebased again.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from cadence.analytics.engine import ConnectionAnalytics
from cadence.analytics.models import ConnectionEvent
from cadence.analytics.storage import MetricsStore
from cadence.core.config import CadenceConfig
from cadence.core.logging import get_logger
from cadence.health.adaptive import AdaptiveHealthMonitor, PingResult, ScheduleCallback
from cadence.health.controller import HeartbeatCoordinator, LearnedIntervalController
from cadence.network.models import ConnectionStrategy, NetworkProfile, NetworkType
from cadence.network.probes import LatencyProbe
from cadence.network.profiler import ConnectivitySource, NetworkProfiler, ProfileListener
from cadence.network.strategies import StrategyCatalog
from cadence.sessions.cleaner import SessionLivenessProbe, StaleConnectionCleaner
from cadence.sessions.models import SessionStore
from cadence.transport.timeout import ConnectionTimeoutHandler

_logger = get_logger("service")


class ConnectionLayer:
    """Adaptive connection layer for one client.

    Args:
        config: Root configuration; defaults apply when omitted.
        connectivity_source: Platform connectivity API. Defaults to a static
            always-connected wifi source.
        session_store: Session source of truth. The stale session cleaner
            only runs when one is given.
        liveness_probe: Required together with ``session_store``.
        metrics_store: Persistence backend for analytics.
        transport_consumer: Receives ``(profile, strategy)`` on every
            meaningful network change.
        schedule_callback: Receives the heartbeat interval (ms) whenever it
            changes significantly.
        probe: Latency probe shared by the profiler and analytics.
        clock: Wall-clock source in epoch seconds.

    Raises:
        ValueError: If ``session_store`` is given without ``liveness_probe``.
    """

    def __init__(
        self,
        config: CadenceConfig | None = None,
        *,
        connectivity_source: ConnectivitySource | None = None,
        session_store: SessionStore | None = None,
        liveness_probe: SessionLivenessProbe | None = None,
        metrics_store: MetricsStore | None = None,
        transport_consumer: ProfileListener | None = None,
        schedule_callback: ScheduleCallback | None = None,
        probe: LatencyProbe | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if session_store is not None and liveness_probe is None:
            raise ValueError("liveness_probe is required when session_store is given")

        self.config = config or CadenceConfig()
        self._transport_consumer = transport_consumer
        self._schedule_callback = schedule_callback

        self.probe = probe or LatencyProbe()
        self.catalog = StrategyCatalog()
        self.profiler = NetworkProfiler(
            self.config.network,
            source=connectivity_source,
            probe=self.probe,
            catalog=self.catalog,
            clock=clock,
        )
        self.analytics = ConnectionAnalytics(
            self.config.analytics,
            store=metrics_store,
            probe=self.probe,
            clock=clock,
        )
        self.monitor = AdaptiveHealthMonitor(self.config.health)
        self.coordinator = HeartbeatCoordinator(
            self.monitor,
            LearnedIntervalController(self.analytics, self.profiler.get_current_profile),
        )
        self.cleaner: StaleConnectionCleaner | None = None
        if session_store is not None and liveness_probe is not None:
            self.cleaner = StaleConnectionCleaner(
                session_store,
                liveness_probe,
                self.config.cleaner,
                clock=clock,
            )
        self.timeouts = ConnectionTimeoutHandler(self.config.timeouts)

        self._remove_listener: Callable[[], None] | None = None
        self._last_network_type: NetworkType | None = None
        self._ping_count = 0
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the health monitor, profiler and (if configured) cleaner."""
        if self._running:
            return
        self._running = True
        self.monitor.start(self._on_interval_changed)
        self._remove_listener = self.profiler.add_listener(self._on_profile_changed)
        await self.profiler.start()
        if self.cleaner is not None:
            await self.cleaner.start()
        _logger.info("service.started", cleaner_enabled=self.cleaner is not None)

    async def stop(self) -> None:
        """Stop every component, flush analytics and close HTTP clients."""
        if not self._running:
            return
        self._running = False
        if self.cleaner is not None:
            await self.cleaner.stop()
        await self.profiler.stop()
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        self.monitor.stop()
        self.analytics.flush()
        await self.probe.aclose()
        await self.timeouts.aclose()
        _logger.info("service.stopped")

    def record_connection_event(self, event: ConnectionEvent) -> None:
        self.analytics.record_connection_event(event)

    def record_ping_result(self, result: PingResult) -> None:
        """Feed a ping outcome to the monitor and analytics."""
        interval_ms = self.monitor.get_current_interval_ms()
        self.monitor.record_ping_result(result)

        profile = self.profiler.get_current_profile()
        if profile is not None:
            self.analytics.record_connection_event(
                ConnectionEvent(
                    network_profile=profile,
                    success=result.success,
                    latency_ms=result.latency_ms,
                    context="heartbeat",
                    heartbeat_interval_ms=interval_ms,
                    timestamp=result.timestamp,
                )
            )

        self._ping_count += 1
        if self._ping_count % self.config.reconcile_every_pings == 0:
            self.coordinator.reconcile()

    def get_status(self) -> dict[str, Any]:
        """Snapshot of the current profile, strategy and controller state."""
        profile = self.profiler.get_current_profile()
        strategy = self.profiler.get_current_strategy()
        heartbeat_profile = (
            self.catalog.get_heartbeat_profile(strategy.heartbeat_profile)
            if strategy is not None
            else None
        )
        return {
            "is_running": self._running,
            "profile": profile.to_dict() if profile is not None else None,
            "strategy": strategy.to_dict() if strategy is not None else None,
            "heartbeat_profile": (
                heartbeat_profile.description if heartbeat_profile is not None else None
            ),
            "health": self.monitor.get_status().to_dict(),
            "learned_baseline_ms": self.coordinator.last_baseline_ms,
            "network": self.profiler.get_statistics(),
            "cleaner": self.cleaner.get_statistics() if self.cleaner is not None else None,
        }

    # ─── Callbacks ────────────────────────────────────────────────────

    def _on_profile_changed(
        self,
        profile: NetworkProfile,
        strategy: ConnectionStrategy,
    ) -> None:
        if self._last_network_type is not None and profile.type != self._last_network_type:
            _logger.info(
                "service.network_type_changed",
                previous=self._last_network_type.value,
                current=profile.type.value,
            )
            self.monitor.reset()
        self._last_network_type = profile.type

        self.coordinator.reconcile()

        if self._transport_consumer is not None:
            try:
                self._transport_consumer(profile, strategy)
            except Exception:
                _logger.exception("service.transport_consumer_failed")

    def _on_interval_changed(self, interval_ms: float) -> None:
        if self._schedule_callback is not None:
            self._schedule_callback(interval_ms)


__all__ = ["ConnectionLayer"]
