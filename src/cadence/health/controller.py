"""Heartbeat interval controllers and their reconciliation.

Two controllers recommend a heartbeat interval from overlapping signals:

- AdaptiveHealthMonitor: fast, local streak and trend feedback.
- LearnedIntervalController: statistical, from ConnectionAnalytics for the
  current network profile.

HeartbeatCoordinator applies the precedence rule between them. The learned
controller sets the baseline (``monitor.rebase()``) and the fast controller
governs moment-to-moment; the live interval only follows the baseline while
the monitor has no ping history of its own.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from cadence.analytics.engine import ConnectionAnalytics
from cadence.core.constants import HEARTBEAT_DEFAULT_MS
from cadence.core.logging import get_logger
from cadence.health.adaptive import AdaptiveHealthMonitor
from cadence.network.models import NetworkProfile

_logger = get_logger("health.controller")


@runtime_checkable
class IntervalController(Protocol):
    """Anything that can recommend a heartbeat interval."""

    def recommend_interval_ms(self) -> int:
        """Return the recommended heartbeat interval in milliseconds."""
        ...


class LearnedIntervalController:
    """Recommends the analytics-learned heartbeat for the current profile."""

    def __init__(
        self,
        analytics: ConnectionAnalytics,
        profile_provider: Callable[[], NetworkProfile | None],
    ) -> None:
        self._analytics = analytics
        self._profile_provider = profile_provider

    def recommend_interval_ms(self) -> int:
        profile = self._profile_provider()
        if profile is None:
            return HEARTBEAT_DEFAULT_MS
        return self._analytics.get_optimal_settings(profile).heartbeat_interval_ms


class HeartbeatCoordinator:
    """Combines the learned baseline with fast local control."""

    def __init__(
        self,
        monitor: AdaptiveHealthMonitor,
        learned: IntervalController,
    ) -> None:
        self._monitor = monitor
        self._learned = learned
        self._last_baseline_ms: int | None = None

    @property
    def last_baseline_ms(self) -> int | None:
        return self._last_baseline_ms

    def reconcile(self) -> int:
        """Rebase the monitor on the learned interval.

        Returns:
            The interval now in effect.
        """
        baseline = self._learned.recommend_interval_ms()
        self._monitor.rebase(baseline)
        if baseline != self._last_baseline_ms:
            _logger.info(
                "coordinator.baseline_changed",
                previous_ms=self._last_baseline_ms,
                baseline_ms=baseline,
                monitor_has_history=self._monitor.has_history(),
            )
        self._last_baseline_ms = baseline
        return self.recommend_interval_ms()

    def recommend_interval_ms(self) -> int:
        return self._monitor.recommend_interval_ms()


__all__ = ["HeartbeatCoordinator", "IntervalController", "LearnedIntervalController"]
