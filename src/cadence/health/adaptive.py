"""Adaptive ping interval controller.

AdaptiveHealthMonitor is a fast local feedback loop: the transport reports
each ping outcome, and the monitor tightens the interval on failure streaks,
instability or rising latency, and loosens it on sustained healthy
operation. Adaptation passes are debounced so alternating results cannot
make the interval oscillate.

The monitor does not send pings itself. It hands the current interval to a
schedule callback, once on ``start()`` and again whenever the interval moves
by more than ``adaptation_rate`` (10% by default).
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from cadence.core.config import AdaptiveHealthConfig
from cadence.core.logging import get_logger
from cadence.utils.time import epoch_now

_logger = get_logger("health.adaptive")

ScheduleCallback = Callable[[float], None]
"""Receives the ping interval in milliseconds."""

_STABILITY_WINDOW = 10
_STABILITY_MIN_RESULTS = 5
_STABILITY_MIN_LATENCIES = 3
_TREND_WINDOW = 6
_TREND_MIN_LATENCIES = 4

_SHRINK_UNSTABLE = 0.7
_GROW_STABLE = 1.3
_SHRINK_RISING_LATENCY = 0.8
_GROW_IMPROVING_LATENCY = 1.1


@dataclass(frozen=True)
class PingResult:
    """Outcome of one heartbeat ping."""

    success: bool
    latency_ms: float | None = None
    error: str | None = None
    timestamp: float = field(default_factory=epoch_now)


@dataclass(frozen=True)
class HealthStatus:
    """Point-in-time view of the monitor."""

    current_interval_ms: float
    base_interval_ms: float
    consecutive_successes: int
    consecutive_failures: int
    stability: float
    latency_trend: float
    total_pings: int
    success_rate: float
    adaptations: int
    is_running: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_interval_ms": self.current_interval_ms,
            "base_interval_ms": self.base_interval_ms,
            "consecutive_successes": self.consecutive_successes,
            "consecutive_failures": self.consecutive_failures,
            "stability": round(self.stability, 3),
            "latency_trend": round(self.latency_trend, 3),
            "total_pings": self.total_pings,
            "success_rate": round(self.success_rate, 3),
            "adaptations": self.adaptations,
            "is_running": self.is_running,
        }


class AdaptiveHealthMonitor:
    """Streak- and trend-driven ping interval controller.

    Decision order for each adaptation pass (first match wins):

    1. two or more consecutive failures, or stability below 0.7: ×0.7
    2. five or more consecutive successes and stability above the
       configured threshold: ×1.3
    3. latency trend above 1.5 (rising): ×0.8
    4. latency trend below 0.7 and stability above 0.85: ×1.1

    The result is always clamped to ``[min_ping_interval_ms,
    max_ping_interval_ms]``.
    """

    def __init__(
        self,
        config: AdaptiveHealthConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or AdaptiveHealthConfig()
        self._clock = clock
        self._base_interval_ms = self._config.base_ping_interval_ms
        self._current_interval_ms = self._base_interval_ms
        self._consecutive_successes = 0
        self._consecutive_failures = 0
        self._history: deque[PingResult] = deque(maxlen=self._config.history_size)
        self._schedule_callback: ScheduleCallback | None = None
        self._pending_adaptation: asyncio.TimerHandle | None = None
        self._last_adaptation = self._clock()
        self._adaptations = 0
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def config(self) -> AdaptiveHealthConfig:
        return self._config

    def start(self, schedule_callback: ScheduleCallback) -> None:
        """Begin adapting; the callback immediately receives the current interval."""
        if self._running:
            _logger.debug("adaptive.already_running")
            return
        self._running = True
        self._schedule_callback = schedule_callback
        _logger.info("adaptive.started", interval_ms=self._current_interval_ms)
        self._notify(self._current_interval_ms)

    def stop(self) -> None:
        """Cancel any pending adaptation and drop the callback. Safe to repeat."""
        self._cancel_pending()
        if not self._running:
            return
        self._running = False
        self._schedule_callback = None
        _logger.info("adaptive.stopped", interval_ms=self._current_interval_ms)

    def record_ping_result(self, result: PingResult) -> None:
        """Record a ping outcome and schedule a debounced adaptation pass.

        Results recorded while the monitor is stopped are ignored.
        """
        if not self._running:
            return

        self._history.append(result)
        if result.success:
            self._consecutive_successes += 1
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
            self._consecutive_successes = 0
            _logger.debug(
                "adaptive.ping_failed",
                consecutive_failures=self._consecutive_failures,
                error=result.error,
            )

        self._schedule_adaptation()

    def get_current_interval_ms(self) -> float:
        return self._current_interval_ms

    def recommend_interval_ms(self) -> int:
        return round(self._current_interval_ms)

    def has_history(self) -> bool:
        return bool(self._history)

    def get_history(self) -> list[PingResult]:
        return list(self._history)

    def get_status(self) -> HealthStatus:
        total = len(self._history)
        successes = sum(1 for r in self._history if r.success)
        return HealthStatus(
            current_interval_ms=self._current_interval_ms,
            base_interval_ms=self._base_interval_ms,
            consecutive_successes=self._consecutive_successes,
            consecutive_failures=self._consecutive_failures,
            stability=self._calculate_stability(),
            latency_trend=self._calculate_latency_trend(),
            total_pings=total,
            success_rate=successes / total if total else 0.0,
            adaptations=self._adaptations,
            is_running=self._running,
        )

    def update_config(self, **changes: Any) -> None:
        """Apply partial config changes and re-clamp the current interval.

        Raises:
            pydantic.ValidationError: If the merged config is invalid.
        """
        merged = self._config.model_dump()
        merged.update(changes)
        self._config = AdaptiveHealthConfig.model_validate(merged)
        if "base_ping_interval_ms" in changes:
            self._base_interval_ms = self._config.base_ping_interval_ms
        else:
            self._base_interval_ms = self._clamp(self._base_interval_ms)
        if self._history.maxlen != self._config.history_size:
            self._history = deque(self._history, maxlen=self._config.history_size)
        self._current_interval_ms = self._clamp(self._current_interval_ms)
        _logger.info(
            "adaptive.config_updated",
            changes=sorted(changes),
            interval_ms=self._current_interval_ms,
        )

    def force_adaptation(self) -> None:
        """Run an adaptation pass now, bypassing the debounce window."""
        self._cancel_pending()
        self._run_adaptation()

    def reset(self) -> None:
        """Clear streaks and history and return to the base interval."""
        self._cancel_pending()
        previous = self._current_interval_ms
        self._consecutive_successes = 0
        self._consecutive_failures = 0
        self._history.clear()
        self._current_interval_ms = self._base_interval_ms
        self._last_adaptation = self._clock()
        _logger.info("adaptive.reset", interval_ms=self._current_interval_ms)
        if self._running and self._is_significant(previous, self._current_interval_ms):
            self._notify(self._current_interval_ms)

    def rebase(self, baseline_ms: float) -> None:
        """Adopt a new base interval, typically a statistically learned one.

        The live interval only moves when the monitor has no ping history of
        its own; otherwise local feedback keeps control until the next
        ``reset()``.
        """
        self._base_interval_ms = self._clamp(float(baseline_ms))
        if self._history:
            _logger.debug("adaptive.rebased", base_ms=self._base_interval_ms, applied=False)
            return

        previous = self._current_interval_ms
        self._current_interval_ms = self._base_interval_ms
        _logger.debug("adaptive.rebased", base_ms=self._base_interval_ms, applied=True)
        if self._running and self._is_significant(previous, self._current_interval_ms):
            self._notify(self._current_interval_ms)

    # ─── Adaptation ──────────────────────────────────────────────────────

    def _schedule_adaptation(self) -> None:
        self._cancel_pending()
        elapsed = self._clock() - self._last_adaptation
        delay = max(0.0, self._config.min_adaptation_interval_seconds - elapsed)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop to defer to: adapt inline once the window has passed.
            if delay <= 0:
                self._run_adaptation()
            return

        self._pending_adaptation = loop.call_later(delay, self._run_adaptation)

    def _cancel_pending(self) -> None:
        if self._pending_adaptation is not None:
            self._pending_adaptation.cancel()
            self._pending_adaptation = None

    def _run_adaptation(self) -> None:
        self._pending_adaptation = None
        self._last_adaptation = self._clock()
        if not self._running:
            return

        stability = self._calculate_stability()
        trend = self._calculate_latency_trend()
        previous = self._current_interval_ms
        interval = previous
        rule = None

        if self._consecutive_failures >= 2 or stability < 0.7:
            interval = previous * _SHRINK_UNSTABLE
            rule = "unstable"
        elif (
            self._consecutive_successes >= 5
            and stability > self._config.stability_threshold
        ):
            interval = previous * _GROW_STABLE
            rule = "stable"
        elif trend > 1.5:
            interval = previous * _SHRINK_RISING_LATENCY
            rule = "latency_rising"
        elif trend < 0.7 and stability > 0.85:
            interval = previous * _GROW_IMPROVING_LATENCY
            rule = "latency_improving"

        self._current_interval_ms = self._clamp(interval)
        self._adaptations += 1

        _logger.debug(
            "adaptive.adapted",
            rule=rule,
            stability=round(stability, 3),
            latency_trend=round(trend, 3),
            previous_ms=previous,
            interval_ms=self._current_interval_ms,
        )

        if self._is_significant(previous, self._current_interval_ms):
            _logger.info(
                "adaptive.interval_changed",
                previous_ms=round(previous),
                interval_ms=round(self._current_interval_ms),
                rule=rule,
            )
            self._notify(self._current_interval_ms)

    def _is_significant(self, previous: float, current: float) -> bool:
        if previous <= 0:
            return current != previous
        return abs(current - previous) / previous > self._config.adaptation_rate

    def _clamp(self, interval_ms: float) -> float:
        return max(
            self._config.min_ping_interval_ms,
            min(self._config.max_ping_interval_ms, interval_ms),
        )

    def _notify(self, interval_ms: float) -> None:
        callback = self._schedule_callback
        if callback is None:
            return
        try:
            callback(interval_ms)
        except Exception:
            _logger.exception("adaptive.callback_failed", interval_ms=interval_ms)

    # ─── Signals ─────────────────────────────────────────────────────────

    def _calculate_stability(self) -> float:
        """``0.7 * success_rate + 0.3 * latency_stability`` over the last 10 pings."""
        if len(self._history) < _STABILITY_MIN_RESULTS:
            return 1.0

        recent = list(self._history)[-_STABILITY_WINDOW:]
        success_rate = sum(1 for r in recent if r.success) / len(recent)
        latencies = [r.latency_ms for r in recent if r.success and r.latency_ms is not None]
        if len(latencies) < _STABILITY_MIN_LATENCIES:
            return success_rate

        mean = sum(latencies) / len(latencies)
        if mean > 0:
            variance = sum((lat - mean) ** 2 for lat in latencies) / len(latencies)
            latency_stability = max(0.0, 1.0 - variance**0.5 / mean)
        else:
            latency_stability = 1.0

        return 0.7 * success_rate + 0.3 * latency_stability

    def _calculate_latency_trend(self) -> float:
        """Ratio of mean latency, second half over first half, of the last 6 pings.

        Above 1.0 means latency is rising.
        """
        if len(self._history) < _TREND_WINDOW:
            return 1.0

        latencies = [
            r.latency_ms
            for r in list(self._history)[-_TREND_WINDOW:]
            if r.success and r.latency_ms is not None
        ]
        if len(latencies) < _TREND_MIN_LATENCIES:
            return 1.0

        midpoint = len(latencies) // 2
        first, second = latencies[:midpoint], latencies[midpoint:]
        avg_first = sum(first) / len(first)
        avg_second = sum(second) / len(second)
        return avg_second / avg_first if avg_first > 0 else 1.0


__all__ = ["AdaptiveHealthMonitor", "HealthStatus", "PingResult", "ScheduleCallback"]
