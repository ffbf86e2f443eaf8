"""Connection analytics with online heartbeat learning.

ConnectionAnalytics aggregates ConnectionEvents into per-signature rolling
metrics, tracks recurring failure patterns, trains a small linear model that
predicts a good heartbeat interval, and turns all of it into optimal settings
and a human-readable performance report.

Recording is synchronous and sequential: the metrics map and failure pattern
lists are only mutated inside ``record_connection_event``. Every public
operation tolerates partial input and never raises; getters return copies.
"""

from __future__ import annotations

import copy
import math
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from cadence.analytics.model import LinearHeartbeatModel
from cadence.analytics.models import (
    ConnectionEvent,
    ConnectionMetrics,
    FailurePattern,
    FailureType,
    NetworkBreakdown,
    OptimalSettings,
    PerformanceReport,
    RetryStrategy,
    TimePattern,
)
from cadence.analytics.storage import MetricsStore
from cadence.core.config import AnalyticsConfig
from cadence.core.constants import (
    HEARTBEAT_DEFAULT_MS,
    HEARTBEAT_MAX_MS,
    HEARTBEAT_MIN_MS,
    LATENCY_HISTORY_KEEP,
    LATENCY_HISTORY_MAX,
    LEARNED_TIMEOUT_MAX_MS,
    LEARNED_TIMEOUT_MIN_MS,
    MAX_FAILURE_PATTERNS,
    PROCESSING_BUDGET_MS,
    QUALITY_SCORES,
    TRANSPORT_POLLING,
    TRANSPORT_WEBSOCKET,
)
from cadence.core.logging import get_logger
from cadence.network.models import NetworkProfile, NetworkQuality, NetworkType
from cadence.network.probes import LatencyProbe
from cadence.utils.time import local_datetime

_logger = get_logger("analytics")

SNAPSHOT_VERSION = 1

_EMA_ALPHA = 0.1
_TARGET_SUCCESS_RATE = 0.95
_LATENCY_BASELINE_MS = 200.0

RECOMMEND_AGGRESSIVE_HEARTBEAT = (
    "Consider enabling aggressive heartbeat profile for improved reliability"
)
RECOMMEND_CELLULAR = (
    "Cellular connection quality is poor - consider cellular-specific optimizations"
)
RECOMMEND_WIFI_LATENCY = "WiFi latency is high - consider reducing heartbeat frequency"
RECOMMEND_TIMEOUTS = (
    "Frequent timeouts detected - consider increasing connection timeouts"
)
RECOMMEND_NETWORK_ERRORS = (
    "Network errors detected - consider implementing network change detection"
)
RECOMMEND_MODEL_DATA = (
    "ML model accuracy below target - consider collecting more diverse training data"
)
RECOMMEND_BATTERY = (
    "High battery impact detected - consider reducing heartbeat frequency "
    "during low battery"
)
RECOMMEND_OPTIMAL = "Connection performance is optimal - no recommendations"


def time_pattern_for(timestamp: float) -> TimePattern:
    """Bucket a timestamp by local time of day; Saturday and Sunday are 'weekend'."""
    moment = local_datetime(timestamp)
    if moment.weekday() >= 5:
        return TimePattern.WEEKEND
    hour = moment.hour
    if 6 <= hour < 12:
        return TimePattern.MORNING
    if 12 <= hour < 18:
        return TimePattern.AFTERNOON
    if 18 <= hour < 22:
        return TimePattern.EVENING
    return TimePattern.NIGHT


def time_of_day_score(timestamp: float) -> float:
    """``sin((hour - 6) * pi / 12)``: peaks at noon, troughs at midnight."""
    hour = local_datetime(timestamp).hour
    return math.sin((hour - 6) * math.pi / 12)


def quality_score(profile: NetworkProfile) -> float:
    return QUALITY_SCORES.get(profile.quality.value, QUALITY_SCORES["unknown"])


def _ema(current: float, value: float, alpha: float) -> float:
    return current * (1 - alpha) + value * alpha


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class ConnectionAnalytics:
    """Per-network connection analytics and learned settings.

    Args:
        config: Analytics tunables.
        store: Optional persistence backend. Loaded once on construction and
            saved every ``config.persist_every`` events and on ``flush()``.
        probe: Latency probe used by ``perform_latency_tests()``.
        clock: Wall-clock source in epoch seconds.
    """

    def __init__(
        self,
        config: AnalyticsConfig | None = None,
        store: MetricsStore | None = None,
        probe: LatencyProbe | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or AnalyticsConfig()
        self._store = store
        self._probe = probe or LatencyProbe()
        self._clock = clock

        self._model = LinearHeartbeatModel(learning_rate=self._config.learning_rate)
        self._metrics: dict[str, ConnectionMetrics] = {}
        self._baselines: dict[str, float] = {}
        self._latency_tests: list[dict[str, Any]] = []
        self._total_samples = 0
        self._events_since_persist = 0

        if self._store is not None:
            self._load()

    # ─── Recording ───────────────────────────────────────────────────────

    def record_connection_event(self, event: ConnectionEvent) -> None:
        """Fold one connection outcome into the metrics for its signature."""
        started = time.perf_counter()
        try:
            self._record(event)
        except Exception:
            _logger.exception(
                "analytics.record_failed",
                signature=getattr(event.network_profile, "signature", None),
            )
            return

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if elapsed_ms > PROCESSING_BUDGET_MS:
            _logger.warning(
                "analytics.slow_event",
                elapsed_ms=round(elapsed_ms, 1),
                budget_ms=PROCESSING_BUDGET_MS,
            )

    def _record(self, event: ConnectionEvent) -> None:
        event = self._normalize_failure_type(event)
        profile = event.network_profile
        key = profile.signature
        metrics = self._metrics.get(key)
        if metrics is None:
            metrics = self._create_metrics(profile)
            self._metrics[key] = metrics

        if key not in self._baselines and metrics.sample_count == 0:
            self._baselines[key] = 1.0 if event.success else 0.0

        self._update_metrics(metrics, event)
        self._total_samples += 1

        if self._total_samples >= self._config.learning_threshold:
            self._update_model(metrics, event)

        if event.latency_ms is not None:
            self._record_latency_test(event.latency_ms, profile.type.value)

        self._evict_oldest()

        self._events_since_persist += 1
        if self._store is not None and self._events_since_persist >= self._config.persist_every:
            self._persist()

    def _normalize_failure_type(self, event: ConnectionEvent) -> ConnectionEvent:
        """Coerce the failure type before any metrics are touched.

        An unrecognized value still counts as a sample but records no pattern.
        """
        if event.failure_type is None:
            return event
        try:
            failure_type: FailureType | None = FailureType(event.failure_type)
        except ValueError:
            _logger.warning(
                "analytics.unknown_failure_type",
                failure_type=str(event.failure_type),
                signature=event.network_profile.signature,
            )
            failure_type = None
        return replace(event, failure_type=failure_type)

    def _create_metrics(self, profile: NetworkProfile) -> ConnectionMetrics:
        now = self._clock()
        return ConnectionMetrics(
            network_type=f"{profile.type.value}_{profile.quality.value}",
            time_of_day=time_of_day_score(now),
            last_updated=now,
        )

    def _update_metrics(self, metrics: ConnectionMetrics, event: ConnectionEvent) -> None:
        # Smoothing weakens as the entry matures (0.1 down to 0.05 at 10 samples).
        sample_weight = min(metrics.sample_count, 10) / 10
        alpha = _EMA_ALPHA * (1 - sample_weight * 0.5)

        if event.latency_ms is not None:
            if metrics.latency_samples == 0:
                metrics.avg_latency_ms = float(event.latency_ms)
            else:
                metrics.avg_latency_ms = _ema(metrics.avg_latency_ms, event.latency_ms, alpha)
            metrics.latency_samples += 1

        success_value = 1.0 if event.success else 0.0
        n = metrics.sample_count
        if n == 0:
            metrics.success_rate = success_value
        else:
            metrics.success_rate = (metrics.success_rate * n + success_value) / (n + 1)

        if event.data_used is not None:
            metrics.data_usage = _ema(metrics.data_usage, event.data_used, alpha)
        if event.battery_delta is not None:
            metrics.battery_impact = _ema(metrics.battery_impact, event.battery_delta, alpha)

        if not event.success and event.failure_type is not None:
            self._update_failure_pattern(metrics, event)

        if event.success and event.heartbeat_interval_ms:
            metrics.optimal_heartbeat_ms = self._optimal_heartbeat(
                metrics,
                event.heartbeat_interval_ms,
                event.latency_ms or 0.0,
            )

        metrics.sample_count += 1
        metrics.last_updated = event.timestamp
        metrics.time_of_day = time_of_day_score(event.timestamp)

    def _update_failure_pattern(
        self,
        metrics: ConnectionMetrics,
        event: ConnectionEvent,
    ) -> None:
        failure_type = event.failure_type
        bucket = time_pattern_for(event.timestamp)

        for pattern in metrics.failure_patterns:
            if pattern.type is failure_type and pattern.time_pattern is bucket:
                pattern.frequency += 1
                pattern.last_occurrence = event.timestamp
                break
        else:
            metrics.failure_patterns.append(
                FailurePattern(
                    type=failure_type,
                    time_pattern=bucket,
                    context=event.context or "unknown",
                    frequency=1,
                    last_occurrence=event.timestamp,
                )
            )

        metrics.failure_patterns.sort(key=lambda p: p.frequency, reverse=True)
        del metrics.failure_patterns[MAX_FAILURE_PATTERNS:]

    def _optimal_heartbeat(
        self,
        metrics: ConnectionMetrics,
        interval_ms: float,
        latency_ms: float,
    ) -> float:
        success_factor = metrics.success_rate / _TARGET_SUCCESS_RATE
        latency_factor = _clamp(latency_ms / _LATENCY_BASELINE_MS, 0.5, 2.0)
        return _clamp(
            interval_ms * success_factor * latency_factor,
            HEARTBEAT_MIN_MS,
            HEARTBEAT_MAX_MS,
        )

    def _features(
        self,
        metrics: ConnectionMetrics,
        profile: NetworkProfile,
        timestamp: float,
    ) -> list[float]:
        return [
            metrics.avg_latency_ms / 1000.0,
            metrics.success_rate,
            quality_score(profile),
            time_of_day_score(timestamp),
        ]

    def _update_model(self, metrics: ConnectionMetrics, event: ConnectionEvent) -> None:
        features = self._features(metrics, event.network_profile, event.timestamp)
        target = event.heartbeat_interval_ms or metrics.optimal_heartbeat_ms

        if event.heartbeat_interval_ms and metrics.sample_count > 1:
            predicted = self._model.predict(features)
            self._model.record_prediction_accuracy(predicted, event.heartbeat_interval_ms)

        self._model.train(features, target)

    def _record_latency_test(self, latency_ms: float, source: str) -> None:
        self._latency_tests.append({
            "timestamp": self._clock(),
            "latency_ms": latency_ms,
            "source": source,
        })
        if len(self._latency_tests) > LATENCY_HISTORY_MAX:
            self._latency_tests = self._latency_tests[-LATENCY_HISTORY_KEEP:]

    def _evict_oldest(self) -> None:
        overflow = len(self._metrics) - self._config.max_metrics_entries
        if overflow <= 0:
            return

        oldest = sorted(self._metrics.items(), key=lambda item: item[1].last_updated)
        for key, metrics in oldest[:overflow]:
            del self._metrics[key]
            self._baselines.pop(key, None)
            self._total_samples -= metrics.sample_count
            _logger.debug(
                "analytics.metrics_evicted",
                signature=key,
                sample_count=metrics.sample_count,
            )

    # ─── Learned settings ────────────────────────────────────────────────

    def get_optimal_settings(self, profile: NetworkProfile) -> OptimalSettings:
        """Return learned settings for a profile, or static defaults.

        Static defaults apply until the profile's signature has at least
        ``learning_threshold`` samples.
        """
        metrics = self._metrics.get(profile.signature)
        if metrics is None or metrics.sample_count < self._config.learning_threshold:
            return self.default_settings(profile)

        features = self._features(metrics, profile, self._clock())
        heartbeat = self._model.predict(features)

        reliability_factor = 1 + (1 - metrics.success_rate)
        timeout = _clamp(
            metrics.avg_latency_ms * 5 * reliability_factor,
            LEARNED_TIMEOUT_MIN_MS,
            LEARNED_TIMEOUT_MAX_MS,
        )

        rate = metrics.success_rate
        if rate > 0.9:
            max_retries = 3
        elif rate > 0.7:
            max_retries = 5
        else:
            max_retries = 7

        if profile.type is NetworkType.CELLULAR and rate < 0.8:
            transports = (TRANSPORT_POLLING, TRANSPORT_WEBSOCKET)
        else:
            transports = (TRANSPORT_WEBSOCKET, TRANSPORT_POLLING)

        return OptimalSettings(
            heartbeat_interval_ms=round(heartbeat),
            connection_timeout_ms=round(timeout),
            retry_strategy=RetryStrategy(
                max_retries=max_retries,
                base_delay_ms=round(_clamp(metrics.avg_latency_ms * 2, 500, 5000)),
                backoff_multiplier=1.5 if rate > 0.8 else 2.0,
                jitter=True,
            ),
            transport_priority=transports,
        )

    @staticmethod
    def default_settings(profile: NetworkProfile) -> OptimalSettings:
        """Static network-aware defaults used before enough data is collected."""
        heartbeat, timeout, retries = HEARTBEAT_DEFAULT_MS, 15000, 3
        if profile.type is NetworkType.CELLULAR:
            heartbeat, timeout, retries = 45000, 20000, 5
        elif profile.quality is NetworkQuality.POOR:
            heartbeat, timeout, retries = 60000, 25000, 7

        return OptimalSettings(
            heartbeat_interval_ms=heartbeat,
            connection_timeout_ms=timeout,
            retry_strategy=RetryStrategy(
                max_retries=retries,
                base_delay_ms=1000,
                backoff_multiplier=2.0,
                jitter=True,
            ),
            transport_priority=(TRANSPORT_WEBSOCKET, TRANSPORT_POLLING),
        )

    # ─── Reporting ───────────────────────────────────────────────────────

    def generate_performance_report(self) -> PerformanceReport:
        """Summarize totals, per-network breakdown, failures, and recommendations."""
        common_failures = self._common_failures()
        return PerformanceReport(
            total_samples=self._total_samples,
            overall_success_rate=self._overall_success_rate(),
            network_breakdown=[
                NetworkBreakdown(
                    network_type=m.network_type,
                    success_rate=round(m.success_rate * 100, 2),
                    avg_latency_ms=round(m.avg_latency_ms),
                    sample_count=m.sample_count,
                )
                for m in self._metrics.values()
            ],
            common_failures=common_failures,
            recommendations=self._recommendations(common_failures),
            learning_effectiveness=self._learning_effectiveness(),
            model_accuracy=self._model.get_accuracy(),
            generated_at=self._clock(),
        )

    def _overall_success_rate(self) -> float:
        if self._total_samples <= 0:
            return 1.0
        weighted = sum(m.success_rate * m.sample_count for m in self._metrics.values())
        return weighted / self._total_samples

    def _common_failures(self) -> list[FailurePattern]:
        aggregated: dict[tuple[FailureType, TimePattern], FailurePattern] = {}
        for metrics in self._metrics.values():
            for pattern in metrics.failure_patterns:
                bucket = (pattern.type, pattern.time_pattern)
                existing = aggregated.get(bucket)
                if existing is None:
                    aggregated[bucket] = copy.copy(pattern)
                else:
                    existing.frequency += pattern.frequency
                    existing.last_occurrence = max(
                        existing.last_occurrence, pattern.last_occurrence
                    )

        ranked = sorted(aggregated.values(), key=lambda p: p.frequency, reverse=True)
        return ranked[:MAX_FAILURE_PATTERNS]

    def _recommendations(self, common_failures: list[FailurePattern]) -> list[str]:
        recommendations: list[str] = []
        entries = list(self._metrics.values())

        if self._overall_success_rate() < 0.9:
            recommendations.append(RECOMMEND_AGGRESSIVE_HEARTBEAT)

        if any(
            m.network_type.startswith(NetworkType.CELLULAR.value) and m.success_rate < 0.8
            for m in entries
        ):
            recommendations.append(RECOMMEND_CELLULAR)

        if any(
            m.network_type.startswith(NetworkType.WIFI.value) and m.avg_latency_ms > 500
            for m in entries
        ):
            recommendations.append(RECOMMEND_WIFI_LATENCY)

        if any(p.type is FailureType.TIMEOUT and p.frequency > 5 for p in common_failures):
            recommendations.append(RECOMMEND_TIMEOUTS)

        if any(
            p.type is FailureType.NETWORK_ERROR and p.frequency > 3
            for p in common_failures
        ):
            recommendations.append(RECOMMEND_NETWORK_ERRORS)

        if self._model.get_accuracy() < 0.85 and self._total_samples > 100:
            recommendations.append(RECOMMEND_MODEL_DATA)

        if any(m.battery_impact > 0.1 for m in entries):
            recommendations.append(RECOMMEND_BATTERY)

        return recommendations or [RECOMMEND_OPTIMAL]

    def _learning_effectiveness(self) -> float:
        """Mean success-rate improvement over the first observation.

        Only signatures past the learning threshold count. Returned as a
        fraction; 0.0 when no signature qualifies.
        """
        improvements = [
            metrics.success_rate - self._baselines[key]
            for key, metrics in self._metrics.items()
            if metrics.sample_count >= self._config.learning_threshold
            and key in self._baselines
        ]
        if not improvements:
            return 0.0
        return sum(improvements) / len(improvements)

    # ─── Active probing ──────────────────────────────────────────────────

    async def perform_latency_tests(self) -> list[dict[str, Any]]:
        """Probe the configured endpoints in parallel.

        Returns:
            One ``{source, latency_ms, success}`` dict per endpoint. A probe
            that fails or times out yields ``success=False``.
        """
        results = await self._probe.probe_all(
            self._config.latency_test_urls,
            method="GET",
            timeout_ms=self._config.latency_test_timeout_ms,
            require_success_status=True,
        )
        _logger.debug(
            "analytics.latency_tests_completed",
            total=len(results),
            succeeded=sum(1 for r in results if r.success),
        )
        return [
            {
                "source": r.source,
                "latency_ms": r.latency_ms,
                "success": r.success,
            }
            for r in results
        ]

    # ─── Accessors ───────────────────────────────────────────────────────

    def get_metrics(self) -> dict[str, ConnectionMetrics]:
        return copy.deepcopy(self._metrics)

    def get_model_accuracy(self) -> float:
        return self._model.get_accuracy()

    def get_training_data_size(self) -> int:
        return self._model.get_training_data_size()

    def get_latency_test_history(self) -> list[dict[str, Any]]:
        return [dict(entry) for entry in self._latency_tests]

    def get_total_samples(self) -> int:
        return self._total_samples

    def clear_metrics(self) -> None:
        """Drop all metrics, baselines and latency history. The model is kept."""
        self._metrics.clear()
        self._baselines.clear()
        self._latency_tests = []
        self._total_samples = 0
        self._events_since_persist = 0

    def force_learning_update(self) -> None:
        """Run one training step per signature from its current averages."""
        now = self._clock()
        for metrics in self._metrics.values():
            if metrics.sample_count == 0:
                continue
            raw_type, _, raw_quality = metrics.network_type.partition("_")
            profile = NetworkProfile(
                type=NetworkType.from_platform(raw_type),
                quality=NetworkQuality(raw_quality or NetworkQuality.UNKNOWN.value),
            )
            self._update_model(
                metrics,
                ConnectionEvent(
                    network_profile=profile,
                    success=True,
                    latency_ms=metrics.avg_latency_ms,
                    timestamp=now,
                ),
            )

    # ─── Persistence ─────────────────────────────────────────────────────

    def flush(self) -> None:
        """Persist the current snapshot immediately."""
        if self._store is not None:
            self._persist()

    def _snapshot(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "metrics": {key: m.to_dict() for key, m in self._metrics.items()},
            "baselines": dict(self._baselines),
        }

    def _persist(self) -> None:
        assert self._store is not None
        self._events_since_persist = 0
        try:
            self._store.save(self._snapshot())
        except Exception as e:
            _logger.warning(
                "analytics.persist_failed",
                error=str(e),
                error_type=type(e).__name__,
            )

    def _load(self) -> None:
        assert self._store is not None
        try:
            payload = self._store.load()
        except Exception as e:
            _logger.warning(
                "analytics.load_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        if not payload:
            return

        try:
            metrics = {
                key: ConnectionMetrics.from_dict(data)
                for key, data in payload.get("metrics", {}).items()
            }
            baselines = {
                key: float(value) for key, value in payload.get("baselines", {}).items()
            }
        except (KeyError, TypeError, ValueError) as e:
            _logger.warning("analytics.load_corrupt", error=str(e))
            return

        self._metrics = metrics
        self._baselines = {k: v for k, v in baselines.items() if k in metrics}
        self._total_samples = sum(m.sample_count for m in metrics.values())
        self._evict_oldest()
        _logger.info(
            "analytics.metrics_loaded",
            signatures=len(self._metrics),
            total_samples=self._total_samples,
        )


__all__ = [
    "ConnectionAnalytics",
    "quality_score",
    "time_of_day_score",
    "time_pattern_for",
]
