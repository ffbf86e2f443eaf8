"""Connection analytics, failure patterns, and online heartbeat learning."""

from cadence.analytics.engine import (
    ConnectionAnalytics,
    time_of_day_score,
    time_pattern_for,
)
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
from cadence.analytics.storage import (
    InMemoryMetricsStore,
    JsonFileMetricsStore,
    MetricsStore,
)

__all__ = [
    "ConnectionAnalytics",
    "ConnectionEvent",
    "ConnectionMetrics",
    "FailurePattern",
    "FailureType",
    "InMemoryMetricsStore",
    "JsonFileMetricsStore",
    "LinearHeartbeatModel",
    "MetricsStore",
    "NetworkBreakdown",
    "OptimalSettings",
    "PerformanceReport",
    "RetryStrategy",
    "TimePattern",
    "time_of_day_score",
    "time_pattern_for",
]
