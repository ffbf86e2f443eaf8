"""Data models for connection analytics.

ConnectionEvent is the immutable input record produced by the transport on
every attempt. ConnectionMetrics and FailurePattern are the mutable rolling
state owned by ConnectionAnalytics; callers only ever see copies of them.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from cadence.core.constants import HEARTBEAT_DEFAULT_MS
from cadence.network.models import NetworkProfile
from cadence.utils.time import epoch_now


class FailureType(str, Enum):
    """Kind of failed connection attempt."""

    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    SERVER_ERROR = "server_error"


class TimePattern(str, Enum):
    """Local-time bucket a failure occurred in."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"
    WEEKEND = "weekend"


@dataclass(frozen=True)
class ConnectionEvent:
    """One observed connection or heartbeat outcome.

    Attributes:
        network_profile: Profile in effect when the attempt was made.
        success: Whether the attempt succeeded.
        latency_ms: Measured round-trip latency, if any.
        failure_type: Failure classification for unsuccessful attempts.
        context: Free-form context tag (e.g. "during_background").
        heartbeat_interval_ms: Heartbeat interval in use for the attempt.
        timestamp: Epoch seconds of the attempt.
        data_used: Bytes transferred, if measured.
        battery_delta: Battery fraction consumed, if measured.
    """

    network_profile: NetworkProfile
    success: bool
    latency_ms: float | None = None
    failure_type: FailureType | None = None
    context: str | None = None
    heartbeat_interval_ms: float | None = None
    timestamp: float = field(default_factory=epoch_now)
    data_used: float | None = None
    battery_delta: float | None = None


@dataclass
class FailurePattern:
    """Recurring failure of one type within one time bucket."""

    type: FailureType
    time_pattern: TimePattern
    context: str = "unknown"
    frequency: int = 1
    last_occurrence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "time_pattern": self.time_pattern.value,
            "context": self.context,
            "frequency": self.frequency,
            "last_occurrence": self.last_occurrence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FailurePattern:
        return cls(
            type=FailureType(data["type"]),
            time_pattern=TimePattern(data["time_pattern"]),
            context=data.get("context", "unknown"),
            frequency=int(data.get("frequency", 1)),
            last_occurrence=float(data.get("last_occurrence", 0.0)),
        )


@dataclass
class ConnectionMetrics:
    """Rolling per-signature connection statistics.

    ``success_rate`` is a true count-weighted running average. Latency, data
    usage and battery impact are sample-weighted exponential averages.
    """

    network_type: str
    avg_latency_ms: float = 0.0
    latency_samples: int = 0
    success_rate: float = 1.0
    failure_patterns: list[FailurePattern] = field(default_factory=list)
    optimal_heartbeat_ms: float = float(HEARTBEAT_DEFAULT_MS)
    sample_count: int = 0
    last_updated: float = 0.0
    data_usage: float = 0.0
    battery_impact: float = 0.0
    time_of_day: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["failure_patterns"] = [p.to_dict() for p in self.failure_patterns]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConnectionMetrics:
        patterns = [FailurePattern.from_dict(p) for p in data.get("failure_patterns", [])]
        return cls(
            network_type=data["network_type"],
            avg_latency_ms=float(data.get("avg_latency_ms", 0.0)),
            latency_samples=int(data.get("latency_samples", 0)),
            success_rate=float(data.get("success_rate", 1.0)),
            failure_patterns=patterns,
            optimal_heartbeat_ms=float(
                data.get("optimal_heartbeat_ms", HEARTBEAT_DEFAULT_MS)
            ),
            sample_count=int(data.get("sample_count", 0)),
            last_updated=float(data.get("last_updated", 0.0)),
            data_usage=float(data.get("data_usage", 0.0)),
            battery_impact=float(data.get("battery_impact", 0.0)),
            time_of_day=float(data.get("time_of_day", 0.0)),
        )


@dataclass(frozen=True)
class RetryStrategy:
    """Retry parameters recommended for a profile."""

    max_retries: int
    base_delay_ms: int
    backoff_multiplier: float
    jitter: bool = True


@dataclass(frozen=True)
class OptimalSettings:
    """Learned or default connection settings for a profile."""

    heartbeat_interval_ms: int
    connection_timeout_ms: int
    retry_strategy: RetryStrategy
    transport_priority: tuple[str, ...]


@dataclass(frozen=True)
class NetworkBreakdown:
    """Per-signature summary line in a performance report.

    ``success_rate`` is a percentage with two decimals.
    """

    network_type: str
    success_rate: float
    avg_latency_ms: int
    sample_count: int


@dataclass
class PerformanceReport:
    """Human-oriented summary of everything the analytics engine has seen."""

    total_samples: int
    overall_success_rate: float
    network_breakdown: list[NetworkBreakdown]
    common_failures: list[FailurePattern]
    recommendations: list[str]
    learning_effectiveness: float
    model_accuracy: float
    generated_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_samples": self.total_samples,
            "overall_success_rate": self.overall_success_rate,
            "network_breakdown": [asdict(b) for b in self.network_breakdown],
            "common_failures": [p.to_dict() for p in self.common_failures],
            "recommendations": list(self.recommendations),
            "learning_effectiveness": self.learning_effectiveness,
            "model_accuracy": self.model_accuracy,
            "generated_at": self.generated_at,
        }


__all__ = [
    "ConnectionEvent",
    "ConnectionMetrics",
    "FailurePattern",
    "FailureType",
    "NetworkBreakdown",
    "OptimalSettings",
    "PerformanceReport",
    "RetryStrategy",
    "TimePattern",
]
