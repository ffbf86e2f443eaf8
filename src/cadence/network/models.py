"""Data models for network profiling and connection strategies.

NetworkProfile and ConnectionStrategy are frozen dataclasses: a profile is an
immutable snapshot superseded by the next detection, and a strategy handed to
a transport cannot be mutated behind the catalog's back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class NetworkType(str, Enum):
    """Simplified connectivity type."""

    WIFI = "wifi"
    CELLULAR = "cellular"
    ETHERNET = "ethernet"
    UNKNOWN = "unknown"

    @classmethod
    def from_platform(cls, raw: str | None) -> NetworkType:
        """Map a platform connectivity type (bluetooth, vpn, ...) to our enum."""
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


class NetworkQuality(str, Enum):
    """Latency-derived quality classification."""

    EXCELLENT = "excellent"
    GOOD = "good"
    POOR = "poor"
    UNKNOWN = "unknown"


class HeartbeatProfileName(str, Enum):
    """Named heartbeat profiles a strategy can select."""

    STANDARD = "standard"
    AGGRESSIVE = "aggressive"
    CORPORATE = "corporate"
    BATTERY_SAVER = "battery_saver"


@dataclass(frozen=True)
class NetworkProfile:
    """Snapshot of current network conditions.

    Attributes:
        type: Simplified connectivity type.
        quality: Quality classified from probe latency.
        stability: Blended 0-1 score of probe success rate and latency variance.
        strength: Signal strength where the platform reports it.
        is_expensive: Metered connection (cellular).
        generation: Cellular generation tag ("3g", "4g", "5g").
        is_internet_reachable: Whether the platform reports internet reachability.
    """

    type: NetworkType = NetworkType.UNKNOWN
    quality: NetworkQuality = NetworkQuality.UNKNOWN
    stability: float = 1.0
    strength: int | None = None
    is_expensive: bool = False
    generation: str | None = None
    is_internet_reachable: bool = False

    @property
    def signature(self) -> str:
        """Metrics bucket key derived from (type, quality, is_expensive)."""
        cost = "expensive" if self.is_expensive else "free"
        return f"{self.type.value}_{self.quality.value}_{cost}"

    @property
    def strategy_key(self) -> str:
        """Lookup key into the strategy table."""
        return f"{self.type.value}-{self.quality.value}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "quality": self.quality.value,
            "stability": round(self.stability, 3),
            "strength": self.strength,
            "is_expensive": self.is_expensive,
            "generation": self.generation,
            "is_internet_reachable": self.is_internet_reachable,
        }


@dataclass(frozen=True)
class StrategyTimeouts:
    """Timeouts in milliseconds."""

    connection_ms: int
    heartbeat_ms: int
    retry_ms: int


@dataclass(frozen=True)
class RetryPolicy:
    """Reconnect retry policy."""

    max_attempts: int
    backoff_multiplier: float
    base_delay_ms: int


@dataclass(frozen=True)
class ConnectionStrategy:
    """Policy bundle derived from a NetworkProfile."""

    timeouts: StrategyTimeouts
    retry_policy: RetryPolicy
    heartbeat_profile: HeartbeatProfileName

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeouts": {
                "connection_ms": self.timeouts.connection_ms,
                "heartbeat_ms": self.timeouts.heartbeat_ms,
                "retry_ms": self.timeouts.retry_ms,
            },
            "retry_policy": {
                "max_attempts": self.retry_policy.max_attempts,
                "backoff_multiplier": self.retry_policy.backoff_multiplier,
                "base_delay_ms": self.retry_policy.base_delay_ms,
            },
            "heartbeat_profile": self.heartbeat_profile.value,
        }


@dataclass(frozen=True)
class HeartbeatProfile:
    """Heartbeat parameters for a named profile."""

    interval_ms: int
    timeout_ms: int
    max_consecutive_failures: int
    description: str


@dataclass(frozen=True)
class ConnectivityState:
    """Raw connectivity reading from the platform.

    ``details`` may carry ``strength``, ``cellular_generation`` and
    ``is_connection_expensive``.
    """

    type: str = "unknown"
    is_connected: bool | None = None
    is_internet_reachable: bool | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LatencyTestResult:
    """Outcome of one latency probe.

    Attributes:
        url: Probed endpoint.
        source: Hostname of the endpoint.
        latency_ms: Round-trip time, None when the probe never completed.
        success: Whether the probe counts as successful.
        timestamp: Epoch seconds when the probe finished.
    """

    url: str
    source: str
    latency_ms: float | None
    success: bool
    timestamp: float


__all__ = [
    "ConnectionStrategy",
    "ConnectivityState",
    "HeartbeatProfile",
    "HeartbeatProfileName",
    "LatencyTestResult",
    "NetworkProfile",
    "NetworkQuality",
    "NetworkType",
    "RetryPolicy",
    "StrategyTimeouts",
]
