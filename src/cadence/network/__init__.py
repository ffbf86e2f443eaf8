"""Network profiling and connection strategy selection."""

from cadence.network.models import (
    ConnectionStrategy,
    ConnectivityState,
    HeartbeatProfile,
    HeartbeatProfileName,
    LatencyTestResult,
    NetworkProfile,
    NetworkQuality,
    NetworkType,
    RetryPolicy,
    StrategyTimeouts,
)
from cadence.network.probes import LatencyProbe
from cadence.network.profiler import (
    ConnectivitySource,
    NetworkProfiler,
    ProfileListener,
    StaticConnectivitySource,
)
from cadence.network.strategies import (
    HEARTBEAT_PROFILES,
    NETWORK_STRATEGIES,
    StrategyCatalog,
    get_optimal_strategy,
)

__all__ = [
    "HEARTBEAT_PROFILES",
    "NETWORK_STRATEGIES",
    "ConnectionStrategy",
    "ConnectivitySource",
    "ConnectivityState",
    "HeartbeatProfile",
    "HeartbeatProfileName",
    "LatencyProbe",
    "LatencyTestResult",
    "NetworkProfile",
    "NetworkProfiler",
    "NetworkQuality",
    "NetworkType",
    "ProfileListener",
    "RetryPolicy",
    "StaticConnectivitySource",
    "StrategyCatalog",
    "StrategyTimeouts",
    "get_optimal_strategy",
]
