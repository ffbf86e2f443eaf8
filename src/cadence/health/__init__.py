"""Heartbeat interval control."""

from cadence.health.adaptive import (
    AdaptiveHealthMonitor,
    HealthStatus,
    PingResult,
    ScheduleCallback,
)
from cadence.health.controller import (
    HeartbeatCoordinator,
    IntervalController,
    LearnedIntervalController,
)

__all__ = [
    "AdaptiveHealthMonitor",
    "HealthStatus",
    "HeartbeatCoordinator",
    "IntervalController",
    "LearnedIntervalController",
    "PingResult",
    "ScheduleCallback",
]
