"""Core configuration, errors, and logging."""

from cadence.core.config import (
    AdaptiveHealthConfig,
    AnalyticsConfig,
    CadenceConfig,
    ConnectionTimeoutConfig,
    LogConfig,
    NetworkDetectionConfig,
    StaleConnectionConfig,
)
from cadence.core.errors import (
    CadenceError,
    ConnectionTimeoutError,
    RetryableError,
    SessionCleanupError,
)

__all__ = [
    "AdaptiveHealthConfig",
    "AnalyticsConfig",
    "CadenceConfig",
    "CadenceError",
    "ConnectionTimeoutConfig",
    "ConnectionTimeoutError",
    "LogConfig",
    "NetworkDetectionConfig",
    "RetryableError",
    "SessionCleanupError",
    "StaleConnectionConfig",
]
