"""Configuration models for Cadence.

Defines Pydantic v2 models for every component of the connection layer:
network detection, analytics, adaptive health monitoring, stale session
cleanup, request timeouts, and logging. ``CadenceConfig`` is the root model
and can be loaded from YAML.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, model_validator


class NetworkDetectionConfig(BaseModel):
    """Network profiling behavior: probe targets, thresholds, and debounce."""

    quality_test_urls: list[str] = Field(
        default_factory=lambda: [
            "https://api.happy.engineering/ping",
            "https://1.1.1.1",
            "https://8.8.8.8",
        ],
        min_length=1,
        description="Endpoints probed concurrently to measure latency. "
        "Used only as timing beacons.",
    )
    excellent_latency_ms: float = Field(
        default=100.0,
        gt=0,
        description="Average probe latency below this is 'excellent'.",
    )
    good_latency_ms: float = Field(
        default=300.0,
        gt=0,
        description="Average probe latency below this is 'good'.",
    )
    poor_latency_ms: float = Field(
        default=800.0,
        gt=0,
        description="Average probe latency below this is 'poor'; above is 'unknown'.",
    )
    stability_window: int = Field(
        default=10,
        ge=2,
        description="Number of recent probe results used for the stability score.",
    )
    test_timeout_ms: float = Field(
        default=5000.0,
        gt=0,
        description="Timeout for an individual latency probe.",
    )
    adaptation_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Debounce delay before a connectivity change is applied.",
    )

    @model_validator(mode="after")
    def _validate_threshold_order(self) -> NetworkDetectionConfig:
        if not (self.excellent_latency_ms < self.good_latency_ms < self.poor_latency_ms):
            raise ValueError(
                "latency thresholds must satisfy excellent < good < poor "
                f"(got {self.excellent_latency_ms}, {self.good_latency_ms}, "
                f"{self.poor_latency_ms})"
            )
        return self


class AnalyticsConfig(BaseModel):
    """Connection analytics and online learning settings."""

    learning_threshold: int = Field(
        default=10,
        ge=1,
        description="Minimum samples before learned settings override static defaults.",
    )
    max_metrics_entries: int = Field(
        default=50,
        ge=1,
        description="Maximum distinct profile signatures kept; oldest evicted first.",
    )
    learning_rate: float = Field(
        default=0.01,
        gt=0.0,
        le=1.0,
        description="Gradient step size for the heartbeat model.",
    )
    latency_test_urls: list[str] = Field(
        default_factory=lambda: [
            "https://www.google.com/generate_204",
            "https://www.cloudflare.com/cdn-cgi/trace",
            "https://httpbin.org/status/200",
        ],
        min_length=1,
        description="Endpoints used by perform_latency_tests().",
    )
    latency_test_timeout_ms: float = Field(
        default=5000.0,
        gt=0,
        description="Timeout for each analytics latency probe.",
    )
    persist_every: int = Field(
        default=10,
        ge=1,
        description="Persist metrics to the injected store every N recorded events.",
    )


class AdaptiveHealthConfig(BaseModel):
    """Adaptive ping interval controller settings."""

    base_ping_interval_ms: float = Field(
        default=30000.0,
        gt=0,
        description="Starting ping interval, restored on reset().",
    )
    min_ping_interval_ms: float = Field(
        default=5000.0,
        gt=0,
        description="Lower bound for the ping interval.",
    )
    max_ping_interval_ms: float = Field(
        default=120000.0,
        gt=0,
        description="Upper bound for the ping interval.",
    )
    adaptation_rate: float = Field(
        default=0.1,
        gt=0.0,
        lt=1.0,
        description="Relative interval change required before the schedule "
        "callback is re-invoked.",
    )
    stability_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Stability above which a success streak may lengthen the interval.",
    )
    history_size: int = Field(
        default=20,
        ge=6,
        description="Ping results kept for stability and trend analysis.",
    )
    min_adaptation_interval_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Minimum time between adaptation passes to prevent oscillation.",
    )

    @model_validator(mode="after")
    def _validate_bounds(self) -> AdaptiveHealthConfig:
        if self.min_ping_interval_ms > self.max_ping_interval_ms:
            raise ValueError(
                f"min_ping_interval_ms ({self.min_ping_interval_ms}) must not exceed "
                f"max_ping_interval_ms ({self.max_ping_interval_ms})"
            )
        if not (
            self.min_ping_interval_ms
            <= self.base_ping_interval_ms
            <= self.max_ping_interval_ms
        ):
            raise ValueError(
                f"base_ping_interval_ms ({self.base_ping_interval_ms}) must be between "
                f"min ({self.min_ping_interval_ms}) and max ({self.max_ping_interval_ms})"
            )
        return self


class StaleConnectionConfig(BaseModel):
    """Stale session reaper settings."""

    check_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="How often the periodic cleanup cycle runs.",
    )
    stale_threshold_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Time without activity after which an active session is stale.",
    )
    inactive_threshold_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="Time without activity after which a session is considered abandoned.",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        description="Cleanup attempts per session before it is skipped.",
    )
    verification_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for the liveness verification call.",
    )

    @model_validator(mode="after")
    def _validate_thresholds(self) -> StaleConnectionConfig:
        if self.stale_threshold_seconds > self.inactive_threshold_seconds:
            raise ValueError(
                f"stale_threshold_seconds ({self.stale_threshold_seconds}) must not "
                f"exceed inactive_threshold_seconds ({self.inactive_threshold_seconds})"
            )
        return self


class ConnectionTimeoutConfig(BaseModel):
    """Request-level timeout and retry settings."""

    default_timeout_ms: float = Field(
        default=30000.0,
        gt=0,
        description="Default per-attempt request timeout.",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries after the first attempt.",
    )
    base_delay_ms: float = Field(
        default=1000.0,
        ge=0,
        description="Base delay for exponential backoff.",
    )
    max_delay_ms: float = Field(
        default=10000.0,
        ge=0,
        description="Cap on the delay between retries.",
    )
    retry_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Exponential backoff multiplier.",
    )
    retryable_statuses: list[int] = Field(
        default_factory=lambda: [408, 429, 500, 502, 503, 504],
        description="HTTP status codes that trigger a retry.",
    )

    @model_validator(mode="after")
    def _validate_delays(self) -> ConnectionTimeoutConfig:
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        return self


class LogConfig(BaseModel):
    """Structured logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level to capture",
    )
    format: Literal["json", "console", "both"] = Field(
        default="console",
        description="Output format: json for structured, console for human-readable, "
        "both for console to stderr and JSON to file",
    )
    file_path: Path | None = Field(
        default=None,
        description="Path for log file output (required if format='both')",
    )
    max_file_size_mb: int = Field(default=50, gt=0, le=1000)
    backup_count: int = Field(default=5, ge=0, le=100)
    include_timestamps: bool = Field(default=True)

    @model_validator(mode="after")
    def _validate_file_path(self) -> LogConfig:
        if self.format == "both" and self.file_path is None:
            raise ValueError("file_path is required when format='both'")
        return self


class CadenceConfig(BaseModel):
    """Root configuration for one connection layer instance."""

    network: NetworkDetectionConfig = Field(default_factory=NetworkDetectionConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    health: AdaptiveHealthConfig = Field(default_factory=AdaptiveHealthConfig)
    cleaner: StaleConnectionConfig = Field(default_factory=StaleConnectionConfig)
    timeouts: ConnectionTimeoutConfig = Field(default_factory=ConnectionTimeoutConfig)
    logging: LogConfig = Field(default_factory=LogConfig)
    reconcile_every_pings: int = Field(
        default=20,
        ge=1,
        description="Rebase the health monitor on the learned heartbeat every N pings.",
    )

    @classmethod
    def from_yaml(cls, path: Path) -> CadenceConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> CadenceConfig:
        """Load configuration from a YAML string."""
        data = yaml.safe_load(yaml_str)
        return cls.model_validate(data or {})


__all__ = [
    "AdaptiveHealthConfig",
    "AnalyticsConfig",
    "CadenceConfig",
    "ConnectionTimeoutConfig",
    "LogConfig",
    "NetworkDetectionConfig",
    "StaleConnectionConfig",
]
