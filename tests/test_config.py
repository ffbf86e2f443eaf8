"""Tests for cadence.core.config."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from cadence.core.config import (
    AdaptiveHealthConfig,
    CadenceConfig,
    ConnectionTimeoutConfig,
    LogConfig,
    NetworkDetectionConfig,
    StaleConnectionConfig,
)


class TestDefaults:
    def test_root_defaults(self) -> None:
        config = CadenceConfig()
        assert config.network.excellent_latency_ms == 100.0
        assert config.network.adaptation_delay_seconds == 2.0
        assert config.analytics.learning_threshold == 10
        assert config.analytics.max_metrics_entries == 50
        assert config.health.base_ping_interval_ms == 30000.0
        assert config.cleaner.stale_threshold_seconds == 300.0
        assert config.timeouts.retryable_statuses == [408, 429, 500, 502, 503, 504]
        assert config.logging.level == "INFO"
        assert config.reconcile_every_pings == 20

    def test_list_defaults_are_not_shared(self) -> None:
        first = NetworkDetectionConfig()
        first.quality_test_urls.append("https://extra.example")
        assert "https://extra.example" not in NetworkDetectionConfig().quality_test_urls


class TestYamlLoading:
    def test_from_yaml_string_overrides_sections(self) -> None:
        config = CadenceConfig.from_yaml_string(
            """
network:
  quality_test_urls:
    - https://probe.example/ping
  adaptation_delay_seconds: 0.5
health:
  min_ping_interval_ms: 2000
  base_ping_interval_ms: 10000
timeouts:
  max_retries: 1
reconcile_every_pings: 5
"""
        )
        assert config.network.quality_test_urls == ["https://probe.example/ping"]
        assert config.network.adaptation_delay_seconds == 0.5
        assert config.health.base_ping_interval_ms == 10000.0
        assert config.health.max_ping_interval_ms == 120000.0
        assert config.timeouts.max_retries == 1
        assert config.reconcile_every_pings == 5

    def test_empty_yaml_gives_defaults(self) -> None:
        assert CadenceConfig.from_yaml_string("") == CadenceConfig()

    def test_from_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "cadence.yaml"
        path.write_text("cleaner:\n  max_retries: 5\nlogging:\n  level: DEBUG\n")

        config = CadenceConfig.from_yaml(path)

        assert config.cleaner.max_retries == 5
        assert config.logging.level == "DEBUG"

    def test_invalid_yaml_value_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CadenceConfig.from_yaml_string("logging:\n  level: CHATTY\n")


class TestValidators:
    def test_latency_thresholds_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError, match="excellent < good < poor"):
            NetworkDetectionConfig(excellent_latency_ms=400.0)

    def test_base_interval_within_bounds(self) -> None:
        with pytest.raises(ValidationError, match="base_ping_interval_ms"):
            AdaptiveHealthConfig(base_ping_interval_ms=1000.0)

    def test_min_interval_not_above_max(self) -> None:
        with pytest.raises(ValidationError, match="min_ping_interval_ms"):
            AdaptiveHealthConfig(
                min_ping_interval_ms=60000.0,
                max_ping_interval_ms=50000.0,
                base_ping_interval_ms=55000.0,
            )

    def test_adaptation_rate_range(self) -> None:
        with pytest.raises(ValidationError):
            AdaptiveHealthConfig(adaptation_rate=1.5)

    def test_stale_threshold_not_above_inactive(self) -> None:
        with pytest.raises(ValidationError, match="inactive_threshold_seconds"):
            StaleConnectionConfig(stale_threshold_seconds=3600.0)

    def test_max_delay_not_below_base(self) -> None:
        with pytest.raises(ValidationError, match="max_delay_ms"):
            ConnectionTimeoutConfig(base_delay_ms=5000.0, max_delay_ms=1000.0)

    def test_zero_retries_allowed(self) -> None:
        assert ConnectionTimeoutConfig(max_retries=0).max_retries == 0

    def test_both_format_requires_file(self) -> None:
        with pytest.raises(ValidationError, match="file_path"):
            LogConfig(format="both")

    def test_both_format_with_file(self, tmp_path: Path) -> None:
        config = LogConfig(format="both", file_path=tmp_path / "cadence.log")
        assert config.file_path == tmp_path / "cadence.log"
