"""Connection strategy catalog.

Maps a NetworkProfile to a ConnectionStrategy through a static table plus
deterministic adjustments for stability and cellular generation. Selection is
a pure function of the profile: no learned state feeds into it, so the same
profile always yields the same strategy.
"""

from __future__ import annotations

from dataclasses import replace
from types import MappingProxyType

from cadence.network.models import (
    ConnectionStrategy,
    HeartbeatProfile,
    HeartbeatProfileName,
    NetworkProfile,
    NetworkType,
    RetryPolicy,
    StrategyTimeouts,
)

UNKNOWN_DEFAULT_KEY = "unknown-default"
CORPORATE_RESTRICTED_KEY = "corporate-restricted"


def _strategy(
    connection_ms: int,
    heartbeat_ms: int,
    retry_ms: int,
    max_attempts: int,
    backoff_multiplier: float,
    base_delay_ms: int,
    profile: HeartbeatProfileName,
) -> ConnectionStrategy:
    return ConnectionStrategy(
        timeouts=StrategyTimeouts(
            connection_ms=connection_ms,
            heartbeat_ms=heartbeat_ms,
            retry_ms=retry_ms,
        ),
        retry_policy=RetryPolicy(
            max_attempts=max_attempts,
            backoff_multiplier=backoff_multiplier,
            base_delay_ms=base_delay_ms,
        ),
        heartbeat_profile=profile,
    )


_STANDARD = HeartbeatProfileName.STANDARD
_AGGRESSIVE = HeartbeatProfileName.AGGRESSIVE
_CORPORATE = HeartbeatProfileName.CORPORATE

NETWORK_STRATEGIES: MappingProxyType[str, ConnectionStrategy] = MappingProxyType({
    "wifi-excellent": _strategy(8000, 30000, 1000, 3, 1.5, 500, _STANDARD),
    "wifi-good": _strategy(10000, 25000, 1500, 4, 1.7, 750, _STANDARD),
    "wifi-poor": _strategy(15000, 15000, 2000, 5, 2.0, 1000, _AGGRESSIVE),
    "cellular-excellent": _strategy(10000, 28000, 1500, 3, 1.6, 700, _STANDARD),
    "cellular-good": _strategy(12000, 25000, 2000, 4, 1.8, 1000, _STANDARD),
    "cellular-poor": _strategy(20000, 20000, 3000, 6, 2.5, 2000, _AGGRESSIVE),
    "ethernet-excellent": _strategy(6000, 35000, 800, 2, 1.3, 400, _STANDARD),
    "ethernet-good": _strategy(8000, 30000, 1000, 3, 1.5, 600, _STANDARD),
    CORPORATE_RESTRICTED_KEY: _strategy(10000, 8000, 1500, 8, 1.2, 800, _CORPORATE),
    UNKNOWN_DEFAULT_KEY: _strategy(12000, 20000, 2000, 5, 2.0, 1000, _STANDARD),
})
"""Static strategy table keyed by ``"{type}-{quality}"``."""

HEARTBEAT_PROFILES: MappingProxyType[HeartbeatProfileName, HeartbeatProfile] = (
    MappingProxyType({
        HeartbeatProfileName.STANDARD: HeartbeatProfile(
            interval_ms=30000,
            timeout_ms=10000,
            max_consecutive_failures=3,
            description="Balanced heartbeat for typical networks",
        ),
        HeartbeatProfileName.AGGRESSIVE: HeartbeatProfile(
            interval_ms=15000,
            timeout_ms=5000,
            max_consecutive_failures=2,
            description="Frequent heartbeats for unstable networks",
        ),
        HeartbeatProfileName.CORPORATE: HeartbeatProfile(
            interval_ms=10000,
            timeout_ms=3000,
            max_consecutive_failures=1,
            description="Short heartbeats to keep proxies and firewalls from idling out",
        ),
        HeartbeatProfileName.BATTERY_SAVER: HeartbeatProfile(
            interval_ms=60000,
            timeout_ms=15000,
            max_consecutive_failures=5,
            description="Infrequent heartbeats to conserve battery",
        ),
    })
)
"""Heartbeat parameters per profile name."""


def _round_multiplier(value: float) -> float:
    return round(value, 3)


def _adjust_for_stability(
    strategy: ConnectionStrategy,
    stability: float,
) -> ConnectionStrategy:
    if stability < 0.5:
        return replace(
            strategy,
            timeouts=replace(
                strategy.timeouts,
                connection_ms=round(max(strategy.timeouts.connection_ms * 1.3, 15000)),
            ),
            retry_policy=replace(
                strategy.retry_policy,
                max_attempts=min(strategy.retry_policy.max_attempts + 2, 8),
                backoff_multiplier=_round_multiplier(
                    min(strategy.retry_policy.backoff_multiplier * 1.2, 3.0)
                ),
            ),
            heartbeat_profile=HeartbeatProfileName.AGGRESSIVE,
        )
    if stability > 0.9:
        return replace(
            strategy,
            timeouts=replace(
                strategy.timeouts,
                connection_ms=round(max(strategy.timeouts.connection_ms * 0.8, 5000)),
                heartbeat_ms=round(min(strategy.timeouts.heartbeat_ms * 1.2, 40000)),
            ),
        )
    return strategy


def _adjust_for_generation(
    strategy: ConnectionStrategy,
    generation: str,
) -> ConnectionStrategy:
    generation = generation.lower()
    if generation == "3g":
        return replace(
            strategy,
            timeouts=replace(
                strategy.timeouts,
                connection_ms=round(max(strategy.timeouts.connection_ms * 1.5, 20000)),
                heartbeat_ms=round(max(strategy.timeouts.heartbeat_ms * 0.8, 15000)),
            ),
            retry_policy=replace(
                strategy.retry_policy,
                max_attempts=min(strategy.retry_policy.max_attempts + 1, 7),
            ),
            heartbeat_profile=HeartbeatProfileName.AGGRESSIVE,
        )
    if generation == "5g":
        return replace(
            strategy,
            timeouts=replace(
                strategy.timeouts,
                connection_ms=round(max(strategy.timeouts.connection_ms * 0.8, 6000)),
                heartbeat_ms=round(min(strategy.timeouts.heartbeat_ms * 1.1, 35000)),
            ),
        )
    # 4g and unrecognized tags keep the table values
    return strategy


class StrategyCatalog:
    """Resolves connection strategies from network profiles.

    The catalog is stateless apart from its (read-only) table, so one
    instance can be shared freely between profilers.
    """

    def __init__(
        self,
        strategies: MappingProxyType[str, ConnectionStrategy] = NETWORK_STRATEGIES,
        heartbeat_profiles: MappingProxyType[
            HeartbeatProfileName, HeartbeatProfile
        ] = HEARTBEAT_PROFILES,
    ) -> None:
        self._strategies = strategies
        self._heartbeat_profiles = heartbeat_profiles

    def _base_strategy(self, profile: NetworkProfile) -> ConnectionStrategy:
        if profile.type is NetworkType.UNKNOWN:
            return self._strategies[UNKNOWN_DEFAULT_KEY]
        strategy = self._strategies.get(profile.strategy_key)
        if strategy is None:
            strategy = self._strategies.get(f"{profile.type.value}-good")
        if strategy is None:
            strategy = self._strategies[UNKNOWN_DEFAULT_KEY]
        return strategy

    def get_optimal_strategy(self, profile: NetworkProfile) -> ConnectionStrategy:
        """Resolve the strategy for a profile.

        Lookup falls back from ``"{type}-{quality}"`` to ``"{type}-good"`` and
        then to the unknown default. Stability adjustments are applied first,
        then cellular generation adjustments.
        """
        strategy = self._base_strategy(profile)
        strategy = _adjust_for_stability(strategy, profile.stability)
        if profile.type is NetworkType.CELLULAR and profile.generation:
            strategy = _adjust_for_generation(strategy, profile.generation)
        return strategy

    def get_strategy(self, key: str) -> ConnectionStrategy | None:
        """Return a raw table entry (e.g. ``"corporate-restricted"``)."""
        return self._strategies.get(key)

    def get_heartbeat_profile(self, name: HeartbeatProfileName) -> HeartbeatProfile:
        """Return heartbeat parameters for a strategy's profile name."""
        return self._heartbeat_profiles[name]


_default_catalog = StrategyCatalog()


def get_optimal_strategy(profile: NetworkProfile) -> ConnectionStrategy:
    """Resolve a strategy using the built-in table."""
    return _default_catalog.get_optimal_strategy(profile)


__all__ = [
    "CORPORATE_RESTRICTED_KEY",
    "HEARTBEAT_PROFILES",
    "NETWORK_STRATEGIES",
    "UNKNOWN_DEFAULT_KEY",
    "StrategyCatalog",
    "get_optimal_strategy",
]
