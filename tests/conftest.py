"""Pytest fixtures for Cadence tests."""

import logging
from typing import Generator

import pytest
import structlog

from cadence.network.models import NetworkProfile, NetworkQuality, NetworkType
from tests.helpers import NOW


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging state before and after each test.

    This ensures test isolation for logging configuration.
    """
    import cadence.core.logging as logging_module

    original_log_path = logging_module._current_log_path
    logging_module._current_log_path = None

    # Reset structlog to default state
    structlog.reset_defaults()

    # Clear all handlers from root logger
    root_logger = logging.getLogger()
    original_level = root_logger.level
    original_handlers = root_logger.handlers[:]
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    logging_module._current_log_path = original_log_path
    structlog.reset_defaults()

    # Restore original handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


@pytest.fixture
def clock() -> list[float]:
    """Mutable wall clock: ``clock[0]`` is the current epoch time."""
    return [NOW]


@pytest.fixture
def wifi_excellent() -> NetworkProfile:
    return NetworkProfile(
        type=NetworkType.WIFI,
        quality=NetworkQuality.EXCELLENT,
        stability=0.8,
        is_internet_reachable=True,
    )


@pytest.fixture
def cellular_poor() -> NetworkProfile:
    return NetworkProfile(
        type=NetworkType.CELLULAR,
        quality=NetworkQuality.POOR,
        stability=0.8,
        is_expensive=True,
        generation="4g",
        is_internet_reachable=True,
    )
