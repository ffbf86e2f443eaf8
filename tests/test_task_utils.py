"""Tests for cadence.utils.tasks."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from cadence.utils.tasks import log_task_exception


async def _fail() -> None:
    raise RuntimeError("loop crashed")


async def _succeed() -> int:
    return 1


async def _hang() -> None:
    await asyncio.sleep(10)


class TestLogTaskException:
    @pytest.mark.asyncio
    async def test_exception_is_logged_and_returned(self) -> None:
        task = asyncio.create_task(_fail(), name="cadence-test")
        await asyncio.gather(task, return_exceptions=True)
        logger = MagicMock()

        exc = log_task_exception(task, logger, "test.task_died")

        assert isinstance(exc, RuntimeError)
        logger.error.assert_called_once_with(
            "test.task_died", error="loop crashed", task_name="cadence-test"
        )

    @pytest.mark.asyncio
    async def test_warning_level(self) -> None:
        task = asyncio.create_task(_fail())
        await asyncio.gather(task, return_exceptions=True)
        logger = MagicMock()

        log_task_exception(task, logger, "test.sync_failed", level="warning")

        logger.warning.assert_called_once()
        logger.error.assert_not_called()

    @pytest.mark.asyncio
    async def test_normal_completion_logs_nothing(self) -> None:
        task = asyncio.create_task(_succeed())
        await task
        logger = MagicMock()

        assert log_task_exception(task, logger, "test.unused") is None
        logger.error.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancelled_task_logs_nothing(self) -> None:
        task = asyncio.create_task(_hang())
        await asyncio.sleep(0)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger = MagicMock()

        assert log_task_exception(task, logger, "test.unused") is None
        logger.error.assert_not_called()
