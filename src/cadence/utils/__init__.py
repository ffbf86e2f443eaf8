"""Shared utilities for Cadence.

Contains cross-cutting utilities used by multiple modules.
"""

from cadence.utils.tasks import log_task_exception
from cadence.utils.time import epoch_now, local_datetime

__all__ = ["epoch_now", "local_datetime", "log_task_exception"]
