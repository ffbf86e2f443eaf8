"""Time utilities for Cadence.

Provides the wall-clock source used for event timestamps (epoch seconds) and
the local-time conversion used for time-of-day bucketing.
"""

import time
from datetime import datetime


def epoch_now() -> float:
    """Return the current wall-clock time in epoch seconds."""
    return time.time()


def local_datetime(timestamp: float) -> datetime:
    """Convert an epoch-seconds timestamp to a local naive datetime.

    Time-of-day bucketing (morning/evening/weekend) is a property of the
    user's local clock, not of UTC.
    """
    return datetime.fromtimestamp(timestamp)
