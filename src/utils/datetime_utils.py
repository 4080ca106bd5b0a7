"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from src.utils.datetime_utils import utc_now

    created_at = Column(DateTime, default=utc_now)
"""

import time
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def deadline_in(seconds: Optional[float]) -> Optional[float]:
    """
    Convert a relative timeout into a monotonic deadline.

    Args:
        seconds: Seconds from now, or None for no deadline

    Returns:
        time.monotonic() based deadline, or None
    """
    if seconds is None:
        return None
    return time.monotonic() + seconds


def deadline_passed(deadline: Optional[float]) -> bool:
    """Check whether a monotonic deadline has been reached."""
    return deadline is not None and time.monotonic() >= deadline
