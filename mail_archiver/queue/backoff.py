"""Retry schedule for failed queue items."""
from datetime import datetime, timedelta
from typing import Optional


def retry_delay_minutes(attempts: int, max_attempts: int) -> Optional[int]:
    """Minutes to wait after the ``attempts``-th failure, or None once retries are exhausted.

    Doubles per failure: 2, 4, 8, ... minutes for attempts 1, 2, 3.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1 after a failure, got {attempts}")
    if attempts >= max_attempts:
        return None
    return 2 ** attempts


def next_retry_at(attempts: int, max_attempts: int, now: datetime) -> Optional[datetime]:
    minutes = retry_delay_minutes(attempts, max_attempts)
    if minutes is None:
        return None
    return now + timedelta(minutes=minutes)
