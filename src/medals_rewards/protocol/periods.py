"""
medals_rewards/protocol/periods.py

Time keys used by the reward engine.

- Platform year: 1-indexed tier counted from the launch date
- Week id: ISO-8601 week (YYYY-W##), the idempotency key for weekly runs
- Daily key: UTC calendar date (YYYY-MM-DD) for curator counters

All functions take an explicit Unix timestamp so callers can pin the clock.
"""

import time
from datetime import datetime, timezone
from typing import Optional

SECONDS_PER_DAY = 86400
SECONDS_PER_WEEK = 7 * SECONDS_PER_DAY
SECONDS_PER_YEAR = 365.25 * SECONDS_PER_DAY


def _utc(timestamp: Optional[float]) -> datetime:
    if timestamp is None:
        timestamp = time.time()
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def get_platform_year(now: Optional[float], launch_date: int) -> int:
    """
    Get the platform year for a point in time.

    Year 1 starts at launch. Times before launch are still year 1.

    Args:
        now: Unix timestamp (defaults to current time)
        launch_date: Unix timestamp of platform launch

    Returns:
        Platform year (>= 1)
    """
    if now is None:
        now = time.time()
    elapsed_years = int((now - launch_date) // SECONDS_PER_YEAR)
    return max(1, elapsed_years + 1)


def get_week_id(timestamp: Optional[float] = None) -> str:
    """
    Get the ISO-8601 week identifier for a timestamp.

    Weeks run Monday 00:00 UTC to Sunday 23:59:59 UTC and belong to the year
    holding their Thursday, so 2024-12-30 is "2025-W01".

    Args:
        timestamp: Unix timestamp (defaults to now)

    Returns:
        Week id formatted as YYYY-W##
    """
    iso_year, iso_week, _ = _utc(timestamp).isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def get_previous_week_id(timestamp: Optional[float] = None) -> str:
    """Week id of the week before the one holding timestamp."""
    if timestamp is None:
        timestamp = time.time()
    return get_week_id(timestamp - SECONDS_PER_WEEK)


def get_daily_key(timestamp: Optional[float] = None) -> str:
    """UTC date key (YYYY-MM-DD) for daily curator counters."""
    return _utc(timestamp).strftime("%Y-%m-%d")
