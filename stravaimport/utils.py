"""Shared utility functions for the stravaimport package."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


def next_midnight_utc() -> int:
    """Unix timestamp of the next midnight UTC (long-term rate limit reset)."""
    now = datetime.now(UTC)
    midnight = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp())
