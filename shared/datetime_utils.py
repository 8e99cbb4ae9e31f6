"""
Date/time helpers: framework-agnostic.

MongoDB hands back naive datetimes unless the client is tz-aware; everything
in the service compares aware UTC values, so reads go through ensure_utc().
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC ``datetime``."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return *value* as aware UTC; naive datetimes are assumed to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def seconds_remaining(since: datetime, window_seconds: int, now: datetime) -> int:
    """Whole seconds (rounded up) left in a window opened at *since*.

    Returns 0 once the window has fully elapsed and never more than
    *window_seconds*, even when *since* lies in the future.
    """
    elapsed = (now - ensure_utc(since)).total_seconds()
    remaining = window_seconds - elapsed
    if remaining <= 0:
        return 0
    return min(math.ceil(remaining), window_seconds)
