"""UTC clock helpers.

Freshness checks, task timestamps and the get_current_datetime tool all read
the time through here, so tests can patch one function.

Usage:
    from sleuth.utils.clock import now_utc, hours_between
"""

from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def hours_between(earlier: datetime, later: datetime) -> float:
    """Signed number of hours from *earlier* to *later*."""
    delta = ensure_aware(later) - ensure_aware(earlier)
    return delta.total_seconds() / 3600


def today_human() -> str:
    """Full human-readable date: 'Monday, February 23, 2026'"""
    return now_utc().strftime("%A, %B %-d, %Y")


def datetime_payload() -> dict[str, str | float]:
    """Current date/time in the shapes a model finds useful."""
    now = now_utc()
    return {
        "iso": now.isoformat(),
        "date": now.strftime("%Y-%m-%d"),
        "time": now.strftime("%H:%M:%S"),
        "human": today_human(),
        "timestamp": now.timestamp(),
        "timezone": "UTC",
    }
