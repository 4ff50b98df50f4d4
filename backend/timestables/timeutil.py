"""
Timestamp helpers.

All datetimes are stored as timezone-naive UTC so that SQLite and
PostgreSQL rows compare the same way in Python.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(ts_str: Optional[str]) -> Optional[datetime]:
    """
    Flexibly parse ISO 8601 timestamps (with or without 'Z').
    Returns a naive UTC datetime, or None if parsing fails.
    """
    if not ts_str:
        return None
    try:
        if ts_str.endswith("Z"):
            ts_str = ts_str[:-1] + "+00:00"
        dt = datetime.fromisoformat(ts_str)
        if dt.tzinfo is not None:
            dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
        return dt
    except (ValueError, TypeError):
        return None


def iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None
