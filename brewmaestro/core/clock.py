"""Wall-clock time source.

All core modules read the time through this module (never datetime.now()
directly) so tests can freeze or advance it by patching now().
"""

from datetime import datetime, timezone
from typing import Optional

MS_IN_SECOND = 1000
MS_IN_DAY = 1000 * 60 * 60 * 24


def now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(now().timestamp() * MS_IN_SECOND)


def to_iso(dt: Optional[datetime] = None) -> str:
    """ISO-8601 string for dt (defaults to now)."""
    if dt is None:
        dt = now()
    return dt.isoformat()


def parse_iso(value: str):
    """Parse an ISO-8601 string into an aware datetime, or None if unparseable.

    Naive values are assumed to be UTC.
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_datetime(dt: Optional[datetime] = None) -> str:
    """Format as DD/MM/YYYY HH:MM in local time, the prefix used on session notes."""
    if dt is None:
        dt = now()
    return dt.astimezone().strftime("%d/%m/%Y %H:%M")
