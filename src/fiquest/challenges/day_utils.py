"""Challenge-day boundary utilities.

A challenge day runs from local midnight to local midnight in the configured
``timezone``. Database timestamps are UTC, so queries use the UTC instants
returned by ``day_bounds``.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from fiquest.config import get_settings


def _zone() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def local_today(now: datetime | None = None) -> date:
    """Current calendar day in the configured zone."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(_zone()).date()


def day_bounds(day: date | None = None) -> tuple[datetime, datetime]:
    """Get (start, end) of ``day`` as UTC instants, end exclusive."""
    if day is None:
        day = local_today()
    zone = _zone()
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def days_ago(days: int, now: datetime | None = None) -> datetime:
    """UTC instant ``days`` days before ``now``."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now - timedelta(days=days)
