# Overview: UTC clock, local reporting-period boundaries and display formatting.

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(dt: datetime) -> datetime:
    return start_of_day(dt).replace(day=1)


def reporting_zone(name: Optional[str]) -> Optional[tzinfo]:
    """IANA zone for reporting periods; None means the server's local time."""
    return ZoneInfo(name) if name else None


def _local_floor(now: datetime, tz: Optional[tzinfo], floor) -> datetime:
    aware = now if now.tzinfo else now.replace(tzinfo=timezone.utc)
    if tz is None:
        # Naive local wall time; astimezone() below resolves it with the
        # offset in force at that instant, not the one in force now
        local = floor(aware.astimezone().replace(tzinfo=None))
    else:
        local = floor(aware.astimezone(tz))
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def local_day_start(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Most recent local midnight, as naive UTC comparable with stored timestamps."""
    return _local_floor(now, tz, start_of_day)


def local_month_start(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    return _local_floor(now, tz, start_of_month)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    ISO-8601 in UTC, whole seconds, 'Z' suffix. Stored timestamps are naive
    UTC, so a missing tzinfo means UTC.
    """
    if dt is None:
        return None
    aware = dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return aware.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_minor_units(amount: int) -> str:
    """
    Render integer minor units (paise/cents) as a major-unit string.

    Display only: 23500 -> "235.00", -150 -> "-1.50". Never feed the result
    back into arithmetic.
    """
    sign = "-" if amount < 0 else ""
    major, minor = divmod(abs(amount), 100)
    return f"{sign}{major:,}.{minor:02d}"
