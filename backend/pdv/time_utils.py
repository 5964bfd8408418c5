from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Any) -> Optional[date]:
    """Parse "YYYY-MM-DD"; None / "" -> None. Raises ValueError on garbage or non-strings."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("date must be a YYYY-MM-DD string")
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def store_zone(tz_name: Optional[str], default: str = "UTC") -> ZoneInfo:
    """Resolve an IANA zone name, falling back to `default` when unknown."""
    for candidate in (tz_name, default, "UTC"):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return ZoneInfo("UTC")


def local_business_date(moment: Optional[datetime], tz_name: Optional[str], default: str = "UTC") -> date:
    """
    Calendar day of `moment` as seen by a store's wall clock.

    Naive datetimes are UTC (same convention as utcnow()). This is the day a
    sale belongs to for cash closing, never the server's local date.
    """
    if moment is None:
        moment = utcnow()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(store_zone(tz_name, default)).date()
