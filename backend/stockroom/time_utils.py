# Overview: UTC time helpers shared by models, services and routes.

"""
Time semantics:
- Timestamps are stored UTC-naive.
- API input accepts ISO-8601 datetimes with Z/offsets, or a bare date
  (YYYY-MM-DD, read as midnight UTC); output is ISO-8601 with a trailing Z.
- Order numbers use the UTC calendar day.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse ISO-8601 input to a UTC-naive datetime.

    None or blank -> None. Raises ValueError on anything unparseable.
    """
    if value is None:
        return None
    raw = value.strip()
    if not raw:
        return None

    if raw[-1] in ("Z", "z"):
        raw = raw[:-1] + "+00:00"

    if len(raw) == 10:
        day = date.fromisoformat(raw)
        return datetime(day.year, day.month, day.day)

    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp as "YYYY-MM-DDTHH:MM:SSZ" (naive means UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def day_stamp(day: date) -> str:
    """Compact calendar-day key used in order numbers (YYYYMMDD)."""
    return day.strftime("%Y%m%d")
