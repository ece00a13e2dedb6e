from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union


DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical for every stored timestamp)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime and normalize to UTC-naive.

    - None / "" -> None
    - "YYYY-MM-DD" is midnight UTC of that day, or its last microsecond
      with end_of_day=True (inclusive report upper bounds)
    - naive timestamps are UTC; "Z" / "+HH:MM" offsets are converted

    Raises ValueError on malformed input.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if DATE_ONLY_RE.match(s):
        day = date.fromisoformat(s)
        if end_of_day:
            return datetime.combine(day, time.max)
        return datetime.combine(day, time.min)

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def coerce_datetime(value: Union[datetime, str, None]) -> Optional[datetime]:
    """Aggregates over datetime columns come back from SQLite as strings."""
    if value is None or isinstance(value, datetime):
        return value
    return parse_iso_datetime(str(value))


def age_days(since: Optional[datetime], now: Optional[datetime] = None) -> Optional[float]:
    """Elapsed days since `since`, two decimals."""
    if since is None:
        return None
    now = now or utcnow()
    return round((now - since) / timedelta(days=1), 2)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with trailing 'Z', seconds precision. Naive input is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
