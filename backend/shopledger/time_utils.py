from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is midnight UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        s = value.isoformat()
    else:
        s = str(value).strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


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


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def period_bounds(period: str, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """
    Return [start, end) for a named reporting period ending at ``now``.

    Periods: today/day, week (last 7 days), month (calendar month), year
    (calendar year).
    """
    now = now or utcnow()
    today = start_of_day(now.date())
    if period in ("day", "today"):
        return today, today + timedelta(days=1)
    if period == "week":
        return today - timedelta(days=6), today + timedelta(days=1)
    if period == "month":
        start = today.replace(day=1)
        return start, today + timedelta(days=1)
    if period == "year":
        start = today.replace(month=1, day=1)
        return start, today + timedelta(days=1)
    raise ValueError(f"Unknown period: {period}")


def previous_period_bounds(period: str, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """The period immediately preceding ``period_bounds(period, now)``."""
    start, end = period_bounds(period, now)
    if period == "month":
        prev_end = start
        prev_start = (start - timedelta(days=1)).replace(day=1)
        return prev_start, prev_end
    if period == "year":
        return start.replace(year=start.year - 1), start
    span = end - start
    return start - span, start
