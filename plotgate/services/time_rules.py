"""
Time rules for QR validity windows.

All instants are stored as naive UTC datetimes. Validity windows are defined
in the portal's local timezone (``TZ_DEFAULT``) and converted here.
"""
from datetime import date, datetime, time, timezone
from typing import Optional, Union

import pytz

from ..config import settings


END_OF_DAY = time(23, 59, 59, 999000)


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _tz(timezone_str: Optional[str]):
    return pytz.timezone(timezone_str or settings.tz_default)


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.UTC).replace(tzinfo=None)


def local_date(utc_dt: datetime, timezone_str: Optional[str] = None) -> date:
    """
    Calendar date of a UTC instant in the portal timezone.

    Args:
        utc_dt: Naive UTC or timezone-aware datetime
        timezone_str: Override for ``TZ_DEFAULT``
    """
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=pytz.UTC)
    return utc_dt.astimezone(_tz(timezone_str)).date()


def end_of_day(day: Union[date, datetime, str], timezone_str: Optional[str] = None) -> datetime:
    """
    23:59:59.999 local time on ``day``, returned as naive UTC.

    Args:
        day: A date, a datetime (its date part is used) or an ISO date string
        timezone_str: Override for ``TZ_DEFAULT``
    """
    if isinstance(day, str):
        day = parse_date(day)
    elif isinstance(day, datetime):
        day = day.date()
    local_dt = _tz(timezone_str).localize(datetime.combine(day, END_OF_DAY))
    return local_dt.astimezone(pytz.UTC).replace(tzinfo=None)


def end_of_local_today(now: datetime, timezone_str: Optional[str] = None) -> datetime:
    return end_of_day(local_date(now, timezone_str), timezone_str)


def parse_date(raw: str, timezone_str: Optional[str] = None) -> date:
    """
    Calendar date from ``YYYY-MM-DD`` or a full ISO timestamp.

    A timestamp is resolved to its date in the portal timezone, so
    ``2025-03-13T18:30:00Z`` is the 14th in Asia/Kolkata.
    """
    raw = raw.strip()
    try:
        if "T" in raw or " " in raw:
            return local_date(parse_datetime(raw), timezone_str)
        if len(raw) != 10:
            raise ValueError(raw)
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {raw}") from exc


def parse_datetime(raw: str) -> datetime:
    """ISO timestamp (``Z`` suffix allowed) to naive UTC."""
    raw = raw.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return to_utc_naive(datetime.fromisoformat(raw))


def isoformat(dt: Optional[Union[date, datetime]]) -> Optional[str]:
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return to_utc_naive(dt).isoformat(timespec="milliseconds") + "Z"
    return dt.isoformat()
