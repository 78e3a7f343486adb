# Overview: UTC timestamp helpers shared by models, services and routes.

"""
Timestamps are stored as naive UTC datetimes. The API speaks ISO-8601 with
a trailing "Z" and shows whole seconds.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def is_date_only(value) -> bool:
    """True for a bare "YYYY-MM-DD" string."""
    return isinstance(value, str) and len(value.strip()) == 10


def parse_iso_datetime(value) -> datetime | None:
    """
    Parse an ISO-8601 value into a naive UTC datetime.

    Blank -> None. A bare date is the start of that day. Naive times are
    taken as UTC; "Z" and "+HH:MM" offsets are converted. Anything else
    raises ValueError.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if is_date_only(text):
        return datetime.combine(date.fromisoformat(text), time.min)
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _naive_utc(datetime.fromisoformat(text))


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.max)


def to_utc_z(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return _naive_utc(dt).replace(microsecond=0).isoformat() + "Z"
