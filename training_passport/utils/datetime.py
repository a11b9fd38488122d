from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from dateutil import parser as dt_parser


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_utc_now() -> str:
    return to_iso(utc_now().replace(microsecond=0))


def as_utc(dt: datetime | None) -> datetime | None:
    """BSON round-trips drop tzinfo unless the client is tz_aware; treat naive values as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return as_utc(dt).isoformat().replace("+00:00", "Z")


def parse_datetime_maybe(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    s = str(value or "").strip()
    if not s:
        return None
    try:
        dt = dt_parser.isoparse(s)
    except (ValueError, OverflowError):
        return None
    return as_utc(dt)

