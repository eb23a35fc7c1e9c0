"""Permissive datetime parsing for query-string filters."""

from __future__ import annotations

from datetime import datetime, time, timezone

DATE_FORMATS: list[str] = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d.%m.%Y",
]


def _parse_aware(raw_value: str | None) -> datetime | None:
    """Parse into an aware datetime, keeping the offset the caller wrote."""
    if raw_value is None:
        return None
    value = raw_value.strip()
    if not value:
        return None

    # ISO 8601 timestamps
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        dt = None

    if dt is None:
        for fmt in DATE_FORMATS:
            try:
                dt = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue

    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_datetime(raw_value: str | None) -> datetime | None:
    """
    Parse an ISO-8601 date or datetime into an aware UTC datetime.

    Returns None for empty or unrecognised input instead of raising; callers
    treat that as "filter not given".
    """
    dt = _parse_aware(raw_value)
    if dt is None:
        return None
    return dt.astimezone(timezone.utc)


def start_of_day(raw_value: str | None) -> datetime | None:
    """00:00:00.000 UTC of the calendar day written in the value's own offset."""
    dt = _parse_aware(raw_value)
    if dt is None:
        return None
    return datetime.combine(dt.date(), time.min, tzinfo=timezone.utc)


def end_of_day(raw_value: str | None) -> datetime | None:
    """23:59:59.999 UTC of the calendar day written in the value's own offset."""
    dt = _parse_aware(raw_value)
    if dt is None:
        return None
    return datetime.combine(dt.date(), time(23, 59, 59, 999000), tzinfo=timezone.utc)
