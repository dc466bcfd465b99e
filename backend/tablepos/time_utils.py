# Overview: UTC clock and ISO-8601 helpers shared by models, services and routes.

"""
Timestamps are stored UTC-naive. Clients send ISO-8601 strings (with or
without offset, or bare dates for list filters) and receive UTC with a
trailing "Z".
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _is_bare_date(text: str) -> bool:
    return len(text) == 10 and "T" not in text and " " not in text


def parse_iso_datetime(value: str | None, *, end_of_day: bool = False) -> datetime | None:
    """
    Parse a client timestamp into a UTC-naive datetime.

    - None / "" -> None
    - "2026-10-17" -> start of that day, or its last microsecond when
      end_of_day is set (inclusive upper bounds for date filters)
    - naive datetimes are taken as UTC
    - "...Z" / "...+07:00" are converted to UTC

    Raises ValueError for anything else.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None

    if _is_bare_date(text):
        day = date.fromisoformat(text)
        return datetime.combine(day, time.max if end_of_day else time.min)

    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: datetime | None) -> str | None:
    """Serialize as "YYYY-MM-DDTHH:MM:SSZ"; naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
