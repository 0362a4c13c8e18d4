"""Shared time and parsing helpers.

utcnow:          single source of "now" for expiry checks and stamps
as_utc:          normalise DB round-tripped datetimes (SQLite drops tzinfo)
parse_datetime:  lenient ISO-8601 parser for request payloads
iso:             datetime -> ISO string (None-safe)
date_only:       request date or datetime -> "YYYY-MM-DD"
"""
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """Return *value* as an aware UTC datetime.

    SQLite stores ``DateTime(timezone=True)`` columns without offset, so
    values read back are naive. They were written as UTC, so tagging them
    is lossless.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value):
    """Parse an ISO date or datetime string into an aware UTC datetime.

    Returns None for empty input. Raises ValueError for malformed input so
    callers can turn it into a validation failure.

    Accepts:
    - YYYY-MM-DD                  (midnight UTC)
    - YYYY-MM-DDTHH:MM:SS[.ffffff]
    - trailing "Z" or an explicit offset
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


def date_only(value):
    """``parse_datetime`` then keep the calendar date: "YYYY-MM-DD" or None."""
    parsed = parse_datetime(value)
    return parsed.date().isoformat() if parsed else None
