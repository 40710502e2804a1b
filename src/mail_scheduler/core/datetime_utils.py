"""Timestamp helpers.

Timestamps are held as aware UTC values and written as ISO 8601. Values that
arrive without an offset are read as the host's local wall-clock time.
"""

from __future__ import annotations

from datetime import UTC, datetime

DISPLAY_FORMAT = "%Y-%m-%d %H:%M"


def utc_now() -> datetime:
    """Current time, aware, in UTC."""
    return datetime.now(tz=UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Convert ``value`` to UTC, treating naive input as local time."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(UTC)


def serialize_datetime(value: datetime | None) -> str | None:
    utc_value = ensure_utc(value)
    return utc_value.isoformat() if utc_value else None


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Read an ISO 8601 timestamp (or pass a ``datetime`` through) as UTC.

    Raises:
        ValueError: If ``value`` is blank or not ISO 8601.
        TypeError: If ``value`` is neither text nor a ``datetime``.
    """
    if value is None or isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise TypeError(f"expected an ISO 8601 string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        raise ValueError("empty timestamp")
    return ensure_utc(datetime.fromisoformat(text))


def display_datetime(value: datetime | None) -> str | None:
    """Format ``value`` in local time for terminal output."""
    utc_value = ensure_utc(value)
    return utc_value.astimezone().strftime(DISPLAY_FORMAT) if utc_value else None
