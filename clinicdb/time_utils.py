"""Utilities for working with timestamps in UTC.

Timestamps are persisted as ISO 8601 text with millisecond precision and a
``Z`` suffix so that string comparison in SQL matches chronological order.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

Timestamp = Union[datetime, str]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""

    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Optional[Timestamp]) -> Optional[datetime]:
    """Parse ISO text (``Z`` suffix allowed) or pass a ``datetime`` through."""

    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def to_iso(value: Optional[Timestamp]) -> Optional[str]:
    """Return the canonical stored form of ``value``."""

    dt = parse_timestamp(value)
    if dt is None:
        return None
    text = dt.isoformat(timespec="milliseconds")
    return text[:-6] + "Z"


def iso_now() -> str:
    return to_iso(utc_now())  # type: ignore[return-value]


__all__ = ["utc_now", "ensure_utc", "parse_timestamp", "to_iso", "iso_now"]
