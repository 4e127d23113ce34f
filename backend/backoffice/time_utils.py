# Overview: Timestamp helpers. Everything stored is naive UTC; the API speaks ISO-8601 with a Z suffix.

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC, the form every column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_datetime(value: datetime | date | None) -> Optional[datetime]:
    """
    Bring a date or datetime into the stored form.

    A bare date becomes midnight; naive datetimes are already UTC;
    aware ones are shifted to UTC and lose their tzinfo.
    """
    if value is None:
        return None
    if not isinstance(value, datetime):
        return datetime.combine(value, datetime.min.time())
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse client-supplied ISO-8601 ("2026-03-01", "2026-03-01T09:30",
    "2026-03-01T09:30:00Z", "...+02:00"). Blank input yields None;
    malformed input raises ValueError.
    """
    if value is None:
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw[-1] in "zZ":
        raw = raw[:-1] + "+00:00"
    return normalize_datetime(datetime.fromisoformat(raw))


def to_utc_z(value: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp for JSON, to the second."""
    if value is None:
        return None
    value = normalize_datetime(value).replace(microsecond=0)
    return value.isoformat() + "Z"
