from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns store UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso_zulu(value: datetime | None) -> str | None:
    """Render a stored (naive UTC) or aware datetime as `2026-02-10T09:15:00Z`."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat() + "Z"


def iso_date(value: date | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()
