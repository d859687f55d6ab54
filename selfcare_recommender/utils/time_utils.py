"""
Timestamp helpers.

All timestamps are stored as ISO-8601 UTC strings in SQLite. Use ``utcnow()``
for "now" and ``to_db`` / ``from_db`` at the repository boundary.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def expiry_from(created_at: datetime, days: int) -> datetime:
    """Return ``created_at`` shifted forward by ``days`` whole days."""
    return created_at + timedelta(days=days)


def to_db(value: Optional[datetime]) -> Optional[str]:
    """Serialise a datetime for storage; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware UTC datetime.

    Accepts both ISO-8601 (``2026-01-02T03:04:05+00:00``) and the
    ``strftime('%Y-%m-%dT%H:%M:%SZ')`` form produced by SQLite column defaults.
    """
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
