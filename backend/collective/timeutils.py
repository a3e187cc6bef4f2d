"""UTC helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns; every stored value is UTC, so a naive value is tagged as UTC
before comparing it with an aware one.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
