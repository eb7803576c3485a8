"""
Declarative base shared by all models, plus UTC helpers for timestamps.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    # Models use plain Column() attributes rather than Mapped[] annotations.
    __allow_unmapped__ = True


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Timestamps come back naive from SQLite; they were written in UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
