"""
Event model — append-only audit log of authentication actions.

``created`` is assigned by the database when the row is inserted.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func

from formauth.db.base import Base
from formauth.models.user import USERNAME_MAX

EVENT_NAME_MAX = 10


class Event(Base):
    __tablename__ = "events"

    id: int = Column(Integer, primary_key=True, autoincrement=True)  # type: ignore[assignment]
    name: str = Column(String(EVENT_NAME_MAX), nullable=False, index=True)  # type: ignore[assignment]
    succeeded: bool = Column(Boolean, nullable=False)  # type: ignore[assignment]
    username: str = Column(String(USERNAME_MAX), nullable=False, default="")  # type: ignore[assignment]
    message: str = Column(Text, nullable=False, default="")  # type: ignore[assignment]
    created: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )
