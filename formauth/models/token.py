"""
Token model — SHA-256 digests of issued login, reset and confirm tokens.

The raw token value is never stored; rows are keyed by ``(kind, hashedValue)``.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String

from formauth.db.base import Base, utcnow
from formauth.models.user import USERNAME_MAX

KIND_MAX = 10


class Token(Base):
    __tablename__ = "tokens"

    kind: str = Column(String(KIND_MAX), primary_key=True)  # type: ignore[assignment]
    hashed_value: str = Column("hashedValue", String(64), key="hashed_value", primary_key=True)  # type: ignore[assignment]
    username: str = Column(  # type: ignore[assignment]
        String(USERNAME_MAX),
        ForeignKey("users.username"),
        nullable=False,
        index=True,
    )
    expires: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    created: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
