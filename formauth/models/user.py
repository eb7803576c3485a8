"""
User model — credentials and account state.

Column names follow the external schema (``hashedPassword``, ``fullName``,
``admin``); attribute names are Python's.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String, Text

from formauth.db.base import Base, utcnow

USERNAME_MAX = 30


class User(Base):
    __tablename__ = "users"

    username: str = Column(String(USERNAME_MAX), primary_key=True)  # type: ignore[assignment]
    hashed_password: str = Column("hashedPassword", String(128), key="hashed_password", nullable=False)  # type: ignore[assignment]
    full_name: str = Column("fullName", Text, key="full_name", nullable=False, default="")  # type: ignore[assignment]
    email: str = Column(String(320), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    is_admin: bool = Column(  # type: ignore[assignment]
        "admin",
        Boolean,
        key="is_admin",
        nullable=False,
        default=False,
        server_default="0",
    )
    confirmed: bool = Column(  # type: ignore[assignment]
        Boolean,
        nullable=False,
        default=False,
        server_default="0",
    )
    created: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
