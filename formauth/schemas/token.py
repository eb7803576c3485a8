"""Pydantic schemas for issued tokens."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class TokenKind(str, Enum):
    LOGIN = "login"
    RESET = "reset"
    CONFIRM = "confirm"


class IssuedToken(BaseModel):
    """A freshly created token. ``value`` is the raw secret and is never stored."""

    value: str
    expires: datetime
    kind: TokenKind
