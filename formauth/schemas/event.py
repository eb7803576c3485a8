"""Pydantic schemas for audit events."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class EventName(str, Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    REGISTER = "register"
    SAVE_TOKEN = "save_token"
    RESET_PASS = "reset_pass"
    CONFIRMED = "confirmed"


class EventRead(BaseModel):
    name: str
    succeeded: bool
    username: str
    message: str
    created: datetime | None = None

    model_config = {"from_attributes": True}
