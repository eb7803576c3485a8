"""Pydantic schemas for users."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class UserRead(BaseModel):
    """A user as shown to pages; the empty user (no username) means "not logged in"."""

    username: str = ""
    full_name: str = ""
    email: str = ""
    is_admin: bool = False
    confirmed: bool = False
    created: datetime | None = None
    last_login_time: datetime | None = None
    last_login_succeeded: bool = False

    model_config = {"from_attributes": True}

    @property
    def is_authenticated(self) -> bool:
        return bool(self.username)
