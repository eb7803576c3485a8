"""
Session binding — the ``login`` cookie carries a raw login token; a session
exists exactly while that token is in the store and unexpired.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from starlette.requests import Request
from starlette.responses import Response

from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.schemas.token import IssuedToken
from formauth.schemas.user import UserRead
from formauth.services.users import UserService

LOGIN_COOKIE = "login"


@dataclass
class BoundSession:
    """Outcome of binding a request to a user."""

    user: UserRead = field(default_factory=UserRead)
    token: str = ""
    clear_cookie: bool = False

    def apply(self, response: Response) -> Response:
        """Write the deletion cookie onto ``response`` when binding required it."""
        if self.clear_cookie:
            clear_login_cookie(response)
        return response


class SessionBinder:
    def __init__(self, users: UserService) -> None:
        self.users = users

    async def user_from_request(self, request: Request) -> BoundSession:
        """
        Resolve the request's ``login`` cookie to a user.

        A missing cookie yields the empty user. An unknown or expired token
        also yields the empty user and asks for the cookie to be deleted.
        Other failures propagate.
        """
        raw = request.cookies.get(LOGIN_COOKIE, "")
        if not raw:
            return BoundSession()

        try:
            user = await self.users.user_for_login_token(raw)
        except WebAuthError as exc:
            if exc.is_kind(ErrorKind.TOKEN_INVALID, ErrorKind.TOKEN_EXPIRED):
                return BoundSession(token=raw, clear_cookie=True)
            raise

        return BoundSession(user=user, token=raw)


# ── Cookies ─────────────────────────────────────────────────────────
def set_login_cookie(response: Response, token: IssuedToken, remember: bool) -> None:
    """Session cookie unless ``remember``, in which case it expires with the token."""
    response.set_cookie(
        key=LOGIN_COOKIE,
        value=token.value,
        expires=token.expires if remember else None,
        path="/",
        httponly=True,
        secure=True,
        samesite="strict",
    )


def clear_login_cookie(response: Response) -> None:
    response.delete_cookie(
        key=LOGIN_COOKIE,
        path="/",
        httponly=True,
        secure=True,
        samesite="strict",
    )
