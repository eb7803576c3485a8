"""
Double-submit CSRF protection for the HTML forms.

When enabled, every rendered form carries a ``csrf_token`` field whose value
matches the ``csrf`` cookie; a POST whose field and cookie differ is refused.
"""

from __future__ import annotations

import secrets
from collections.abc import Mapping
from typing import Any

from starlette.requests import Request
from starlette.responses import Response

from formauth.core.security import random_urlsafe

CSRF_COOKIE = "csrf"
CSRF_FIELD = "csrf_token"
CSRF_TOKEN_BYTES = 32


def csrf_token_for(request: Request) -> tuple[str, bool]:
    """Return the request's CSRF token and whether it was newly minted."""
    existing = request.cookies.get(CSRF_COOKIE, "")
    if existing:
        return existing, False
    return random_urlsafe(CSRF_TOKEN_BYTES), True


def set_csrf_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=CSRF_COOKIE,
        value=token,
        path="/",
        httponly=True,
        secure=True,
        samesite="strict",
    )


def csrf_matches(request: Request, form: Mapping[str, Any]) -> bool:
    cookie = request.cookies.get(CSRF_COOKIE, "")
    field = form.get(CSRF_FIELD, "")
    if not cookie or not isinstance(field, str) or not field:
        return False
    return secrets.compare_digest(cookie.encode(), field.encode())
