"""
FastAPI dependencies and small request helpers shared by the page routes.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status
from starlette.datastructures import FormData

from formauth.app import AuthApp
from formauth.core.csrf import csrf_matches
from formauth.core.logging import get_logger

_fallback_logger = get_logger("formauth.request")


# ── Application ─────────────────────────────────────────────────────
def get_auth_app(request: Request) -> AuthApp:
    return request.app.state.auth


def request_logger(request: Request) -> Any:
    """The logger bound to this request by the middleware."""
    return getattr(request.state, "logger", _fallback_logger)


# ── Forms ───────────────────────────────────────────────────────────
async def read_form(request: Request, auth: AuthApp) -> FormData:
    """Parse the posted form, enforcing the CSRF check when it is enabled."""
    form = await request.form()
    if auth.config.auth.csrf_protect and not csrf_matches(request, form):
        request_logger(request).warning("csrf_check_failed")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return form


def form_value(form: FormData, key: str, trim: bool = True) -> str:
    """String value of ``key``; whitespace-trimmed unless ``trim`` is false."""
    value = form.get(key, "")
    if not isinstance(value, str):
        return ""
    return value.strip() if trim else value
