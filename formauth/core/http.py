"""
Small HTTP helpers shared by the middleware and the page handlers:
error responses, the method gate, local-redirect validation and client IP
detection.
"""

from __future__ import annotations

from collections.abc import Mapping
from http import HTTPStatus
from urllib.parse import urlsplit

from starlette.requests import HTTPConnection, Request
from starlette.responses import PlainTextResponse, Response

# Methods every page route is registered for; the handler gates the rest.
ANY_METHOD = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def respond_with_error(status_code: int, headers: Mapping[str, str] | None = None) -> PlainTextResponse:
    """Plain-text error response of the form ``Error: <reason phrase>``."""
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        phrase = "Error"
    return PlainTextResponse(f"Error: {phrase}", status_code=status_code, headers=headers)


def allowed_methods(request: Request, *allowed: str) -> Response | None:
    """Gate ``request`` on the ``allowed`` methods.

    Returns ``None`` when the method is allowed. Otherwise returns the
    response the handler must send: 204 for OPTIONS, 405 for anything else,
    both carrying an ``Allow`` header that includes OPTIONS.
    """
    if request.method in allowed:
        return None

    allow = ", ".join([*allowed, "OPTIONS"])
    if request.method == "OPTIONS":
        return Response(status_code=HTTPStatus.NO_CONTENT, headers={"Allow": allow})

    return PlainTextResponse(
        f"{request.method} {HTTPStatus.METHOD_NOT_ALLOWED.phrase}",
        status_code=HTTPStatus.METHOD_NOT_ALLOWED,
        headers={"Allow": allow},
    )


def is_local_safe_url(url: str) -> bool:
    """True if ``url`` has no scheme or host and is an absolute local path."""
    if not url or ".." in url or "\\" in url:
        return False

    try:
        parts = urlsplit(url)
    except ValueError:
        return False

    if parts.scheme or parts.netloc:
        return False

    return parts.path.startswith("/") and not parts.path.startswith("//")


def local_redirect_target(url: str | None, default: str = "/") -> str:
    return url if url and is_local_safe_url(url) else default


def client_ip(conn: HTTPConnection) -> str:
    """Client address, preferring the standard forwarding headers."""
    forwarded = conn.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = conn.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return conn.client.host if conn.client else ""
