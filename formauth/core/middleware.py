"""
Raw ASGI middleware applied to every request, outermost first:

1. ``RequestIDMiddleware`` - assigns an ID, echoes it in ``X-Request-ID``.
2. ``RequestLoggerMiddleware`` - binds a per-request structlog logger.
3. ``SecurityHeadersMiddleware`` - CSP and friends on every response.
4. ``LogRequestMiddleware`` - optional start/finish access log.
5. ``ServerErrorResponseMiddleware`` - turns an unhandled exception into a
   plain 500 that still passes through the middlewares above.

The request ID and logger live in the ASGI ``state`` mapping, so handlers
read them as ``request.state.request_id`` and ``request.state.logger``.
"""

from __future__ import annotations

import itertools
import secrets
import string
import threading
import time

from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from formauth.core.http import client_ip, respond_with_error
from formauth.core.logging import get_logger

REQUEST_ID_HEADER = "X-Request-ID"

SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'self'; style-src 'self' 'unsafe-inline'",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}

_COUNTER_MASK = 0xFFFFFFFF


# ── Request IDs ─────────────────────────────────────────────────────
class RequestIDGenerator:
    """
    Produces IDs of the form ``PREFIX + %08X``.

    The prefix is four random lowercase letters picked when the generator is
    created, so IDs from different runs do not collide in a shared log. The
    counter is 32 bits and wraps.
    """

    def __init__(self, prefix: str | None = None, start: int = 0) -> None:
        if prefix is None:
            prefix = "".join(secrets.choice(string.ascii_lowercase) for _ in range(4))
        self.prefix = prefix
        self._counter = itertools.count(start + 1)
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            n = next(self._counter) & _COUNTER_MASK
        return f"{self.prefix}{n:08X}"


def _state(scope: Scope) -> dict:
    return scope.setdefault("state", {})


class RequestIDMiddleware:
    def __init__(self, app: ASGIApp, generator: RequestIDGenerator) -> None:
        self.app = app
        self.generator = generator

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = self.generator.next_id()
        _state(scope)["request_id"] = request_id

        async def send_with_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers[REQUEST_ID_HEADER] = request_id
            await send(message)

        await self.app(scope, receive, send_with_id)


# ── Per-request logger ──────────────────────────────────────────────
class RequestLoggerMiddleware:
    def __init__(self, app: ASGIApp, logger_name: str = "formauth.request") -> None:
        self.app = app
        self.logger_name = logger_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        conn = HTTPConnection(scope)
        state = _state(scope)
        state["logger"] = get_logger(self.logger_name).bind(
            request={
                "method": scope["method"],
                "url": str(conn.url),
                "ip": client_ip(conn),
                "id": state.get("request_id", ""),
            }
        )
        await self.app(scope, receive, send)


# ── Security headers ────────────────────────────────────────────────
class SecurityHeadersMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in SECURITY_HEADERS.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_headers)


# ── Access log ──────────────────────────────────────────────────────
class LogRequestMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        logger = _state(scope).get("logger") or get_logger(__name__)
        status_code = 500
        start = time.perf_counter()

        async def send_capturing_status(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        logger.info("request_received")
        try:
            await self.app(scope, receive, send_capturing_status)
        finally:
            logger.info(
                "request_completed",
                status=status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 3),
            )


# ── Unhandled errors ────────────────────────────────────────────────
class ServerErrorResponseMiddleware:
    """
    Innermost middleware: an exception no handler claimed becomes
    ``500 Error: Internal Server Error``.

    The error response passes back through the outer middlewares, so it
    carries the request ID and the security headers like any other.
    An exception raised after the response has started is re-raised.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_tracking_start(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_tracking_start)
        except Exception as exc:
            logger = _state(scope).get("logger") or get_logger(__name__)
            logger.exception("unhandled_exception", error=str(exc))
            if response_started:
                raise
            response = respond_with_error(500)
            await response(scope, receive, send)
