"""
Error taxonomy and global exception handlers.

Every failure raised by the services is a ``WebAuthError`` tagged with an
``ErrorKind``. Flow handlers map the kinds they expect to user-facing
messages; anything left over reaches the handlers below and becomes a
plain-text 500 without leaking detail to the client.
"""

from __future__ import annotations

from enum import Enum

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from formauth.core.http import respond_with_error
from formauth.core.logging import get_logger

logger = get_logger(__name__)


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    TOKEN_MISSING = "token_missing"
    TOKEN_INVALID = "token_invalid"
    TOKEN_EXPIRED = "token_expired"
    AUTH_FAILURE = "auth_failure"
    USER_NOT_FOUND = "user_not_found"
    UNIQUENESS = "uniqueness"
    INVALID_LENGTH = "invalid_length"
    RNG_FAILURE = "rng_failure"
    STORE = "store"
    OPEN = "open"
    PING = "ping"
    DB_NIL = "db_nil"
    WRITE_FAILED = "write_failed"
    QUERY_FAILED = "query_failed"
    SCAN_FAILED = "scan_failed"
    TRANSPORT = "transport"
    TEMPLATE = "template"
    CONFIG_INVALID = "config_invalid"


class WebAuthError(Exception):
    """A failure tagged with the kind of error that occurred."""

    def __init__(self, kind: ErrorKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)

    def is_kind(self, *kinds: ErrorKind) -> bool:
        return self.kind in kinds


async def _webauth_error_handler(request: Request, exc: WebAuthError) -> PlainTextResponse:
    logger.error(
        "unhandled_webauth_error",
        kind=exc.kind.value,
        detail=exc.detail,
        path=request.url.path,
    )
    return respond_with_error(HTTP_500_INTERNAL_SERVER_ERROR)


async def _http_exception_handler(_request: Request, exc: HTTPException) -> PlainTextResponse:
    return respond_with_error(exc.status_code, headers=getattr(exc, "headers", None))


async def _sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> PlainTextResponse:
    logger.error("database_error", error=str(exc), path=request.url.path, exc_info=True)
    return respond_with_error(HTTP_500_INTERNAL_SERVER_ERROR)


async def _generic_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
    logger.exception("unhandled_exception", error=str(exc), path=request.url.path)
    return respond_with_error(HTTP_500_INTERNAL_SERVER_ERROR)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(WebAuthError, _webauth_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
