"""
formauth — application entry point.

This is the **only** file that assembles the ASGI app. All business logic
lives in the `api/`, `services/`, `models/` and `core/` packages.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from formauth.api.router import page_router
from formauth.app import AuthApp, AuthAppBuilder
from formauth.core.config import Config
from formauth.core.exceptions import WebAuthError, register_exception_handlers
from formauth.core.logging import configure_logging, get_logger
from formauth.core.middleware import (
    LogRequestMiddleware,
    RequestIDMiddleware,
    RequestLoggerMiddleware,
    SecurityHeadersMiddleware,
    ServerErrorResponseMiddleware,
)
from formauth.db.store import Store, open_store

logger = get_logger(__name__)

EXIT_USAGE = 1
EXIT_LOG = 2
EXIT_SERVER = 3
EXIT_TEMPLATE = 4
EXIT_CONFIG = 5
EXIT_DATABASE = 6
EXIT_APP = 7


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    auth: AuthApp = app.state.auth

    # Create all tables, then make sure the database answers
    await auth.store.create_schema()
    await auth.store.ping()

    logger.info("started", app=auth.name, request_id_prefix=auth.request_ids.prefix)
    yield
    await auth.store.dispose()
    logger.info("shutdown_complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app(auth: AuthApp) -> FastAPI:
    application = FastAPI(
        title=auth.name,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    application.state.auth = auth

    # Added innermost first: the request ID middleware ends up outermost.
    application.add_middleware(ServerErrorResponseMiddleware)
    if auth.config.server.log_requests:
        application.add_middleware(LogRequestMiddleware)
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(RequestLoggerMiddleware)
    application.add_middleware(RequestIDMiddleware, generator=auth.request_ids)

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    application.include_router(page_router)

    return application


# ── Command line ────────────────────────────────────────────────────
async def _check_store(store: Store) -> None:
    try:
        await store.ping()
    finally:
        # Pooled connections belong to this loop; the server runs its own.
        await store.dispose()


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace | None:
    parser = argparse.ArgumentParser(prog="formauth", description="Form-based web authentication server.")
    parser.add_argument("config", help="path to the JSON configuration file")
    try:
        return parser.parse_args(argv)
    except SystemExit:
        return None


def run(argv: Sequence[str] | None = None) -> int:
    """Load the configuration, build the app and serve it. Returns an exit code."""
    args = _parse_args(argv)
    if args is None:
        return EXIT_USAGE

    try:
        config = Config.from_json_file(args.config)
    except WebAuthError as exc:
        print(f"formauth: invalid configuration: {exc.detail}", file=sys.stderr)
        return EXIT_CONFIG

    try:
        configure_logging(config.log)
    except OSError as exc:
        print(f"formauth: unable to configure logging: {exc}", file=sys.stderr)
        return EXIT_LOG

    logger.info("configuration_loaded", config=config.redacted())

    try:
        store = open_store(config.sql.url())
    except WebAuthError as exc:
        logger.error("unable_to_open_store", kind=exc.kind.value, error=exc.detail)
        return EXIT_DATABASE

    try:
        asyncio.run(_check_store(store))
    except WebAuthError as exc:
        logger.error("unable_to_reach_store", kind=exc.kind.value, error=exc.detail)
        return EXIT_DATABASE

    try:
        auth = AuthAppBuilder().with_config(config).with_store(store).build()
    except WebAuthError as exc:
        logger.error("unable_to_build_app", kind=exc.kind.value, error=exc.detail)
        return EXIT_APP

    try:
        auth.pages.check()
    except WebAuthError as exc:
        logger.error("unable_to_load_templates", error=exc.detail)
        return EXIT_TEMPLATE

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(auth),
            host=config.server.host,
            port=config.server.port,
            log_config=None,
            proxy_headers=True,
        )
    )
    try:
        server.run()
    except OSError as exc:
        logger.error("server_failed", error=str(exc))
        return EXIT_SERVER

    # uvicorn reports a failed lifespan startup by leaving started unset
    if not server.started:
        logger.error("server_failed_to_start")
        return EXIT_SERVER
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
