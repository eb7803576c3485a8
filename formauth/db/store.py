"""
Narrow async adapter over an SQLAlchemy engine.

Every call checks out a connection, runs one statement in its own
transaction and gives the connection back before returning. Driver errors
are translated to ``WebAuthError``: integrity violations become
``uniqueness``; everything else becomes ``store``.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import select, text
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql.expression import Executable, Select

from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.logging import get_logger
from formauth.db.base import Base

# Ensure all models are imported so metadata.create_all can see them
from formauth.models.event import Event  # noqa: F401
from formauth.models.token import Token  # noqa: F401
from formauth.models.user import User  # noqa: F401

logger = get_logger(__name__)


class Store:
    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def exec(self, stmt: Executable) -> int:
        """Run a write statement and return the number of affected rows."""
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
                return result.rowcount
        except IntegrityError as exc:
            raise WebAuthError(ErrorKind.UNIQUENESS, str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            raise WebAuthError(ErrorKind.STORE, str(exc)) from exc

    async def query(self, stmt: Select[Any]) -> Sequence[RowMapping]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                return result.mappings().all()
        except SQLAlchemyError as exc:
            raise WebAuthError(ErrorKind.STORE, str(exc)) from exc

    async def query_row(self, stmt: Select[Any]) -> RowMapping | None:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                return result.mappings().first()
        except SQLAlchemyError as exc:
            raise WebAuthError(ErrorKind.STORE, str(exc)) from exc

    async def row_exists(self, stmt: Select[Any]) -> bool:
        try:
            async with self.engine.connect() as conn:
                return bool(await conn.scalar(select(stmt.exists())))
        except SQLAlchemyError as exc:
            raise WebAuthError(ErrorKind.STORE, str(exc)) from exc

    # ── Lifecycle ───────────────────────────────────────────────────
    async def create_schema(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            raise WebAuthError(ErrorKind.STORE, str(exc)) from exc
        logger.info("database_tables_initialised")

    async def ping(self) -> None:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            raise WebAuthError(ErrorKind.PING, str(exc)) from exc

    async def dispose(self) -> None:
        await self.engine.dispose()


def open_store(url: str) -> Store:
    """
    Build a store for a ``driver://data-source`` URL (see ``SQLConfig.url``).

    No connection is made here; call ``ping()`` from the running event loop.
    """
    driver_name = url.split("://", 1)[0]
    engine_args: dict[str, Any] = {
        "echo": False,
        "pool_pre_ping": True,
    }
    if driver_name.startswith("postgresql"):
        engine_args.update(
            {
                "pool_size": 20,
                "max_overflow": 10,
                "pool_recycle": 300,
            }
        )

    try:
        engine = create_async_engine(url, **engine_args)
    except (SQLAlchemyError, ImportError, ValueError) as exc:
        raise WebAuthError(ErrorKind.OPEN, f"unable to open {driver_name!r} store: {exc}") from exc

    return Store(engine)
