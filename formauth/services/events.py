"""
Event recorder — append-only audit log of authentication actions.

``write`` reports every failure. Flows use ``record``, which logs and
swallows store failures so auditing never blocks the action being audited.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError
from sqlalchemy import insert, select

from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.logging import get_logger
from formauth.db.base import as_utc
from formauth.db.store import Store
from formauth.models.event import EVENT_NAME_MAX, Event
from formauth.models.user import USERNAME_MAX
from formauth.schemas.event import EventName, EventRead

logger = get_logger(__name__)


class EventRecorder:
    def __init__(self, store: Store | None) -> None:
        self.store = store

    async def write(self, name: EventName | str, succeeded: bool, username: str, message: str) -> None:
        if self.store is None:
            raise WebAuthError(ErrorKind.DB_NIL, "no store for events")

        name = _name_value(name)
        if len(name) > EVENT_NAME_MAX:
            raise WebAuthError(ErrorKind.WRITE_FAILED, f"event name {name!r} longer than {EVENT_NAME_MAX}")
        if len(username) > USERNAME_MAX:
            raise WebAuthError(ErrorKind.WRITE_FAILED, f"username longer than {USERNAME_MAX}")

        stmt = insert(Event).values(
            name=name,
            succeeded=succeeded,
            username=username,
            message=message,
        )
        try:
            affected = await self.store.exec(stmt)
        except WebAuthError as exc:
            raise WebAuthError(ErrorKind.WRITE_FAILED, exc.detail) from exc

        if affected != 1:
            raise WebAuthError(ErrorKind.WRITE_FAILED, f"{affected} rows affected")

    async def record(
        self,
        name: EventName,
        succeeded: bool,
        username: str,
        message: str,
        log: Any = None,
    ) -> None:
        """Best-effort ``write``; an over-long event name still raises."""
        if len(_name_value(name)) > EVENT_NAME_MAX:
            raise WebAuthError(ErrorKind.WRITE_FAILED, f"event name {name!r} longer than {EVENT_NAME_MAX}")

        try:
            await self.write(name, succeeded, username, message)
        except WebAuthError as exc:
            (log or logger).warning(
                "event_write_failed",
                event_name=_name_value(name),
                kind=exc.kind.value,
                error=exc.detail,
            )

    async def list(self) -> list[EventRead]:
        """All events, newest first."""
        if self.store is None:
            raise WebAuthError(ErrorKind.DB_NIL, "no store for events")

        stmt = select(
            Event.name,
            Event.succeeded,
            Event.username,
            Event.message,
            Event.created,
        ).order_by(Event.created.desc(), Event.id.desc())

        try:
            rows = await self.store.query(stmt)
        except WebAuthError as exc:
            raise WebAuthError(ErrorKind.QUERY_FAILED, exc.detail) from exc

        try:
            return [EventRead.model_validate({**row, "created": as_utc(row["created"])}) for row in rows]
        except ValidationError as exc:
            raise WebAuthError(ErrorKind.SCAN_FAILED, str(exc)) from exc


def _name_value(name: EventName | str) -> str:
    return name.value if isinstance(name, EventName) else name
