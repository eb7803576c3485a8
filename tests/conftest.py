"""
Shared test fixtures for the formauth test suite.

Each test gets its own in-memory SQLite database (aiosqlite + StaticPool), a
recording mailer in place of SMTP, and an httpx AsyncClient wired to the app.
"""

import copy
import os
import sys
from collections.abc import AsyncGenerator
from typing import Any

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from formauth.app import AuthApp, AuthAppBuilder
from formauth.core.config import Config
from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.middleware import RequestIDGenerator
from formauth.db.store import Store
from formauth.main import create_app
from formauth.models.event import Event
from formauth.models.token import Token

CONFIG_DATA: dict[str, Any] = {
    "App": {"Name": "Test App"},
    "Server": {"Host": "127.0.0.1", "Port": 8080, "LogRequests": True},
    "Log": {"Type": "text", "Level": "DEBUG"},
    "Auth": {
        "BaseURL": "https://auth.example.com",
        "LoginExpires": "24h",
        "ResetExpires": "1h",
        "ResetTokenSize": 16,
        "PasswordCost": 4,
    },
    "SQL": {"DriverName": "sqlite+aiosqlite", "DataSourceName": "/:memory:"},
    "SMTP": {
        "Host": "smtp.example.com",
        "Port": 587,
        "User": "noreply@example.com",
        "Password": "smtp-secret",
    },
}


def config_data(**sections: dict[str, Any]) -> dict[str, Any]:
    """A copy of CONFIG_DATA with the given sections' keys overridden."""
    data = copy.deepcopy(CONFIG_DATA)
    for section, values in sections.items():
        data.setdefault(section, {}).update(values)
    return data


class FakeMailer:
    """Records messages instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []
        self.fail = False

    async def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise WebAuthError(ErrorKind.TRANSPORT, "mail server unavailable")
        self.sent.append({"to": to, "subject": subject, "body": body})

    @property
    def last(self) -> dict[str, str]:
        return self.sent[-1]


# ── Core fixtures ───────────────────────────────────────────────────
@pytest.fixture
def config() -> Config:
    return Config.from_mapping(config_data())


@pytest.fixture
async def store() -> AsyncGenerator[Store, None]:
    """A fresh in-memory database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    test_store = Store(engine)
    await test_store.create_schema()
    yield test_store
    await test_store.dispose()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def auth_app(config: Config, store: Store, mailer: FakeMailer) -> AuthApp:
    return (
        AuthAppBuilder()
        .with_config(config)
        .with_store(store)
        .with_mailer(mailer)
        .with_request_ids(RequestIDGenerator(prefix="test"))
        .build()
    )


@pytest.fixture
async def async_client(auth_app: AuthApp) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app (https, so Secure cookies round-trip)."""
    transport = ASGITransport(app=create_app(auth_app))
    async with AsyncClient(transport=transport, base_url="https://test") as client:
        yield client


# ── Helpers ─────────────────────────────────────────────────────────
async def register_user(
    auth_app: AuthApp,
    username: str = "alice",
    password: str = "pw",
    email: str | None = None,
    full_name: str = "Alice",
) -> None:
    await auth_app.users.register(username, full_name, email or f"{username}@example.com", password)


async def token_rows(store: Store, kind: str | None = None) -> list[dict[str, Any]]:
    stmt = select(Token.kind, Token.hashed_value.label("hashed_value"), Token.username, Token.expires)
    if kind is not None:
        stmt = stmt.where(Token.kind == kind)
    return [dict(row) for row in await store.query(stmt)]


async def event_rows(store: Store, name: str | None = None) -> list[dict[str, Any]]:
    stmt = select(Event.name, Event.succeeded, Event.username, Event.message).order_by(Event.id)
    if name is not None:
        stmt = stmt.where(Event.name == name)
    return [dict(row) for row in await store.query(stmt)]
