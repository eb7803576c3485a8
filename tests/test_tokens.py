"""
Token service: issuance bound to existing users, digest-only storage,
expiry on observation and single removal.
"""

from datetime import timedelta

import pytest

from conftest import register_user, token_rows
from formauth.app import AuthApp
from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.security import digest_token
from formauth.db.base import utcnow
from formauth.db.store import Store
from formauth.schemas.token import TokenKind


@pytest.fixture
async def alice(auth_app: AuthApp) -> str:
    await register_user(auth_app, "alice")
    return "alice"


async def test_create_stores_only_digest(auth_app: AuthApp, store: Store, alice: str):
    token = await auth_app.tokens.create(TokenKind.LOGIN, alice, 32, timedelta(hours=1))

    rows = await token_rows(store)
    assert len(rows) == 1
    assert rows[0]["hashed_value"] == digest_token(token.value)
    assert rows[0]["kind"] == "login"
    assert rows[0]["username"] == alice
    assert token.value not in rows[0].values()
    assert token.kind is TokenKind.LOGIN
    assert token.expires > utcnow() + timedelta(minutes=59)


async def test_create_for_unknown_user(auth_app: AuthApp, store: Store):
    with pytest.raises(WebAuthError) as excinfo:
        await auth_app.tokens.create(TokenKind.LOGIN, "nobody", 32, timedelta(hours=1))

    assert excinfo.value.kind is ErrorKind.USER_NOT_FOUND
    assert await token_rows(store) == []


async def test_create_negative_size(auth_app: AuthApp, alice: str):
    with pytest.raises(WebAuthError) as excinfo:
        await auth_app.tokens.create(TokenKind.LOGIN, alice, -1, timedelta(hours=1))
    assert excinfo.value.kind is ErrorKind.INVALID_LENGTH


async def test_username_for(auth_app: AuthApp, alice: str):
    token = await auth_app.tokens.create(TokenKind.RESET, alice, 16, timedelta(hours=1))

    assert await auth_app.tokens.username_for(TokenKind.RESET, token.value) == alice


async def test_username_for_checks_kind(auth_app: AuthApp, alice: str):
    token = await auth_app.tokens.create(TokenKind.RESET, alice, 16, timedelta(hours=1))

    with pytest.raises(WebAuthError) as excinfo:
        await auth_app.tokens.username_for(TokenKind.CONFIRM, token.value)
    assert excinfo.value.kind is ErrorKind.TOKEN_INVALID


async def test_username_for_empty_token(auth_app: AuthApp):
    with pytest.raises(WebAuthError) as excinfo:
        await auth_app.tokens.username_for(TokenKind.CONFIRM, "")
    assert excinfo.value.kind is ErrorKind.TOKEN_MISSING


async def test_username_for_unknown_token(auth_app: AuthApp):
    with pytest.raises(WebAuthError) as excinfo:
        await auth_app.tokens.username_for(TokenKind.CONFIRM, "not-a-token")
    assert excinfo.value.kind is ErrorKind.TOKEN_INVALID


async def test_expired_token_is_removed_when_observed(auth_app: AuthApp, store: Store, alice: str):
    token = await auth_app.tokens.create(TokenKind.CONFIRM, alice, 12, timedelta(seconds=-1))

    with pytest.raises(WebAuthError) as excinfo:
        await auth_app.tokens.username_for(TokenKind.CONFIRM, token.value)
    assert excinfo.value.kind is ErrorKind.TOKEN_EXPIRED
    assert await token_rows(store) == []

    with pytest.raises(WebAuthError) as excinfo:
        await auth_app.tokens.username_for(TokenKind.CONFIRM, token.value)
    assert excinfo.value.kind is ErrorKind.TOKEN_INVALID


async def test_remove_only_once(auth_app: AuthApp, store: Store, alice: str):
    token = await auth_app.tokens.create(TokenKind.LOGIN, alice, 32, timedelta(hours=1))

    await auth_app.tokens.remove(TokenKind.LOGIN, token.value)
    assert await token_rows(store) == []

    with pytest.raises(WebAuthError) as excinfo:
        await auth_app.tokens.remove(TokenKind.LOGIN, token.value)
    assert excinfo.value.kind is ErrorKind.TOKEN_INVALID


async def test_multiple_tokens_coexist(auth_app: AuthApp, store: Store, alice: str):
    first = await auth_app.tokens.create_login(alice)
    second = await auth_app.tokens.create_login(alice)

    assert first.value != second.value
    assert len(await token_rows(store, "login")) == 2

    await auth_app.tokens.remove(TokenKind.LOGIN, first.value)
    assert await auth_app.tokens.username_for(TokenKind.LOGIN, second.value) == alice


async def test_per_kind_sizes_and_lifetimes(auth_app: AuthApp, alice: str):
    now = utcnow()

    login = await auth_app.tokens.create_login(alice)
    confirm = await auth_app.tokens.create_confirm(alice)
    reset = await auth_app.tokens.create_reset(alice)

    # URL-safe base64 of 32, 12 and 16 random bytes
    assert len(login.value) == 43
    assert len(confirm.value) == 16
    assert len(reset.value) == 22

    assert timedelta(hours=23, minutes=59) < login.expires - now <= timedelta(hours=24, seconds=5)
    assert timedelta(minutes=4) < confirm.expires - now <= timedelta(minutes=5, seconds=5)
    assert timedelta(minutes=59) < reset.expires - now <= timedelta(hours=1, seconds=5)
