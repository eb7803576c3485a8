"""
Token service — issue, resolve and revoke login, reset and confirm tokens.

Only the SHA-256 digest of a token is written to the store. The raw value is
returned once by ``create`` and afterwards exists only in the client's
cookie or the emailed link.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import DateTime, String, delete, insert, literal, select

from formauth.core.config import AuthConfig
from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.security import digest_token, random_urlsafe
from formauth.db.base import as_utc, utcnow
from formauth.db.store import Store
from formauth.models.token import Token
from formauth.models.user import User
from formauth.schemas.token import IssuedToken, TokenKind

LOGIN_TOKEN_SIZE = 32
CONFIRM_TOKEN_SIZE = 12
CONFIRM_TOKEN_EXPIRES = timedelta(minutes=5)


class TokenService:
    def __init__(self, store: Store, auth: AuthConfig) -> None:
        self.store = store
        self.auth = auth

    async def create(self, kind: TokenKind, username: str, size: int, ttl: timedelta) -> IssuedToken:
        """
        Issue a token of ``kind`` for ``username``.

        The insert selects from ``users`` so a token can only be bound to a
        user that exists at the moment of insertion.

        Raises:
            WebAuthError: ``user_not_found`` if no row was inserted,
                ``invalid_length``/``rng_failure`` from the generator,
                ``store`` on database errors.
        """
        raw = random_urlsafe(size)
        now = utcnow()
        expires = now + ttl

        source = (
            select(
                literal(digest_token(raw), String),
                literal(expires, DateTime(timezone=True)),
                literal(kind.value, String),
                User.username,
                literal(now, DateTime(timezone=True)),
            )
            .where(User.username == username)
        )
        stmt = insert(Token).from_select(
            ["hashed_value", "expires", "kind", "username", "created"],
            source,
        )

        affected = await self.store.exec(stmt)
        if affected != 1:
            raise WebAuthError(ErrorKind.USER_NOT_FOUND, f"no user {username!r} for {kind.value} token")

        return IssuedToken(value=raw, expires=expires, kind=kind)

    async def username_for(self, kind: TokenKind, raw: str) -> str:
        """
        Resolve a raw token to its username.

        An expired token is deleted when it is observed.

        Raises:
            WebAuthError: ``token_missing`` for an empty value,
                ``token_invalid`` if unknown, ``token_expired`` if expired.
        """
        if not raw:
            raise WebAuthError(ErrorKind.TOKEN_MISSING)

        hashed = digest_token(raw)
        row = await self.store.query_row(
            select(Token.username, Token.expires)
            .where(Token.kind == kind.value, Token.hashed_value == hashed)
            .limit(1)
        )
        if row is None:
            raise WebAuthError(ErrorKind.TOKEN_INVALID, f"{kind.value} token not found")

        if as_utc(row["expires"]) < utcnow():
            await self._delete(kind, hashed)
            raise WebAuthError(ErrorKind.TOKEN_EXPIRED, f"{kind.value} token expired")

        return row["username"]

    async def remove(self, kind: TokenKind, raw: str) -> None:
        """Delete the presented token; ``token_invalid`` unless exactly one row went."""
        affected = await self._delete(kind, digest_token(raw))
        if affected != 1:
            raise WebAuthError(ErrorKind.TOKEN_INVALID, f"{kind.value} token not found")

    async def discard(self, kind: TokenKind, raw: str) -> int:
        """Delete the presented token if it is still there; returns rows removed."""
        return await self._delete(kind, digest_token(raw))

    async def _delete(self, kind: TokenKind, hashed: str) -> int:
        return await self.store.exec(
            delete(Token).where(Token.kind == kind.value, Token.hashed_value == hashed)
        )

    # ── Per-kind issuance ───────────────────────────────────────────
    async def create_login(self, username: str) -> IssuedToken:
        return await self.create(TokenKind.LOGIN, username, LOGIN_TOKEN_SIZE, self.auth.login_expires)

    async def create_confirm(self, username: str) -> IssuedToken:
        return await self.create(TokenKind.CONFIRM, username, CONFIRM_TOKEN_SIZE, CONFIRM_TOKEN_EXPIRES)

    async def create_reset(self, username: str) -> IssuedToken:
        return await self.create(
            TokenKind.RESET,
            username,
            self.auth.reset_token_size,
            self.auth.reset_expires,
        )
