"""
User service — registration, authentication, lookups, email confirmation
and password reset.
"""

from __future__ import annotations

from sqlalchemy import insert, select, update
from starlette.concurrency import run_in_threadpool

from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.security import PasswordHasher, digest_token
from formauth.db.base import as_utc, utcnow
from formauth.db.store import Store
from formauth.models.event import Event
from formauth.models.token import Token
from formauth.models.user import USERNAME_MAX, User
from formauth.schemas.event import EventName
from formauth.schemas.token import TokenKind
from formauth.schemas.user import UserRead
from formauth.services.tokens import TokenService

_USER_COLUMNS = (
    User.username.label("username"),
    User.full_name.label("full_name"),
    User.email.label("email"),
    User.is_admin.label("is_admin"),
    User.confirmed.label("confirmed"),
    User.created.label("created"),
)


def _to_user(row) -> UserRead:
    return UserRead(
        username=row["username"],
        full_name=row["full_name"] or "",
        email=row["email"],
        is_admin=bool(row["is_admin"]),
        confirmed=bool(row["confirmed"]),
        created=as_utc(row["created"]),
    )


class UserService:
    def __init__(self, store: Store, hasher: PasswordHasher, tokens: TokenService) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens

    # ── Registration & credentials ──────────────────────────────────
    async def register(self, username: str, full_name: str, email: str, password: str) -> None:
        """
        Create an unconfirmed, non-admin user.

        Raises:
            WebAuthError: ``validation`` for missing or over-long values,
                ``uniqueness`` if the username or email is taken.
        """
        if not username or not email or not password:
            raise WebAuthError(ErrorKind.VALIDATION, "username, email and password are required")
        if len(username) > USERNAME_MAX:
            raise WebAuthError(ErrorKind.VALIDATION, f"username longer than {USERNAME_MAX}")

        hashed = await run_in_threadpool(self.hasher.hash, password)
        await self.store.exec(
            insert(User).values(
                username=username,
                hashed_password=hashed,
                full_name=full_name,
                email=email,
                created=utcnow(),
            )
        )

    async def authenticate(self, username: str, password: str) -> None:
        """
        Check ``password`` against the stored verifier.

        Unknown users still cost one bcrypt verification.

        Raises:
            WebAuthError: ``user_not_found`` or ``auth_failure``.
        """
        row = await self.store.query_row(
            select(User.hashed_password.label("hashed_password"))
            .where(User.username == username)
            .limit(1)
        )
        if row is None:
            await run_in_threadpool(self.hasher.dummy_verify)
            raise WebAuthError(ErrorKind.USER_NOT_FOUND, f"user {username!r} not found")

        ok = await run_in_threadpool(self.hasher.verify, row["hashed_password"], password)
        if not ok:
            raise WebAuthError(ErrorKind.AUTH_FAILURE, "invalid password")

    async def reset_password(self, username: str, password: str, reset_token: str) -> None:
        """
        Consume ``reset_token`` and store a verifier for ``password``.

        The password is hashed first, so a password that cannot be hashed
        leaves the token usable.
        """
        hashed = await run_in_threadpool(self.hasher.hash, password)
        await self.tokens.remove(TokenKind.RESET, reset_token)

        affected = await self.store.exec(
            update(User).where(User.username == username).values(hashed_password=hashed)
        )
        if affected != 1:
            raise WebAuthError(ErrorKind.USER_NOT_FOUND, f"user {username!r} not found")

    async def confirm(self, username: str, confirm_token: str) -> None:
        """
        Consume ``confirm_token`` and mark the user confirmed.

        The token is deleted first, so of two concurrent redemptions only one
        succeeds; the other sees ``token_invalid``. A user who is already
        confirmed stays confirmed.
        """
        await self.tokens.remove(TokenKind.CONFIRM, confirm_token)
        await self.store.exec(
            update(User)
            .where(User.username == username, User.confirmed.is_(False))
            .values(confirmed=True)
        )

    # ── Lookups ─────────────────────────────────────────────────────
    async def user_for_login_token(self, raw: str) -> UserRead:
        """
        The user a login token belongs to, with their previous login attached.

        Raises:
            WebAuthError: ``token_missing``, ``token_invalid`` or
                ``token_expired`` (the expired token is removed).
        """
        if not raw:
            raise WebAuthError(ErrorKind.TOKEN_MISSING)

        hashed = digest_token(raw)
        row = await self.store.query_row(
            select(*_USER_COLUMNS, Token.expires.label("expires"))
            .join(Token, Token.username == User.username)
            .where(Token.kind == TokenKind.LOGIN.value, Token.hashed_value == hashed)
            .limit(1)
        )
        if row is None:
            raise WebAuthError(ErrorKind.TOKEN_INVALID, "login token not found")

        if as_utc(row["expires"]) < utcnow():
            await self.tokens.discard(TokenKind.LOGIN, raw)
            raise WebAuthError(ErrorKind.TOKEN_EXPIRED, "login token expired")

        user = _to_user(row)

        # The newest login event is the one that issued this token.
        last = await self.store.query_row(
            select(Event.created, Event.succeeded)
            .where(Event.username == user.username, Event.name == EventName.LOGIN.value)
            .order_by(Event.created.desc(), Event.id.desc())
            .limit(1)
            .offset(1)
        )
        if last is not None:
            user.last_login_time = as_utc(last["created"])
            user.last_login_succeeded = bool(last["succeeded"])

        return user

    async def user_for_name(self, username: str) -> UserRead:
        row = await self.store.query_row(
            select(*_USER_COLUMNS).where(User.username == username).limit(1)
        )
        if row is None:
            raise WebAuthError(ErrorKind.USER_NOT_FOUND, f"user {username!r} not found")
        return _to_user(row)

    async def username_for_email(self, email: str) -> str:
        """Username registered with ``email``, or ``""`` if there is none."""
        row = await self.store.query_row(
            select(User.username).where(User.email == email).limit(1)
        )
        return row["username"] if row is not None else ""

    async def user_exists(self, username: str) -> bool:
        return await self.store.row_exists(select(User.username).where(User.username == username))

    async def email_exists(self, email: str) -> bool:
        return await self.store.row_exists(select(User.username).where(User.email == email))

    async def list_users(self) -> list[UserRead]:
        rows = await self.store.query(select(*_USER_COLUMNS).order_by(User.username))
        return [_to_user(row) for row in rows]
