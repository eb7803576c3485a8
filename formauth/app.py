"""
The composed application object and the builder that assembles it.
"""

from __future__ import annotations

from dataclasses import dataclass

from formauth.api.pages import PageRenderer
from formauth.core.config import Config
from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.middleware import RequestIDGenerator
from formauth.core.security import PasswordHasher
from formauth.db.store import Store
from formauth.services.email import EmailComposer, Mailer, MailSender
from formauth.services.events import EventRecorder
from formauth.services.sessions import SessionBinder
from formauth.services.tokens import TokenService
from formauth.services.users import UserService


@dataclass
class AuthApp:
    name: str
    config: Config
    store: Store
    pages: PageRenderer
    mailer: MailSender
    emails: EmailComposer
    hasher: PasswordHasher
    tokens: TokenService
    users: UserService
    events: EventRecorder
    sessions: SessionBinder
    request_ids: RequestIDGenerator


class AuthAppBuilder:
    """
    Collects the pieces of an ``AuthApp``; ``build()`` validates them once.

    Only the configuration and the store are required. Everything else
    defaults from the configuration.
    """

    def __init__(self) -> None:
        self._config: Config | None = None
        self._store: Store | None = None
        self._pages: PageRenderer | None = None
        self._name: str | None = None
        self._mailer: MailSender | None = None
        self._request_ids: RequestIDGenerator | None = None

    def with_config(self, config: Config) -> AuthAppBuilder:
        self._config = config
        return self

    def with_store(self, store: Store) -> AuthAppBuilder:
        self._store = store
        return self

    def with_pages(self, pages: PageRenderer) -> AuthAppBuilder:
        self._pages = pages
        return self

    def with_name(self, name: str) -> AuthAppBuilder:
        self._name = name
        return self

    def with_mailer(self, mailer: MailSender) -> AuthAppBuilder:
        self._mailer = mailer
        return self

    def with_request_ids(self, generator: RequestIDGenerator) -> AuthAppBuilder:
        self._request_ids = generator
        return self

    def build(self) -> AuthApp:
        if self._config is None:
            raise WebAuthError(ErrorKind.CONFIG_INVALID, "configuration is required")
        if self._store is None:
            raise WebAuthError(ErrorKind.DB_NIL, "store is required")

        config = self._config
        name = self._name or config.app.name
        if not name:
            raise WebAuthError(ErrorKind.CONFIG_INVALID, "application name is required")

        pages = self._pages or PageRenderer(
            title=name,
            template_dir=config.app.template_dir,
            csrf_protect=config.auth.csrf_protect,
        )

        hasher = PasswordHasher(config.auth.password_cost)
        tokens = TokenService(self._store, config.auth)
        users = UserService(self._store, hasher, tokens)

        return AuthApp(
            name=name,
            config=config,
            store=self._store,
            pages=pages,
            mailer=self._mailer or Mailer(config.smtp),
            emails=EmailComposer(name, config.auth.base_url),
            hasher=hasher,
            tokens=tokens,
            users=users,
            events=EventRecorder(self._store),
            sessions=SessionBinder(users),
            request_ids=self._request_ids or RequestIDGenerator(),
        )
