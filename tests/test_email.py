"""
Email composition and SMTP delivery.
"""

from datetime import datetime, timezone

import aiosmtplib
import pytest
from aiosmtplib.errors import SMTPConnectError, SMTPException

from formauth.core.config import Config
from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.schemas.token import IssuedToken, TokenKind
from formauth.services import email as email_module
from formauth.services.email import EmailComposer, Mailer, human_time

EXPIRES = datetime(2024, 1, 2, 15, 4, tzinfo=timezone.utc)


@pytest.fixture
def composer() -> EmailComposer:
    return EmailComposer("Test App", "https://auth.example.com")


def _token(kind: TokenKind, value: str = "tok123") -> IssuedToken:
    return IssuedToken(value=value, expires=EXPIRES, kind=kind)


# ── Composition ─────────────────────────────────────────────────────
def test_human_time():
    assert human_time(EXPIRES) == "January 2, 2024 3:04 PM UTC"
    assert human_time(datetime(2024, 6, 30, 0, 5, tzinfo=timezone.utc)) == "June 30, 2024 12:05 AM UTC"


def test_registration_message(composer: EmailComposer):
    subject, body = composer.registration("Alice", "alice", _token(TokenKind.CONFIRM))

    assert subject == "Test App registration"
    assert body.startswith("Alice,")
    assert "Your username is alice." in body
    assert "https://auth.example.com/confirm?ctoken=tok123" in body
    assert "January 2, 2024 3:04 PM UTC" in body


def test_confirm_request_message(composer: EmailComposer):
    subject, body = composer.confirm_request("alice@example.com", "alice", _token(TokenKind.CONFIRM))

    assert subject == "Test App confirm email"
    assert "https://auth.example.com/confirm?ctoken=tok123" in body


def test_confirm_request_unknown_email(composer: EmailComposer):
    subject, body = composer.confirm_request("ghost@example.com", "", None)

    assert subject == "Test App confirm email"
    assert "ghost@example.com is not registered" in body
    assert "https://auth.example.com/register" in body


def test_forgot_password_message(composer: EmailComposer):
    subject, body = composer.forgot("password", "alice@example.com", "alice", _token(TokenKind.RESET))

    assert subject == "Test App forgot password request"
    assert "https://auth.example.com/reset?rtoken=tok123" in body


def test_forgot_user_message(composer: EmailComposer):
    subject, body = composer.forgot("user", "alice@example.com", "alice", None)

    assert subject == "Test App forgot user request"
    assert "Your user name for Test App is alice." in body


def test_forgot_unknown_email(composer: EmailComposer):
    _, body = composer.forgot("password", "ghost@example.com", "", None)
    assert "ghost@example.com is not registered" in body


def test_bodies_are_not_html_escaped(composer: EmailComposer):
    _, body = composer.registration("O'Brien & Co", "obrien", _token(TokenKind.CONFIRM))
    assert body.startswith("O'Brien & Co,")


# ── Delivery ────────────────────────────────────────────────────────
@pytest.fixture
def smtp_mailer(config: Config) -> Mailer:
    return Mailer(config.smtp)


async def test_send_builds_message(smtp_mailer: Mailer, monkeypatch: pytest.MonkeyPatch):
    calls = []

    async def fake_send(message, **kwargs):
        calls.append((message, kwargs))

    monkeypatch.setattr(aiosmtplib, "send", fake_send)

    await smtp_mailer.send("alice@example.com", "Hello", "Body text")

    assert len(calls) == 1
    message, kwargs = calls[0]
    assert message["From"] == "noreply@example.com"
    assert message["To"] == "alice@example.com"
    assert message["Subject"] == "Hello"
    assert "Body text" in message.get_content()
    assert kwargs["hostname"] == "smtp.example.com"
    assert kwargs["port"] == 587
    assert kwargs["username"] == "noreply@example.com"
    assert kwargs["password"] == "smtp-secret"


async def test_send_failure_is_transport_error(smtp_mailer: Mailer, monkeypatch: pytest.MonkeyPatch):
    calls = []

    async def fake_send(message, **kwargs):
        calls.append(message)
        raise SMTPException("550 mailbox unavailable")

    monkeypatch.setattr(aiosmtplib, "send", fake_send)

    with pytest.raises(WebAuthError) as excinfo:
        await smtp_mailer.send("alice@example.com", "Hello", "Body")

    assert excinfo.value.kind is ErrorKind.TRANSPORT
    assert len(calls) == 1


async def test_connect_failures_are_retried(smtp_mailer: Mailer, monkeypatch: pytest.MonkeyPatch):
    attempts = []

    async def fake_send(message, **kwargs):
        attempts.append(message)
        if len(attempts) < 3:
            raise SMTPConnectError("connection refused")

    async def no_sleep(_seconds):
        return None

    monkeypatch.setattr(aiosmtplib, "send", fake_send)
    monkeypatch.setattr(email_module.asyncio, "sleep", no_sleep)

    await smtp_mailer.send("alice@example.com", "Hello", "Body")

    assert len(attempts) == 3


async def test_connect_failures_give_up(smtp_mailer: Mailer, monkeypatch: pytest.MonkeyPatch):
    async def fake_send(message, **kwargs):
        raise SMTPConnectError("connection refused")

    async def no_sleep(_seconds):
        return None

    monkeypatch.setattr(aiosmtplib, "send", fake_send)
    monkeypatch.setattr(email_module.asyncio, "sleep", no_sleep)

    with pytest.raises(WebAuthError) as excinfo:
        await smtp_mailer.send("alice@example.com", "Hello", "Body")
    assert excinfo.value.kind is ErrorKind.TRANSPORT
