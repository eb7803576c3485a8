"""
Outgoing email: SMTP delivery with aiosmtplib and plain-text bodies
rendered from Jinja2 templates.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib
from aiosmtplib.errors import SMTPConnectError, SMTPConnectTimeoutError, SMTPException
from jinja2 import Environment, StrictUndefined, TemplateError

from formauth.core.config import SMTPConfig
from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.logging import get_logger
from formauth.schemas.token import IssuedToken

logger = get_logger(__name__)


class MailSender(Protocol):
    async def send(self, to: str, subject: str, body: str) -> None: ...


# ── SMTP transport ──────────────────────────────────────────────────
class Mailer:
    """Sends mail through the configured SMTP server, from ``SMTP.User``."""

    max_retries = 3

    def __init__(self, smtp: SMTPConfig) -> None:
        self.smtp = smtp

    async def send(self, to: str, subject: str, body: str) -> None:
        """
        Deliver one message.

        Only connection failures are retried: nothing was handed to the
        server, so a retry cannot produce a duplicate.

        Raises:
            WebAuthError: ``transport`` when delivery fails.
        """
        message = EmailMessage()
        message["From"] = self.smtp.user
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        for attempt in range(self.max_retries):
            try:
                await aiosmtplib.send(
                    message,
                    hostname=self.smtp.host,
                    port=self.smtp.port,
                    username=self.smtp.user,
                    password=self.smtp.password.get_secret_value(),
                    start_tls=self.smtp.start_tls,
                    timeout=30,
                )
                logger.info("email_sent", to=to, subject=subject, attempt=attempt + 1)
                return

            except (SMTPConnectError, SMTPConnectTimeoutError) as exc:
                logger.warning(
                    "email_connection_failed",
                    to=to,
                    subject=subject,
                    attempt=attempt + 1,
                    error=str(exc),
                )
                if attempt == self.max_retries - 1:
                    raise WebAuthError(ErrorKind.TRANSPORT, str(exc)) from exc
                # Exponential backoff: 1s, 2s
                await asyncio.sleep(2**attempt)

            except (SMTPException, OSError) as exc:
                logger.error(
                    "email_send_failed",
                    to=to,
                    subject=subject,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                raise WebAuthError(ErrorKind.TRANSPORT, str(exc)) from exc


# ── Message bodies ──────────────────────────────────────────────────
def human_time(value: datetime) -> str:
    """Format like ``January 2, 2006 3:04 PM UTC``."""
    hour = value.hour % 12 or 12
    return f"{value:%B} {value.day}, {value.year} {hour}:{value:%M %p} {value.tzname() or 'UTC'}"


_TEMPLATES = {
    "registration": """\
{{ full_name }},

Thank you for registering for {{ title }}. Your username is {{ username }}.

Please visit {{ base_url }}/confirm?ctoken={{ token.value }} by {{ token.expires | human_time }} to confirm your account.

You can ignore this message if you did not register for an account.
""",
    "confirm_request": """\
To confirm your email for {{ title }}, please visit {{ base_url }}/confirm?ctoken={{ token.value }} by {{ token.expires | human_time }}.

You can ignore this message if you did not request to confirm an email for {{ title }}.
""",
    "not_registered": """\
The email address {{ email }} is not registered for {{ title }}.

If you would like to register for {{ title }}, please visit {{ base_url }}/register.
""",
    "forgot_password": """\
To reset your password for {{ title }}, please visit {{ base_url }}/reset?rtoken={{ token.value }} by {{ token.expires | human_time }}.

You can ignore this message if you did not request a reset password for {{ title }}.
""",
    "forgot_user": """\
Your user name for {{ title }} is {{ username }}.
""",
}


class EmailComposer:
    """Builds (subject, body) pairs for every message the flows send."""

    def __init__(self, title: str, base_url: str) -> None:
        self.title = title
        self.base_url = base_url
        self._env = Environment(autoescape=False, undefined=StrictUndefined, keep_trailing_newline=True)
        self._env.filters["human_time"] = human_time

    def _render(self, name: str, **context) -> str:
        try:
            template = self._env.from_string(_TEMPLATES[name])
            return template.render(title=self.title, base_url=self.base_url, **context)
        except TemplateError as exc:
            raise WebAuthError(ErrorKind.TEMPLATE, f"email template {name!r}: {exc}") from exc

    def registration(self, full_name: str, username: str, token: IssuedToken) -> tuple[str, str]:
        body = self._render("registration", full_name=full_name, username=username, token=token)
        return f"{self.title} registration", body

    def confirm_request(self, email: str, username: str, token: IssuedToken | None) -> tuple[str, str]:
        subject = f"{self.title} confirm email"
        if not username or token is None:
            return subject, self._render("not_registered", email=email)
        return subject, self._render("confirm_request", token=token)

    def forgot(self, action: str, email: str, username: str, token: IssuedToken | None) -> tuple[str, str]:
        subject = f"{self.title} forgot {action} request"
        if not username:
            return subject, self._render("not_registered", email=email)
        if action == "password":
            return subject, self._render("forgot_password", token=token)
        return subject, self._render("forgot_user", username=username)
