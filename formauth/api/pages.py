"""
HTML page rendering with Jinja2.

Templates are rendered to a complete string in a worker thread before a
response exists, so a template failure can still become a clean 500.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, TemplateError, select_autoescape
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from formauth.core.csrf import CSRF_FIELD, csrf_token_for, set_csrf_cookie
from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.http import respond_with_error
from formauth.core.logging import get_logger
from formauth.services.sessions import BoundSession

logger = get_logger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

PAGE_TEMPLATES = (
    "login.html",
    "logout.html",
    "register.html",
    "confirm.html",
    "confirm_request.html",
    "confirm_request_sent.html",
    "confirmed.html",
    "forgot.html",
    "forgot_sent.html",
    "reset.html",
    "user.html",
    "users.html",
    "events.html",
)


class PageRenderer:
    def __init__(
        self,
        title: str,
        template_dir: Path | str | None = None,
        csrf_protect: bool = False,
    ) -> None:
        self.title = title
        self.csrf_protect = csrf_protect

        # A configured directory overrides individual pages; the bundled
        # templates fill in the rest.
        search = [str(template_dir)] if template_dir else []
        search.append(str(DEFAULT_TEMPLATE_DIR))
        self.env = Environment(
            loader=ChoiceLoader([FileSystemLoader(path) for path in search]),
            autoescape=select_autoescape(["html"]),
        )

    def check(self) -> None:
        """Load every page template once; ``template`` error on the first failure."""
        for name in PAGE_TEMPLATES:
            try:
                self.env.get_template(name)
            except TemplateError as exc:
                raise WebAuthError(ErrorKind.TEMPLATE, f"{name}: {exc}") from exc

    def render_string(self, name: str, context: dict[str, Any]) -> str:
        return self.env.get_template(name).render(title=self.title, **context)

    async def render(
        self,
        request: Request,
        name: str,
        context: dict[str, Any] | None = None,
        session: BoundSession | None = None,
        status_code: int = 200,
    ) -> Response:
        """
        Render ``name`` into an HTML response.

        Any cookie deletion the session binding asked for is applied; on a
        template failure the response is a plain 500 instead.
        """
        context = dict(context or {})
        context.setdefault("user", session.user if session else None)
        context.setdefault("message", "")

        csrf_token, new_csrf = "", False
        if self.csrf_protect:
            csrf_token, new_csrf = csrf_token_for(request)
        context["csrf_field"] = CSRF_FIELD
        context["csrf_token"] = csrf_token

        try:
            body = await run_in_threadpool(self.render_string, name, context)
        except TemplateError as exc:
            log = getattr(request.state, "logger", logger)
            log.error("unable_to_render_template", template=name, error=str(exc))
            response: Response = respond_with_error(HTTP_500_INTERNAL_SERVER_ERROR)
        else:
            response = HTMLResponse(body, status_code=status_code)
            if new_csrf:
                set_csrf_cookie(response, csrf_token)

        if session is not None:
            session.apply(response)
        return response
