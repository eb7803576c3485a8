"""
Login and logout pages.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse

from formauth.api.deps import form_value, get_auth_app, read_form, request_logger
from formauth.app import AuthApp
from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.http import ANY_METHOD, allowed_methods, local_redirect_target
from formauth.schemas.event import EventName
from formauth.schemas.token import TokenKind
from formauth.services.sessions import LOGIN_COOKIE, clear_login_cookie, set_login_cookie

router = APIRouter(tags=["login"])

MSG_MISSING_BOTH = "Missing username and password."
MSG_MISSING_USERNAME = "Missing username."
MSG_MISSING_PASSWORD = "Missing password."
MSG_LOGIN_FAILED = "Login failed."

# Recorded in the event log; the user only ever sees MSG_LOGIN_FAILED.
_FAILURE_REASONS = {
    ErrorKind.USER_NOT_FOUND: "user not found",
    ErrorKind.AUTH_FAILURE: "invalid password",
}


def _missing_message(username: str, password: str) -> str:
    if not username and not password:
        return MSG_MISSING_BOTH
    if not username:
        return MSG_MISSING_USERNAME
    if not password:
        return MSG_MISSING_PASSWORD
    return ""


@router.api_route("/login", methods=ANY_METHOD)
async def login(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET", "POST")
    if rejected is not None:
        return rejected

    log = request_logger(request)
    redirect_to = request.query_params.get("r", "")

    if request.method == "GET":
        return await auth.pages.render(request, "login.html", {"r": redirect_to})

    form = await read_form(request, auth)
    username = form_value(form, "username")
    password = form_value(form, "password", trim=False)
    remember = form_value(form, "remember") == "on"
    log = log.bind(username=username, remember=remember)

    message = _missing_message(username, password)
    if message:
        log.warning("missing_login_values", message=message)
        return await auth.pages.render(
            request,
            "login.html",
            {"message": message, "username": username, "r": redirect_to},
        )

    try:
        await auth.users.authenticate(username, password)
    except WebAuthError as exc:
        reason = _FAILURE_REASONS.get(exc.kind)
        if reason is None:
            raise
        log.warning("login_failed", reason=reason)
        await auth.events.record(EventName.LOGIN, False, username, reason, log)
        return await auth.pages.render(
            request,
            "login.html",
            {"message": MSG_LOGIN_FAILED, "username": username, "r": redirect_to},
        )

    token = await auth.tokens.create_login(username)
    await auth.events.record(EventName.LOGIN, True, username, "user logged in", log)
    log.info("user_logged_in")

    response = RedirectResponse(
        local_redirect_target(redirect_to),
        status_code=status.HTTP_303_SEE_OTHER,
    )
    set_login_cookie(response, token, remember)
    return response


@router.api_route("/logout", methods=ANY_METHOD)
async def logout(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET")
    if rejected is not None:
        return rejected

    log = request_logger(request)

    username = ""
    try:
        session = await auth.sessions.user_from_request(request)
        username = session.user.username
    except WebAuthError as exc:
        log.error("unable_to_bind_session", kind=exc.kind.value, error=exc.detail)

    raw = request.cookies.get(LOGIN_COOKIE, "")
    if raw:
        try:
            await auth.tokens.remove(TokenKind.LOGIN, raw)
        except WebAuthError as exc:
            log.warning("unable_to_remove_login_token", kind=exc.kind.value)

    await auth.events.record(EventName.LOGOUT, True, username, "user logged out", log)
    log.info("user_logged_out", username=username)

    response = await auth.pages.render(request, "logout.html")
    clear_login_cookie(response)
    return response
