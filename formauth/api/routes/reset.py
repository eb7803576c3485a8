"""
Password reset with an emailed reset token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse

from formauth.api.deps import form_value, get_auth_app, read_form, request_logger
from formauth.app import AuthApp
from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.http import ANY_METHOD, allowed_methods
from formauth.core.security import PASSWORD_MAX_BYTES
from formauth.schemas.event import EventName
from formauth.schemas.token import TokenKind

router = APIRouter(tags=["reset"])

MSG_MISSING_REQUIRED = "Please provide required values"
MSG_PASSWORDS_DIFFERENT = "Passwords do not match."
MSG_PASSWORD_TOO_LONG = "Password is too long."
MSG_INVALID_TOKEN = "Please provide a valid reset token."
MSG_EXPIRED_TOKEN = "Password reset request expired. Please request again."

_TOKEN_MESSAGES = {
    ErrorKind.TOKEN_MISSING: MSG_INVALID_TOKEN,
    ErrorKind.TOKEN_INVALID: MSG_INVALID_TOKEN,
    ErrorKind.TOKEN_EXPIRED: MSG_EXPIRED_TOKEN,
}


@router.api_route("/reset", methods=ANY_METHOD)
async def reset(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET", "POST")
    if rejected is not None:
        return rejected

    if request.method == "GET":
        rtoken = request.query_params.get("rtoken", "").strip()
        return await auth.pages.render(request, "reset.html", {"rtoken": rtoken})

    form = await read_form(request, auth)
    rtoken = form_value(form, "rtoken")
    password1 = form_value(form, "password1", trim=False)
    password2 = form_value(form, "password2", trim=False)
    log = request_logger(request)

    async def fail(message: str) -> Response:
        log.warning("reset_rejected", message=message)
        return await auth.pages.render(request, "reset.html", {"message": message, "rtoken": rtoken})

    if not rtoken or not password1 or not password2:
        return await fail(MSG_MISSING_REQUIRED)
    if password1 != password2:
        return await fail(MSG_PASSWORDS_DIFFERENT)
    if len(password1.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return await fail(MSG_PASSWORD_TOO_LONG)

    try:
        username = await auth.tokens.username_for(TokenKind.RESET, rtoken)
        await auth.users.reset_password(username, password1, rtoken)
    except WebAuthError as exc:
        message = _TOKEN_MESSAGES.get(exc.kind)
        if message is None:
            raise
        return await fail(message)

    await auth.events.record(EventName.RESET_PASS, True, username, "password reset", log)
    log.info("password_reset", username=username)

    return RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)
