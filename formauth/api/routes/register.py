"""
Registration page.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse

from formauth.api.deps import form_value, get_auth_app, read_form, request_logger
from formauth.app import AuthApp
from formauth.core.exceptions import WebAuthError
from formauth.core.http import ANY_METHOD, allowed_methods
from formauth.core.security import PASSWORD_MAX_BYTES
from formauth.models.user import USERNAME_MAX
from formauth.schemas.event import EventName

router = APIRouter(tags=["register"])

MSG_MISSING_REQUIRED = "Please provide required values"
MSG_USERNAME_TOO_LONG = f"Username must be at most {USERNAME_MAX} characters."
MSG_PASSWORDS_DIFFERENT = "Passwords do not match."
MSG_PASSWORD_TOO_LONG = "Password is too long."
MSG_USERNAME_EXISTS = "Username already exists."
MSG_EMAIL_EXISTS = "Email already registered."
MSG_REGISTER_FAILED = "Unable to register user."


async def _send_registration_email(auth: AuthApp, username: str, full_name: str, email: str, log: Any) -> None:
    token = await auth.tokens.create_confirm(username)
    await auth.events.record(EventName.SAVE_TOKEN, True, username, "saved confirm token", log)

    subject, body = auth.emails.registration(full_name, username, token)
    await auth.mailer.send(email, subject, body)


@router.api_route("/register", methods=ANY_METHOD)
async def register(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET", "POST")
    if rejected is not None:
        return rejected

    if request.method == "GET":
        return await auth.pages.render(request, "register.html")

    form = await read_form(request, auth)
    username = form_value(form, "username")
    full_name = form_value(form, "fullName")
    email = form_value(form, "email")
    password1 = form_value(form, "password1", trim=False)
    password2 = form_value(form, "password2", trim=False)

    # Passwords are never logged; only whether they were given.
    log = request_logger(request).bind(
        form={
            "username": username,
            "fullName": full_name,
            "email": email,
            "password1_empty": password1 == "",
            "password2_empty": password2 == "",
        }
    )
    values = {"username": username, "fullName": full_name, "email": email}

    async def fail(message: str, event_message: str | None = None) -> Response:
        log.warning("register_rejected", message=message)
        if event_message is not None:
            await auth.events.record(EventName.REGISTER, False, username, event_message, log)
        return await auth.pages.render(request, "register.html", {"message": message, **values})

    if not all((username, full_name, email, password1, password2)):
        return await fail(MSG_MISSING_REQUIRED, "missing values")
    if len(username) > USERNAME_MAX:
        return await fail(MSG_USERNAME_TOO_LONG, "user name too long")
    if password1 != password2:
        return await fail(MSG_PASSWORDS_DIFFERENT, "passwords do not match")
    if len(password1.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return await fail(MSG_PASSWORD_TOO_LONG, "password too long")
    if await auth.users.user_exists(username):
        return await fail(MSG_USERNAME_EXISTS, "user name already exists")
    if await auth.users.email_exists(email):
        return await fail(MSG_EMAIL_EXISTS, f"email already exists: {email}")

    try:
        await auth.users.register(username, full_name, email, password1)
    except WebAuthError as exc:
        log.error("register_failed", kind=exc.kind.value, error=exc.detail)
        return await fail(MSG_REGISTER_FAILED, f"unable to register: {exc.kind.value}")

    log.info("registered_user")
    await auth.events.record(EventName.REGISTER, True, username, "registered user", log)

    try:
        await _send_registration_email(auth, username, full_name, email, log)
    except WebAuthError as exc:
        log.error("unable_to_send_registration_email", kind=exc.kind.value, error=exc.detail)

    return RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)
