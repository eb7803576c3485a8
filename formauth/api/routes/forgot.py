"""
Forgotten username or password: emails the username, or a reset link.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse

from formauth.api.deps import form_value, get_auth_app, read_form, request_logger
from formauth.app import AuthApp
from formauth.core.http import ANY_METHOD, allowed_methods
from formauth.schemas.event import EventName

router = APIRouter(tags=["forgot"])

MSG_MISSING_EMAIL = "Please provide your email."
MSG_MISSING_ACTION = "Please provide an action."
MSG_INVALID_ACTION = "Please provide a valid action."

FORGOT_ACTIONS = ("user", "password")


def _validate(email: str, action: str) -> str:
    if not email:
        return MSG_MISSING_EMAIL
    if not action:
        return MSG_MISSING_ACTION
    if action not in FORGOT_ACTIONS:
        return MSG_INVALID_ACTION
    return ""


@router.api_route("/forgot", methods=ANY_METHOD)
async def forgot(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET", "POST")
    if rejected is not None:
        return rejected

    if request.method == "GET":
        return await auth.pages.render(request, "forgot.html")

    form = await read_form(request, auth)
    email = form_value(form, "email")
    action = form_value(form, "action")
    log = request_logger(request).bind(email=email, action=action)

    message = _validate(email, action)
    if message:
        log.warning("invalid_forgot_form", message=message)
        return await auth.pages.render(
            request,
            "forgot.html",
            {"message": message, "email": email, "action": action},
        )

    # The response is the same whether or not the email is registered.
    username = await auth.users.username_for_email(email)
    token = None
    if not username:
        log.warning("email_not_registered")
    elif action == "password":
        token = await auth.tokens.create_reset(username)
        await auth.events.record(EventName.SAVE_TOKEN, True, username, "saved reset token", log)

    subject, body = auth.emails.forgot(action, email, username, token)
    await auth.mailer.send(email, subject, body)
    log.info("sent_forgot_email", username=username)

    return RedirectResponse("/forgot_sent", status_code=status.HTTP_303_SEE_OTHER)


@router.api_route("/forgot_sent", methods=ANY_METHOD)
async def forgot_sent(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET")
    if rejected is not None:
        return rejected
    return await auth.pages.render(request, "forgot_sent.html", {"email_from": auth.config.smtp.user})
