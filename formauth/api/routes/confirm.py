"""
Email confirmation: requesting a confirm link and redeeming it.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse

from formauth.api.deps import form_value, get_auth_app, read_form, request_logger
from formauth.app import AuthApp
from formauth.core.exceptions import ErrorKind, WebAuthError
from formauth.core.http import ANY_METHOD, allowed_methods
from formauth.schemas.event import EventName
from formauth.schemas.token import TokenKind

router = APIRouter(tags=["confirm"])

MSG_MISSING_TOKEN = "Please provide a token."
MSG_INVALID_TOKEN = "Token is invalid. Request a new token below."
MSG_EXPIRED_TOKEN = "Token is expired. Request a new token below."
MSG_MISSING_EMAIL = "Please provide your email."

_TOKEN_MESSAGES = {
    ErrorKind.TOKEN_MISSING: MSG_MISSING_TOKEN,
    ErrorKind.TOKEN_INVALID: MSG_INVALID_TOKEN,
    ErrorKind.TOKEN_EXPIRED: MSG_EXPIRED_TOKEN,
}


# ── Redeem ──────────────────────────────────────────────────────────
@router.api_route("/confirm", methods=ANY_METHOD)
async def confirm(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET", "POST")
    if rejected is not None:
        return rejected

    if request.method == "GET":
        ctoken = request.query_params.get("ctoken", "").strip()
        return await auth.pages.render(request, "confirm.html", {"ctoken": ctoken})

    form = await read_form(request, auth)
    ctoken = form_value(form, "ctoken")
    log = request_logger(request)

    try:
        username = await auth.tokens.username_for(TokenKind.CONFIRM, ctoken)
        await auth.users.confirm(username, ctoken)
    except WebAuthError as exc:
        message = _TOKEN_MESSAGES.get(exc.kind)
        if message is None:
            raise
        log.warning("confirm_rejected", kind=exc.kind.value)
        return await auth.pages.render(request, "confirm.html", {"message": message, "ctoken": ctoken})

    await auth.events.record(EventName.CONFIRMED, True, username, "user confirmed email", log)
    log.info("user_confirmed", username=username)

    return RedirectResponse("/confirmed", status_code=status.HTTP_303_SEE_OTHER)


@router.api_route("/confirmed", methods=ANY_METHOD)
async def confirmed(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET")
    if rejected is not None:
        return rejected
    return await auth.pages.render(request, "confirmed.html")


# ── Request ─────────────────────────────────────────────────────────
@router.api_route("/confirm_request", methods=ANY_METHOD)
async def confirm_request(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET", "POST")
    if rejected is not None:
        return rejected

    if request.method == "GET":
        return await auth.pages.render(request, "confirm_request.html")

    form = await read_form(request, auth)
    email = form_value(form, "email")
    log = request_logger(request).bind(email=email)

    if not email:
        log.warning("missing_email")
        return await auth.pages.render(request, "confirm_request.html", {"message": MSG_MISSING_EMAIL})

    # An unknown email still gets a message, telling the owner it is not registered.
    username = await auth.users.username_for_email(email)
    token = None
    if username:
        token = await auth.tokens.create_confirm(username)
        await auth.events.record(EventName.SAVE_TOKEN, True, username, "saved confirm token", log)
    else:
        log.warning("email_not_registered")

    subject, body = auth.emails.confirm_request(email, username, token)
    await auth.mailer.send(email, subject, body)
    log.info("sent_confirm_request", username=username)

    return RedirectResponse("/confirm_request_sent", status_code=status.HTTP_303_SEE_OTHER)


@router.api_route("/confirm_request_sent", methods=ANY_METHOD)
async def confirm_request_sent(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET")
    if rejected is not None:
        return rejected
    return await auth.pages.render(
        request,
        "confirm_request_sent.html",
        {"email_from": auth.config.smtp.user},
    )
