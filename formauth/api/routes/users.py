"""
Account pages: the current user, and the admin-only user and event lists.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse

from formauth.api.deps import get_auth_app, request_logger
from formauth.app import AuthApp
from formauth.core.http import ANY_METHOD, allowed_methods, respond_with_error
from formauth.services.sessions import BoundSession

router = APIRouter(tags=["users"])


async def _admin_session(request: Request, auth: AuthApp) -> tuple[BoundSession, Response | None]:
    session = await auth.sessions.user_from_request(request)
    if not session.user.is_admin:
        request_logger(request).warning("user_not_authorized", username=session.user.username)
        return session, session.apply(respond_with_error(status.HTTP_401_UNAUTHORIZED))
    return session, None


@router.api_route("/", methods=ANY_METHOD)
async def root(request: Request) -> Response:
    rejected = allowed_methods(request, "GET")
    if rejected is not None:
        return rejected
    return RedirectResponse("/user", status_code=status.HTTP_302_FOUND)


@router.api_route("/.well-known/change-password", methods=ANY_METHOD)
async def change_password(request: Request) -> Response:
    rejected = allowed_methods(request, "GET")
    if rejected is not None:
        return rejected
    return RedirectResponse("/forgot", status_code=status.HTTP_302_FOUND)


@router.api_route("/user", methods=ANY_METHOD)
async def user(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET")
    if rejected is not None:
        return rejected

    session = await auth.sessions.user_from_request(request)
    return await auth.pages.render(request, "user.html", session=session)


@router.api_route("/users", methods=ANY_METHOD)
async def users(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET")
    if rejected is not None:
        return rejected

    session, denied = await _admin_session(request, auth)
    if denied is not None:
        return denied

    return await auth.pages.render(
        request,
        "users.html",
        {"users": await auth.users.list_users()},
        session=session,
    )


@router.api_route("/events", methods=ANY_METHOD)
async def events(request: Request, auth: AuthApp = Depends(get_auth_app)) -> Response:
    rejected = allowed_methods(request, "GET")
    if rejected is not None:
        return rejected

    session, denied = await _admin_session(request, auth)
    if denied is not None:
        return denied

    return await auth.pages.render(
        request,
        "events.html",
        {"events": await auth.events.list()},
        session=session,
    )
