"""
Router aggregator — wires all page modules together.
"""

from fastapi import APIRouter

from formauth.api.routes import confirm, forgot, login, register, reset, users

page_router = APIRouter()

# Login, logout
page_router.include_router(login.router)

# Registration and email confirmation
page_router.include_router(register.router)
page_router.include_router(confirm.router)

# Forgotten username or password, password reset
page_router.include_router(forgot.router)
page_router.include_router(reset.router)

# Current user, admin lists, redirects
page_router.include_router(users.router)
