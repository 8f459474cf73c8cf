"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session token is read from, in priority order:
  1. the "token" cookie -- set by POST /auth/signin.
  2. an Authorization: Bearer <token> header -- for non-browser clients.

get_current_account() composes session_token() with AuthService.me(), which
verifies the token and loads the account. Any failure raises
UnauthorizedError, which the api/ exception handler turns into a 401.

Layer rule: this module may import from fastapi (Request) because it is part
of the FastAPI dependency injection system. It does not import from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Account
from auth.service import AuthService
from auth.tokens import SESSION_COOKIE


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService built in lifespan."""
    return request.app.state.auth_service


def session_token(request: Request) -> str | None:
    """Extract the raw session token from the cookie or Bearer header."""
    token: str | None = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def get_current_account(request: Request) -> Account:
    """Require a valid session. Raises UnauthorizedError otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...
    """
    return get_auth_service(request).me(session_token(request))
