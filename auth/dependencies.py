"""
auth/dependencies.py -- Request helpers and FastAPI Depends() for authentication.

The access-token check itself runs in the middleware in api/main.py, which
stores the verified identity on request.state.user_id. The helpers here read
that identity back inside route handlers and pull raw tokens off a request.

Token extraction rules:
  Access token  -- Authorization: Bearer <token> only.
  Refresh token -- first non-empty source wins, in this exact order:
                     1. refreshToken cookie (set by login)
                     2. refreshToken field of the JSON body
                     3. Authorization: Bearer <token>

Layer rule: may import from fastapi (Request/Depends) because this module is
part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import MissingTokenError, NotFoundError
from auth.models import User
from auth.store import UserStore
from auth.tokens import REFRESH_COOKIE_NAME


def bearer_token(request: Request) -> str | None:
    """Return the token from an 'Authorization: Bearer <token>' header, or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def refresh_token_from(request: Request, body_token: str | None = None) -> str | None:
    """Pick the refresh token from cookie, then body, then bearer header."""
    return request.cookies.get(REFRESH_COOKIE_NAME) or body_token or bearer_token(request)


def get_current_user_id(request: Request) -> str:
    """Return the user id the middleware attached to this request.

    Raises MissingTokenError when the route is reached without going through
    the access-token middleware (e.g. an exempt path using this dependency).
    """
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise MissingTokenError()
    return user_id


def get_current_user(request: Request) -> User:
    """Require an authenticated user that still exists.

    Use as a FastAPI dependency:
        @router.get("/users/me")
        def route(user: User = Depends(get_current_user)): ...
    """
    user_id = get_current_user_id(request)
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(user_id)
    if user is None:
        raise NotFoundError()
    return user
