"""
api/routes/auth.py -- Registration, login and session REST endpoints.

Routes:
  POST /api/auth/register   -- create a local account; 201 + public user
  POST /api/auth/login      -- password login; accessToken + refreshToken cookie
  POST /api/auth/refresh    -- refresh token (cookie/body/bearer) -> new accessToken
  POST /api/auth/logout     -- bearer access token; revokes every refresh token
  POST /api/auth/google     -- Google ID token login; same response as /login
  GET  /api/auth/providers  -- list enabled identity providers (public)

Every path here sits under the /api/auth prefix, which the access-token
middleware exempts. Endpoints that need an identity (logout) verify the token
themselves and answer 401 for a missing token and 403 for a bad one.

Security:
  POST /login and POST /refresh are rate-limited per client IP.
  Cache-Control: no-store on every response that carries a token.
"""

from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from api.models import (
    AccessTokenResponse,
    AuthResponse,
    GoogleLoginRequest,
    LoginRequest,
    MessageResponse,
    OAuthProviderInfo,
    RefreshRequest,
    RegisterRequest,
    UserOut,
)
from auth import sessions
from auth.dependencies import bearer_token, refresh_token_from
from auth.oauth import get_enabled_providers, verify_google_credential
from auth.store import UserStore
from auth.tokens import clear_refresh_cookie, set_refresh_cookie
from core.config import get_settings

_settings = get_settings()

router = APIRouter()


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _session_response(result: sessions.LoginResult) -> JSONResponse:
    """Body carries the access token; the refresh token only travels as a cookie."""
    resp = JSONResponse(
        status_code=200,
        content=AuthResponse(
            user=UserOut.from_user(result.user),
            access_token=result.access_token,
        ).model_dump(by_alias=True),
    )
    set_refresh_cookie(resp, result.refresh_token)
    return _no_store(resp)


# ---------------------------------------------------------------------------
# Account creation and login
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=UserOut, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserOut:
    """Create a local account. The response never includes the password hash."""
    user_store: UserStore = request.app.state.user_store
    user = sessions.register_user(user_store, body.username, body.email, body.password)
    return UserOut.from_user(user)


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router so FastAPI introspects the undecorated function
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    400 when a field is missing, 404 for an unknown email, 401 for a wrong
    password. On success the refresh token is appended to the user's token
    list and set as an httpOnly cookie.
    """
    user_store: UserStore = request.app.state.user_store
    result = sessions.login(user_store, body.email, body.password)
    return _session_response(result)


@router.post("/auth/google", response_model=AuthResponse)
async def google_login(request: Request, body: GoogleLoginRequest) -> JSONResponse:
    """Sign in with a Google ID token, creating or linking the account by email."""
    identity = await verify_google_credential(request.app.state.oauth, body.credential)
    user_store: UserStore = request.app.state.user_store
    result = await run_in_threadpool(sessions.login_with_google, user_store, identity)
    return _session_response(result)


# ---------------------------------------------------------------------------
# Session maintenance
# ---------------------------------------------------------------------------


@limiter.limit(_settings.refresh_rate_limit)
@router.post("/auth/refresh", response_model=AccessTokenResponse)
def refresh(request: Request, body: Optional[RefreshRequest] = None) -> JSONResponse:
    """Exchange a registered refresh token for a new access token.

    Token source precedence: refreshToken cookie, then the refreshToken body
    field, then the Authorization bearer header.
    """
    user_store: UserStore = request.app.state.user_store
    token = refresh_token_from(request, body.refresh_token if body else None)
    access_token = sessions.refresh_access_token(user_store, token)
    resp = JSONResponse(content=AccessTokenResponse(access_token=access_token).model_dump(by_alias=True))
    return _no_store(resp)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke all of the caller's refresh tokens (every device) and drop the cookie."""
    user_store: UserStore = request.app.state.user_store
    sessions.logout(user_store, bearer_token(request))
    resp = JSONResponse(content=MessageResponse(message="User logged out").model_dump())
    clear_refresh_cookie(resp)
    return _no_store(resp)


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured identity providers; empty when Google is not set up."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers()]
