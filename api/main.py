"""
api/main.py -- FastAPI application entry point for the reading-log API.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware        -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  3. log_requests          -- one log line per request with latency
  4. require_access_token  -- gates everything under /api except the exempt prefixes

Starlette puts the most recently added middleware outermost, so they are
registered below in reverse of that order.

Lifespan opens the UserStore on startup and disposes of it on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from auth.dependencies import bearer_token
from auth.errors import ServiceError
from auth.oauth import oauth as oauth_client
from auth.store import UserStore
from auth.tokens import decode_access_token
from core.config import get_settings

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("readinglog.api")

_settings = get_settings()

# Paths under the API prefix that never require an access token. A prefix
# matches itself and anything below it ("/api/auth/login"), not siblings that
# merely share the leading characters ("/api/authors").
AUTH_EXEMPT_PREFIXES: tuple[str, ...] = tuple(
    f"{_settings.api_prefix}{suffix}" for suffix in ("/auth", "/media", "/health")
)


def _error_json(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


def is_exempt(path: str) -> bool:
    """True if the path bypasses the access-token middleware."""
    prefix = _settings.api_prefix
    if path != prefix and not path.startswith(prefix + "/"):
        return True
    return any(path == p or path.startswith(p + "/") for p in AUTH_EXEMPT_PREFIXES)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the user store and expose the OAuth registry on app.state."""
    logger.info("Reading-log API starting up (env=%s)", _settings.app_env)
    app.state.user_store = UserStore(_settings.database_url)
    app.state.oauth = oauth_client
    logger.info("User store initialized")

    yield

    app.state.user_store.close()
    logger.info("Reading-log API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Reading Log API",
    description="Accounts and sessions for a social reading log.",
    version=API_VERSION,
    lifespan=lifespan,
)

app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Access-token middleware
#
# Runs before any route handler. Exempt paths are decided from the URL alone,
# before the Authorization header is even read.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def require_access_token(request: Request, call_next):
    """Reject requests under the API prefix that lack a valid access token.

    Missing token -> 401 unauthenticated. Bad signature or expired -> 401
    invalid_token. On success request.state.user_id holds the verified id.
    """
    if is_exempt(request.url.path) or request.method == "OPTIONS":
        return await call_next(request)

    token = bearer_token(request)
    if not token:
        return _error_json(401, "unauthenticated", "Access denied.")

    payload = decode_access_token(token)
    if payload is None:
        return _error_json(401, "invalid_token", "Invalid token.")

    request.state.user_id = payload["userId"]
    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,  # the refresh cookie must travel on /api/auth/refresh
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix=_settings.api_prefix, tags=["Auth"])
app.include_router(users_router, prefix=_settings.api_prefix, tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a service-layer failure with its own status and stable code."""
    log_fn = logger.error if exc.status_code >= 500 else logger.info
    log_fn("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.error_code)
    return _error_json(exc.status_code, exc.error_code, exc.message, exc.detail)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_json(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or params fail validation."""
    return _error_json(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404 routes, 405, ...)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error_json(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(SQLAlchemyError)
async def persistence_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database failures become a generic 500. Details go to the log only."""
    logger.exception("Persistence failure on %s %s", request.method, request.url.path)
    return _error_json(500, "persistence_error", "A storage error occurred.")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_json(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# Exempt from the access-token middleware and from rate limiting.
# ---------------------------------------------------------------------------


@app.get(f"{_settings.api_prefix}/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and a database round-trip check."""
    database = "ok"
    try:
        request.app.state.user_store.ping()
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database = "error"
    return HealthResponse(version=API_VERSION, components={"app": "ok", "database": database})
