"""
auth/tokens.py -- Password hashing, JWT issue/verify, and refresh-cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Both token types carry only {userId, iat, exp, jti}.
       Access tokens are signed with ACCESS_TOKEN_SECRET and refresh tokens with
       REFRESH_TOKEN_SECRET, so possession of one secret (or one token type)
       cannot be used to forge the other. Verification returns None on any
       failure -- callers decide whether that is a 401 or a 403.

  Passwords: bcrypt used directly (no passlib wrapper) with a fixed work
       factor. verify_password() fails closed: a missing or malformed hash, or
       a password bcrypt refuses to process, is simply "no match".

  Refresh cookie: httpOnly + SameSite=Strict. The refresh token is never
       readable from JavaScript and is not sent on any cross-site request.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("readinglog.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# Fixed bcrypt work factor. Changing it only affects newly written hashes;
# bcrypt encodes the cost in each hash so old hashes keep verifying.
_BCRYPT_ROUNDS = 10

REFRESH_COOKIE_NAME = "refreshToken"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes of input and current releases
    raise ValueError beyond that. Registration rejects longer passwords before
    they reach this function.
    """
    salt = bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash ("Invalid salt") or over-long password.
        return False


# ---------------------------------------------------------------------------
# JWT issue / verify
# ---------------------------------------------------------------------------


def issue_token(user_id: str, secret: str, expire_seconds: int) -> str:
    """Sign a token whose payload is {userId} plus iat/exp/jti claims.

    Pure function of its inputs and the current time -- nothing is persisted.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "iat": now,
        "exp": now + timedelta(seconds=expire_seconds),
        # iat has one-second resolution; jti keeps two tokens issued in the
        # same second distinct, so a revoked token is never re-issued.
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def verify_token(token: str, secret: str) -> dict | None:
    """Verify signature and expiry. Returns the payload, or None on any failure."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not isinstance(payload.get("userId"), str) or not payload["userId"]:
        return None
    return payload


def create_access_token(user_id: str, expire_seconds: int = 0) -> str:
    """Issue a short-lived access token.

    Args:
        user_id:        Identifier of the authenticated user.
        expire_seconds: Lifetime in seconds. If 0 (default), uses
                        Settings.access_token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    return issue_token(user_id, _settings.access_token_secret, duration)


def create_refresh_token(user_id: str, expire_seconds: int = 0) -> str:
    """Issue a refresh token. The caller must register it in the user's token list."""
    duration = expire_seconds if expire_seconds > 0 else _settings.refresh_token_expire_seconds
    return issue_token(user_id, _settings.refresh_token_secret, duration)


def decode_access_token(token: str) -> dict | None:
    return verify_token(token, _settings.access_token_secret)


def decode_refresh_token(token: str) -> dict | None:
    return verify_token(token, _settings.refresh_token_secret)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_refresh_cookie(response, token: str) -> None:
    """Write the refresh token as an httpOnly, SameSite=Strict cookie.

    secure: only sent over HTTPS unless running in debug mode (see
        Settings.secure_cookies).
    max_age: the cookie outlives the token on purpose; once the JWT expires
        the refresh endpoint rejects it with 403 and the client logs in again.
    """
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="strict",
        secure=bool(_settings.secure_cookies),
        max_age=_settings.refresh_cookie_max_age,
    )


def clear_refresh_cookie(response) -> None:
    response.delete_cookie(
        REFRESH_COOKIE_NAME,
        httponly=True,
        samesite="strict",
        secure=bool(_settings.secure_cookies),
    )
