"""
auth/sessions.py -- Registration, login, refresh, logout and Google sign-in.

Each flow is a single pass with no retries: validate, look up, verify, then
issue and persist. Failures raise ServiceError subclasses from auth/errors.py;
the API layer turns them into responses.

Token lifecycle:
  login / Google sign-in  -> issue access + refresh, append refresh to store
  refresh                 -> verify refresh, check membership, issue access
  refresh (not a member)  -> clear the whole list, then reject (reuse detection)
  logout                  -> clear the whole list (every device)

The refresh token is not rotated by refresh(); it stays usable until it
expires or the list is cleared.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidFieldError,
    InvalidTokenError,
    MissingFieldsError,
    MissingTokenError,
    NotFoundError,
    TokenReuseError,
)
from auth.models import User
from auth.oauth import GoogleIdentity
from auth.store import UserStore
from auth.tokens import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger("readinglog.auth")

_MAX_PASSWORD_BYTES = 72


@dataclass(frozen=True)
class LoginResult:
    user: User
    access_token: str
    refresh_token: str


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_user(store: UserStore, username: str | None, email: str | None, password: str | None) -> User:
    """Create a local account. Does not log the user in."""
    if _blank(username) or _blank(email) or not password:
        raise MissingFieldsError()
    if len(password.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        raise InvalidFieldError(f"Password must be at most {_MAX_PASSWORD_BYTES} bytes.")

    if store.get_by_email(email) is not None:
        raise DuplicateEmailError()

    user = User(username=username.strip(), email=email, hashed_password=hash_password(password))
    try:
        user_id = store.create_user(user)
    except IntegrityError as exc:
        # A concurrent registration won the UNIQUE(email) race.
        raise DuplicateEmailError() from exc

    logger.info("Registered user %s", user_id)
    created = store.get_by_id(user_id)
    if created is None:
        raise NotFoundError()
    return created


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def _start_session(store: UserStore, user: User) -> LoginResult:
    """Issue both tokens and register the refresh token for the user."""
    access_token = create_access_token(user.id)
    refresh_token = create_refresh_token(user.id)
    if not store.append_token(user.id, refresh_token):
        # Deleted between lookup and append.
        raise NotFoundError()
    return LoginResult(user=user, access_token=access_token, refresh_token=refresh_token)


def login(store: UserStore, email: str | None, password: str | None) -> LoginResult:
    """Password login.

    Missing fields -> 400, unknown email -> 404, wrong password -> 401. The
    token list is only touched once the password has been verified.
    """
    if _blank(email) or not password:
        raise MissingFieldsError("Email and password are required.")

    user = store.get_by_email(email)
    if user is None:
        raise NotFoundError()

    if not verify_password(password, user.hashed_password):
        logger.info("Failed login for user %s", user.id)
        raise InvalidCredentialsError()

    result = _start_session(store, user)
    logger.info("User %s logged in", user.id)
    return result


def login_with_google(store: UserStore, identity: GoogleIdentity) -> LoginResult:
    """Sign in with a verified Google identity, creating or linking the account.

    - No account for the email: create one with no password and google_id set.
    - Account exists but was never linked: attach google_id and back-fill the
      avatar if the account has none.
    - Already linked: sign in as-is.
    """
    user = store.get_by_email(identity.email)
    if user is None:
        new_user = User(
            username=identity.name,
            email=identity.email,
            profile_picture=identity.picture,
            google_id=identity.subject,
        )
        try:
            user_id = store.create_user(new_user)
        except IntegrityError:
            # Another first sign-in for the same email created it first.
            user = store.get_by_email(identity.email)
        else:
            logger.info("Created user %s from Google sign-in", user_id)
            user = store.get_by_id(user_id)
    elif user.google_id is None:
        store.link_google(user.id, identity.subject, identity.picture)
        logger.info("Linked Google account to user %s", user.id)
        user = store.get_by_id(user.id)

    if user is None:
        raise NotFoundError()

    result = _start_session(store, user)
    logger.info("User %s logged in with Google", user.id)
    return result


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


def refresh_access_token(store: UserStore, refresh_token: str | None) -> str:
    """Exchange a registered refresh token for a new access token.

    A signature-valid token that is not in its owner's list was either
    revoked already or never issued to that user. Treat it as stolen: clear
    every token the user holds before rejecting, forcing a fresh login on
    all devices.
    """
    if not refresh_token:
        raise MissingTokenError("Unauthorized - no refresh token.")

    payload = decode_refresh_token(refresh_token)
    if payload is None:
        raise InvalidTokenError()

    user_id = payload["userId"]
    tokens = store.get_tokens(user_id)
    if tokens is None:
        raise NotFoundError()

    if refresh_token not in tokens:
        store.clear_tokens(user_id)
        logger.warning("Refresh token reuse detected for user %s; all sessions revoked", user_id)
        raise TokenReuseError()

    return create_access_token(user_id)


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


def logout(store: UserStore, access_token: str | None) -> None:
    """Revoke every refresh token of the user identified by the access token."""
    if not access_token:
        raise MissingTokenError()

    payload = decode_access_token(access_token)
    if payload is None:
        raise InvalidTokenError("Forbidden.")

    user_id = payload["userId"]
    if not store.clear_tokens(user_id):
        raise NotFoundError()
    logger.info("User %s logged out", user_id)
