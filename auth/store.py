"""
auth/store.py -- SQLAlchemy Core persistence layer for users and their tokens.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Token list concurrency:
  The refresh-token list is a JSON array column on the user row. Appending to
  it is a compare-and-swap on token_version: read (tokens, version), compute
  the new list, then UPDATE ... WHERE token_version = :version. Zero rows
  updated means another request wrote first, so the append re-reads and tries
  again (bounded by _MAX_TOKEN_WRITE_ATTEMPTS). Clearing is an unconditional
  write that also bumps the version, so an append racing a clear either lands
  first and is cleared, or retries against the empty list.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine

from auth.errors import TokenStoreConflict
from auth.models import User

logger = logging.getLogger("readinglog.auth.store")

_DEFAULT_DB_URL = "sqlite:///readinglog.db"

_MAX_TOKEN_WRITE_ATTEMPTS = 5

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),  # NULL for Google-only users
    Column("profile_picture", String(500)),
    Column("google_id", String(255)),
    Column("tokens", Text, nullable=False, server_default="[]"),  # JSON array
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, _connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities and their refresh-token lists.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user_id = store.create_user(User(username="ana", email="ana@x.com", hashed_password=h))
        store.append_token(user_id, refresh_token)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def create_user(self, user: User) -> str:
        """Insert a new user and return its identifier.

        A fresh UUID4 is assigned when user.id is None. The email is stored
        normalised. Raises sqlalchemy.exc.IntegrityError if the email is
        already registered -- callers treat that as a duplicate-email signal
        for the race where two registrations pass the existence check together.
        """
        user_id = user.id or str(uuid.uuid4())
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    username=user.username,
                    email=normalize_email(user.email),
                    hashed_password=user.hashed_password,
                    profile_picture=user.profile_picture,
                    google_id=user.google_id,
                    tokens=json.dumps(list(user.tokens)),
                    token_version=0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by identifier. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by username."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def link_google(self, user_id: str, google_id: str, profile_picture: str | None = None) -> None:
        """Attach a Google subject id to an existing account.

        profile_picture is only written when the account has none yet; an
        avatar the user chose locally is never overwritten.
        """
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(google_id=google_id))
            if profile_picture:
                conn.execute(
                    _users.update()
                    .where((_users.c.id == user_id) & (_users.c.profile_picture.is_(None)))
                    .values(profile_picture=profile_picture)
                )
            conn.commit()

    def update_user(self, user_id: str, **fields) -> bool:
        """Update profile fields on an existing user.

        Accepted fields: username, email, profile_picture. Token columns are
        deliberately not accepted here. Raises IntegrityError on a duplicate
        email. Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - {"username", "email", "profile_picture"}
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Refresh-token list
    # ------------------------------------------------------------------

    def get_tokens(self, user_id: str) -> list[str] | None:
        """Return the user's current refresh tokens, or None if the user does not exist."""
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.tokens).where(_users.c.id == user_id)).fetchone()
        return _load_tokens(row.tokens) if row is not None else None

    def append_token(self, user_id: str, token: str) -> bool:
        """Register a newly issued refresh token. Returns False if the user does not exist."""
        return self._swap_tokens(user_id, lambda tokens: tokens + [token]) is not None

    def clear_tokens(self, user_id: str) -> bool:
        """Drop every refresh token for the user. Returns False if the user does not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(tokens="[]", token_version=_users.c.token_version + 1)
            )
            conn.commit()
        return result.rowcount > 0

    def _swap_tokens(self, user_id: str, mutate: Callable[[list[str]], list[str]]) -> list[str] | None:
        """Apply mutate() to the token list with compare-and-swap on token_version.

        Returns the list that was written, or None if the user does not exist.
        Raises TokenStoreConflict when every attempt lost the race.
        """
        for attempt in range(1, _MAX_TOKEN_WRITE_ATTEMPTS + 1):
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(_users.c.tokens, _users.c.token_version).where(_users.c.id == user_id)
                ).fetchone()
                if row is None:
                    return None
                new_tokens = mutate(_load_tokens(row.tokens))
                result = conn.execute(
                    _users.update()
                    .where((_users.c.id == user_id) & (_users.c.token_version == row.token_version))
                    .values(tokens=json.dumps(new_tokens), token_version=row.token_version + 1)
                )
                conn.commit()
            if result.rowcount == 1:
                return new_tokens
            logger.info("Token list for user %s changed concurrently (attempt %d)", user_id, attempt)
        raise TokenStoreConflict()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _load_tokens(raw: str | None) -> list[str]:
    if not raw:
        return []
    tokens = json.loads(raw)
    return [t for t in tokens if isinstance(t, str)]


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        profile_picture=row.profile_picture,
        google_id=row.google_id,
        tokens=_load_tokens(row.tokens),
        created_at=row.created_at,
    )
