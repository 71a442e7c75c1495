"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). The store maps rows to
these objects; sessions.py and the routes do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """A registered reader.

    hashed_password is None for accounts created through Google sign-in; they
    have no local password and password login always fails for them.
    google_id is None until the user signs in with Google for the first time,
    at which point the account is linked by email.

    tokens is the list of refresh tokens currently honoured for this user, in
    issuance order. Duplicates are allowed; only membership matters. The list
    is owned by UserStore -- mutate it through append_token()/clear_tokens(),
    never by assigning to this field and saving the user.
    """

    username: str
    email: str
    id: str | None = None
    hashed_password: str | None = None  # None = Google-only account
    profile_picture: str | None = None
    google_id: str | None = None  # Google "sub" claim
    tokens: list[str] = field(default_factory=list)
    created_at: str | None = None

    @property
    def is_federated(self) -> bool:
        return self.google_id is not None
