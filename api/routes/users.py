"""
api/routes/users.py -- User profile REST endpoints.

Routes (all behind the access-token middleware):
  GET    /api/users            -- list users
  GET    /api/users/me         -- the authenticated user
  GET    /api/users/{user_id}  -- one user
  PUT    /api/users/{user_id}  -- update own username/email
  DELETE /api/users/{user_id}  -- delete own account

Ownership: PUT and DELETE compare the path id with the identity the
middleware attached; acting on another account is a 403.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.models import MessageResponse, UserOut, UserUpdate
from auth.dependencies import get_current_user, get_current_user_id
from auth.errors import DuplicateEmailError, ForbiddenError, MissingFieldsError, NotFoundError
from auth.models import User
from auth.store import UserStore

router = APIRouter()


@router.get("/users", response_model=list[UserOut])
def list_users(request: Request, current_user_id: str = Depends(get_current_user_id)) -> list[UserOut]:
    user_store: UserStore = request.app.state.user_store
    return [UserOut.from_user(u) for u in user_store.list_users()]


@router.get("/users/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)) -> UserOut:
    """Return the profile of the authenticated user."""
    return UserOut.from_user(current_user)


@router.get("/users/{user_id}", response_model=UserOut)
def get_user(request: Request, user_id: str, current_user_id: str = Depends(get_current_user_id)) -> UserOut:
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(user_id)
    if user is None:
        raise NotFoundError()
    return UserOut.from_user(user)


@router.put("/users/{user_id}", response_model=UserOut)
def update_user(
    request: Request,
    user_id: str,
    body: UserUpdate,
    current_user_id: str = Depends(get_current_user_id),
) -> UserOut:
    """Update the caller's own username and/or email."""
    if user_id != current_user_id:
        raise ForbiddenError()

    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise MissingFieldsError("Nothing to update.")

    user_store: UserStore = request.app.state.user_store
    existing = user_store.get_by_email(updates["email"]) if "email" in updates else None
    if existing is not None and existing.id != user_id:
        raise DuplicateEmailError()
    try:
        updated = user_store.update_user(user_id, **updates)
    except IntegrityError as exc:
        raise DuplicateEmailError() from exc
    user = user_store.get_by_id(user_id) if updated else None
    if user is None:
        # Missing, or deleted between the update and the re-read.
        raise NotFoundError()
    return UserOut.from_user(user)


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: str,
    current_user_id: str = Depends(get_current_user_id),
) -> MessageResponse:
    """Delete the caller's own account. Outstanding access tokens die with their TTL."""
    if user_id != current_user_id:
        raise ForbiddenError("You may only delete your own account.")
    user_store: UserStore = request.app.state.user_store
    if not user_store.delete_user(user_id):
        raise NotFoundError()
    return MessageResponse(message="User deleted successfully")
