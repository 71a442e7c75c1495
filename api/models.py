"""
API request and response models for the reading-log REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py, which own the internal
domain representation. Route handlers map between the two.

Wire names are camelCase (accessToken, profilePicture) to match the web
client; Python attributes stay snake_case through the alias generator.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import User

_REQUEST_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=False)
_RESPONSE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Request models
#
# Fields are Optional on purpose: a missing field is a 400 missing_fields from
# the service layer, not a 422 from request validation.
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register."""

    model_config = _REQUEST_CONFIG

    username: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    model_config = _REQUEST_CONFIG

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


class RefreshRequest(BaseModel):
    """Optional request body for POST /api/auth/refresh."""

    model_config = _REQUEST_CONFIG

    refresh_token: Optional[str] = None


class GoogleLoginRequest(BaseModel):
    """Request body for POST /api/auth/google."""

    model_config = _REQUEST_CONFIG

    credential: Optional[str] = None


class UserUpdate(BaseModel):
    """Request body for PUT /api/users/{user_id}."""

    model_config = _REQUEST_CONFIG

    username: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    """Public view of a user. Never includes the password hash or tokens."""

    model_config = _RESPONSE_CONFIG

    id: str
    username: str
    email: str
    profile_picture: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            profile_picture=user.profile_picture,
        )


class AuthResponse(BaseModel):
    """Response for a successful login (password or Google)."""

    model_config = _RESPONSE_CONFIG

    user: UserOut
    access_token: str


class AccessTokenResponse(BaseModel):
    """Response for POST /api/auth/refresh."""

    model_config = _RESPONSE_CONFIG

    access_token: str


class MessageResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    message: str


class OAuthProviderInfo(BaseModel):
    model_config = _RESPONSE_CONFIG

    name: str
    label: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
