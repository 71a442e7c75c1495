"""
auth/errors.py -- Service-layer exceptions for the identity subsystem.

Each class carries the HTTP status_code and a stable error_code so the single
ServiceError handler in api/main.py can render every failure with the same
envelope. Service code raises these; it never builds responses itself.
"""

from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses."""

    status_code: int = 400
    error_code: str = "bad_request"
    default_message: str = "Bad request."

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.detail = detail


class MissingFieldsError(ServiceError):
    status_code = 400
    error_code = "missing_fields"
    default_message = "Please enter all fields."


class InvalidFieldError(ServiceError):
    status_code = 400
    error_code = "invalid_field"
    default_message = "Invalid field value."


class DuplicateEmailError(ServiceError):
    status_code = 400
    error_code = "duplicate_email"
    default_message = "Email already exists."


class NotFoundError(ServiceError):
    status_code = 404
    error_code = "not_found"
    default_message = "User not found."


class InvalidCredentialsError(ServiceError):
    status_code = 401
    error_code = "invalid_credentials"
    default_message = "Invalid credentials."


class MissingTokenError(ServiceError):
    """No token was presented at all (401)."""

    status_code = 401
    error_code = "unauthenticated"
    default_message = "Authentication required."


class InvalidTokenError(ServiceError):
    """Token failed signature or expiry verification (403)."""

    status_code = 403
    error_code = "invalid_token"
    default_message = "Invalid or expired token."


class TokenReuseError(ServiceError):
    """A signature-valid refresh token that is no longer registered was presented.

    Raised only after the owner's token list has been cleared.
    """

    status_code = 403
    error_code = "token_reuse_detected"
    default_message = "Refresh token is no longer valid. Please log in again."


class ForbiddenError(ServiceError):
    status_code = 403
    error_code = "forbidden"
    default_message = "You may only modify your own account."


class ProviderVerificationError(ServiceError):
    """Identity-provider credential rejected. The message is always generic."""

    status_code = 400
    error_code = "invalid_provider_token"
    default_message = "Invalid token."


class TokenStoreConflict(ServiceError):
    """Token-list write kept losing the compare-and-swap race."""

    status_code = 503
    error_code = "token_store_conflict"
    default_message = "Session store is busy. Please retry."
