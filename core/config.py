"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the reading-log API happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_token_secret -> ACCESS_TOKEN_SECRET).

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Used for the DEBUG-conditional secret policy and for deriving
      secure_cookies (from APP_ENV and DEBUG) when it is not set explicitly.

Security notes:
  Access and refresh tokens are signed with two different secrets so that a
  leaked access-token secret cannot mint refresh tokens and vice versa. Both
  must be at least 32 characters and they must not be equal.

  In production mode (DEBUG not set or false) a missing secret is a hard
  startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("readinglog.config")

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    app_env: str = "development"
    database_url: str = "sqlite:///readinglog.db"
    api_prefix: str = "/api"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string means "not configured"; the validator fills or rejects it.
    access_token_secret: str = ""
    refresh_token_secret: str = ""
    access_token_expire_seconds: int = 3600
    refresh_token_expire_seconds: int = 5 * 3600
    refresh_cookie_max_age: int = 7 * 24 * 3600
    # None = derive from debug (secure everywhere except local dev).
    secure_cookies: Optional[bool] = None

    # ------------------------------------------------------------------
    # Google sign-in (empty client id disables the provider)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    login_rate_limit: str = "10/minute"
    refresh_rate_limit: str = "30/minute"

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in ("prod", "production")

    @model_validator(mode="after")
    def validate_token_secrets(self) -> "Settings":
        """Enforce the token-secret policy.

        Dev mode (DEBUG=true): generate any missing secret with a warning.
            Tokens will not survive a restart -- acceptable for local dev.

        Production mode: refuse to start if either secret is missing.

        Both modes: reject secrets shorter than 32 characters and reject a
            configuration where both token types share one secret.
        """
        for field in ("access_token_secret", "refresh_token_secret"):
            value = getattr(self, field)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{field.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                value = secrets.token_hex(32)
                setattr(self, field, value)
                logger.warning("Using auto-generated %s. Sessions will not persist across restarts.", field.upper())
            if len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{field.upper()} must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be different.")
        if self.secure_cookies is None:
            # APP_ENV=production forces Secure even with DEBUG on.
            self.secure_cookies = self.is_production or not self.debug
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
