"""
auth/oauth.py -- Authlib registry and Google ID-token verification.

The browser obtains a Google ID token (the "credential" from Google Identity
Services) and posts it to /api/auth/google. We verify it server-side against
Google's OpenID configuration: signature via the published JWKS, audience =
our client id, issuer = accounts.google.com, plus expiry. Authlib fetches and
caches the discovery document and key set.

Security notes:
  Email verification is mandatory. An ID token whose email_verified claim is
  false is rejected, because account linking is done by email and an
  unverified address could belong to someone else.

  Every verification failure surfaces as ProviderVerificationError with the
  same generic message. The underlying reason is logged, never returned.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from authlib.integrations.starlette_client import OAuth
from authlib.jose.errors import JoseError
from authlib.oidc.core import CodeIDToken
from joserfc.errors import JoseError as JoseRFCError

from auth.errors import ProviderVerificationError
from core.config import get_settings

logger = logging.getLogger("readinglog.auth.oauth")

GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"

# Google issues ID tokens with either form of the issuer.
_GOOGLE_ISSUERS = ["https://accounts.google.com", "accounts.google.com"]


def _claims_options(client_id: str) -> dict:
    """Issuer must be Google and audience must be our own client id."""
    return {
        "iss": {"essential": True, "values": list(_GOOGLE_ISSUERS)},
        "aud": {"essential": True, "value": client_id},
    }


# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

# Verifying ID tokens needs only the client id (the expected audience).
if _cfg.google_client_id:
    oauth.register(
        name="google",
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret or None,
        server_metadata_url=GOOGLE_DISCOVERY_URL,
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google sign-in provider registered")


def get_enabled_providers() -> list[dict]:
    """Return metadata for every configured identity provider.

    Used by GET /api/auth/providers so the login page knows which buttons to
    render. Returns list of {"name": str, "label": str} dicts.
    """
    providers: list[dict] = []
    if get_settings().google_client_id:
        providers.append({"name": "google", "label": "Google"})
    return providers


# ---------------------------------------------------------------------------
# Google credential verification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GoogleIdentity:
    """The claims we use from a verified Google ID token."""

    subject: str
    email: str
    name: str
    picture: str | None = None


async def verify_google_credential(registry, credential: str | None) -> GoogleIdentity:
    """Verify a Google ID token and extract the caller's identity.

    Args:
        registry:   The Authlib OAuth registry (app.state.oauth).
        credential: Raw ID token posted by the client.

    Raises:
        ProviderVerificationError: On a missing credential, an unconfigured
            provider, any verification failure, or a payload without a
            verified email and a display name.
    """
    if not credential:
        raise ProviderVerificationError()

    client = registry.create_client("google")
    if client is None or not client.client_id:
        logger.warning("Google credential received but no Google client is configured")
        raise ProviderVerificationError()

    try:
        claims = await client.parse_id_token(
            {"id_token": credential},
            nonce=None,
            claims_options=_claims_options(client.client_id),
            claims_cls=CodeIDToken,
        )
    except (JoseError, JoseRFCError, httpx.HTTPError, ValueError, KeyError) as exc:
        logger.warning("Google credential rejected: %s", exc.__class__.__name__)
        raise ProviderVerificationError() from exc

    email = claims.get("email")
    name = claims.get("name")
    subject = claims.get("sub")
    if not email or not name or not subject:
        raise ProviderVerificationError("Invalid token payload.")
    if claims.get("email_verified") is False:
        logger.warning("Google credential rejected: email not verified")
        raise ProviderVerificationError("Invalid token payload.")

    return GoogleIdentity(subject=str(subject), email=email, name=name, picture=claims.get("picture"))
