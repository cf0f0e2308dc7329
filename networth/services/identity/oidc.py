"""Generic OIDC identity provider (Firebase Authentication or any OIDC issuer)."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from jose import JWTError, jwt as jose_jwt

from networth.services.identity.base import AuthenticatedIdentity, IdentityProvider

logger = logging.getLogger(__name__)

# JWKS cache TTL
_JWKS_TTL = timedelta(hours=1)

FIREBASE_ISSUER_PREFIX = "https://securetoken.google.com/"
FIREBASE_JWKS_URI = (
    "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
)


@dataclass
class OIDCProviderConfig:
    """Configuration for one OIDC provider instance."""

    provider_name: str  # 'firebase', 'oidc'
    issuer: str         # Must match the JWT iss claim exactly
    client_id: str      # Used for audience validation
    # Defaults to {issuer}/.well-known/jwks.json
    jwks_uri: Optional[str] = None
    # Extra audience values accepted in addition to client_id
    extra_audiences: list = field(default_factory=list)

    @property
    def resolved_jwks_uri(self) -> str:
        return self.jwks_uri or f"{self.issuer.rstrip('/')}/.well-known/jwks.json"


def firebase_config(project_id: str) -> OIDCProviderConfig:
    """Firebase ID tokens: iss is securetoken.google.com/<project>, aud is the project."""
    return OIDCProviderConfig(
        provider_name="firebase",
        issuer=f"{FIREBASE_ISSUER_PREFIX}{project_id}",
        client_id=project_id,
        jwks_uri=FIREBASE_JWKS_URI,
    )


class OIDCIdentityProvider(IdentityProvider):
    """Validates RS256 tokens from a standards-compliant issuer.

    JWKS keys are cached for 1 hour and refreshed automatically.
    """

    def __init__(self, config: OIDCProviderConfig) -> None:
        self.config = config
        self.provider_name = config.provider_name
        self._jwks_cache: Optional[dict] = None
        self._jwks_fetched_at: Optional[datetime] = None

    def can_handle(self, token: str) -> bool:
        """Return True if the token's iss claim matches our configured issuer."""
        try:
            unverified = jose_jwt.get_unverified_claims(token)
        except JWTError:
            return False
        return unverified.get("iss") == self.config.issuer

    async def validate_token(self, token: str) -> Optional[AuthenticatedIdentity]:
        """Validate RS256 token against the issuer's JWKS."""
        try:
            jwks = await self._get_jwks()
            payload = jose_jwt.decode(
                token,
                jwks,
                algorithms=["RS256"],
                audience=[self.config.client_id] + self.config.extra_audiences,
                issuer=self.config.issuer,
            )
        except JWTError as exc:
            logger.debug("OIDC token validation failed for %s: %s", self.provider_name, exc)
            return None
        except httpx.HTTPError as exc:
            logger.warning("Could not fetch JWKS for %s: %s", self.provider_name, exc)
            return None

        sub = payload.get("sub")
        if not sub:
            return None

        return AuthenticatedIdentity(
            user_id=str(sub),
            provider=self.provider_name,
            subject=str(sub),
            email=payload.get("email", ""),
            raw_claims=payload,
        )

    async def _get_jwks(self) -> dict:
        """Fetch and cache the provider's JWKS document."""
        now = datetime.now(tz=timezone.utc)
        if (
            self._jwks_cache is not None
            and self._jwks_fetched_at is not None
            and now - self._jwks_fetched_at < _JWKS_TTL
        ):
            return self._jwks_cache

        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(self.config.resolved_jwks_uri)
            response.raise_for_status()
            self._jwks_cache = response.json()
            self._jwks_fetched_at = now
            return self._jwks_cache
