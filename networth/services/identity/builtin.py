"""Built-in identity provider: validates the app's own HS256 JWTs."""

import logging
from typing import Optional

from jose import JWTError, jwt as jose_jwt

from networth.core.security import decode_token
from networth.services.identity.base import AuthenticatedIdentity, IdentityProvider

logger = logging.getLogger(__name__)


class BuiltinIdentityProvider(IdentityProvider):
    """Validates HS256 JWTs signed with ``SECRET_KEY``.

    Used in development and tests, where no external IdP is configured.
    """

    provider_name = "builtin"

    def can_handle(self, token: str) -> bool:
        """Return True if the token uses HS256 (app-issued)."""
        try:
            header = jose_jwt.get_unverified_header(token)
        except JWTError:
            return False
        return header.get("alg") == "HS256"

    async def validate_token(self, token: str) -> Optional[AuthenticatedIdentity]:
        """Validate HS256 token using the app secret key."""
        try:
            payload = decode_token(token)
        except JWTError as exc:
            logger.debug("Builtin token rejected: %s", exc)
            return None

        if payload.get("type") != "access":
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
