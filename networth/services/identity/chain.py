"""IdentityProviderChain: tries each provider in priority order."""

import logging
from typing import Optional

from networth.config import settings
from networth.core.exceptions import Unauthenticated
from networth.services.identity.base import AuthenticatedIdentity, IdentityProvider
from networth.services.identity.builtin import BuiltinIdentityProvider
from networth.services.identity.oidc import (
    OIDCIdentityProvider,
    OIDCProviderConfig,
    firebase_config,
)

logger = logging.getLogger(__name__)

# Module-level singleton (built lazily on first request)
_chain: Optional["IdentityProviderChain"] = None


class IdentityProviderChain:
    """Ordered list of identity providers.

    The first provider whose ``can_handle()`` claims the token validates it.
    ``firebase,builtin`` accepts both Firebase ID tokens and the app's own
    HS256 tokens.
    """

    def __init__(self, providers: list[IdentityProvider]) -> None:
        self._providers = providers

    @property
    def providers(self) -> list[IdentityProvider]:
        return list(self._providers)

    async def authenticate(self, token: Optional[str]) -> AuthenticatedIdentity:
        """Validate token and return the authenticated identity.

        Raises:
            Unauthenticated: no token, no provider claims it, or the claiming
                provider rejects it
        """
        if not token:
            raise Unauthenticated("Missing bearer token")

        for provider in self._providers:
            if provider.can_handle(token):
                identity = await provider.validate_token(token)
                if identity is not None:
                    return identity
                raise Unauthenticated("Invalid or expired token")

        raise Unauthenticated("Could not validate credentials")


def build_chain() -> IdentityProviderChain:
    """Construct the provider chain from application settings."""
    providers: list[IdentityProvider] = []

    for name in settings.IDENTITY_PROVIDER_CHAIN:
        name = name.strip().lower()

        if name == "builtin":
            providers.append(BuiltinIdentityProvider())
            logger.info("Identity chain: added builtin provider")

        elif name == "firebase":
            if not settings.IDP_FIREBASE_PROJECT_ID:
                logger.warning(
                    "Identity chain: 'firebase' requested but IDP_FIREBASE_PROJECT_ID not set, skipping"
                )
                continue
            providers.append(OIDCIdentityProvider(firebase_config(settings.IDP_FIREBASE_PROJECT_ID)))
            logger.info(
                "Identity chain: added Firebase provider project=%s",
                settings.IDP_FIREBASE_PROJECT_ID,
            )

        elif name == "oidc":
            if not settings.IDP_OIDC_ISSUER or not settings.IDP_OIDC_CLIENT_ID:
                logger.warning(
                    "Identity chain: 'oidc' requested but IDP_OIDC_ISSUER / "
                    "IDP_OIDC_CLIENT_ID not set, skipping"
                )
                continue
            providers.append(
                OIDCIdentityProvider(
                    OIDCProviderConfig(
                        provider_name="oidc",
                        issuer=settings.IDP_OIDC_ISSUER,
                        client_id=settings.IDP_OIDC_CLIENT_ID,
                    )
                )
            )
            logger.info("Identity chain: added OIDC provider iss=%s", settings.IDP_OIDC_ISSUER)

        else:
            logger.warning("Identity chain: unknown provider %r, skipping", name)

    if not providers:
        logger.warning("Identity chain: no valid providers configured, falling back to builtin")
        providers.append(BuiltinIdentityProvider())

    return IdentityProviderChain(providers)


def get_chain() -> IdentityProviderChain:
    """Return the singleton chain, building it on first call."""
    global _chain
    if _chain is None:
        _chain = build_chain()
    return _chain


def reset_chain() -> None:
    """Reset the singleton chain (used in tests to re-read config)."""
    global _chain
    _chain = None
