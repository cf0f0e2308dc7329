"""Identity provider package: resolves bearer tokens to caller identities."""

from networth.services.identity.base import AuthenticatedIdentity, IdentityProvider
from networth.services.identity.builtin import BuiltinIdentityProvider
from networth.services.identity.chain import (
    IdentityProviderChain,
    build_chain,
    get_chain,
    reset_chain,
)
from networth.services.identity.oidc import OIDCIdentityProvider, OIDCProviderConfig

__all__ = [
    "AuthenticatedIdentity",
    "IdentityProvider",
    "BuiltinIdentityProvider",
    "OIDCIdentityProvider",
    "OIDCProviderConfig",
    "IdentityProviderChain",
    "build_chain",
    "get_chain",
    "reset_chain",
]
