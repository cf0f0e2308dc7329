"""FastAPI dependencies for authentication."""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from networth.services.identity.base import AuthenticatedIdentity
from networth.services.identity.chain import get_chain

# auto_error=False so a missing header reaches the chain and becomes Unauthenticated
security = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedIdentity:
    """
    Resolve the caller's identity from the bearer token.

    Delegates to the IdentityProviderChain, which accepts Firebase / OIDC
    RS256 tokens as well as the builtin HS256 tokens.

    Raises:
        Unauthenticated: missing, unknown or invalid token (rendered as 401)
    """
    token = credentials.credentials if credentials else None
    return await get_chain().authenticate(token)
