"""Base classes for identity providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar, Optional


@dataclass
class AuthenticatedIdentity:
    """Normalized identity returned by any identity provider after validation.

    ``user_id`` is the opaque id snapshots and accounts are keyed by. External
    providers own the user directory, so it is the provider's stable ``sub``
    claim; nothing is provisioned locally.
    """

    user_id: str
    provider: str           # 'builtin', 'firebase', 'oidc'
    subject: str            # IdP's stable sub claim
    email: str = ""
    raw_claims: dict = field(default_factory=dict)


class IdentityProvider(ABC):
    """Abstract base for all identity providers."""

    provider_name: ClassVar[str]

    @abstractmethod
    def can_handle(self, token: str) -> bool:
        """Fast pre-check: does this JWT look like it belongs to this provider?

        Only inspects the unverified header / iss claim.
        Must not raise; return False on any parse error.
        """

    @abstractmethod
    async def validate_token(self, token: str) -> Optional[AuthenticatedIdentity]:
        """Fully validate the token and return an authenticated identity.

        Returns ``None`` if the token cannot be validated (wrong key, wrong
        audience, expired, etc.).
        """
