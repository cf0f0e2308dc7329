"""Unit tests for the identity provider chain."""

from datetime import timedelta
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from jose import jwt as jose_jwt

from networth.core.exceptions import Unauthenticated
from networth.core.security import create_access_token
from networth.services.identity.base import AuthenticatedIdentity, IdentityProvider
from networth.services.identity.builtin import BuiltinIdentityProvider
from networth.services.identity.chain import (
    IdentityProviderChain,
    build_chain,
    get_chain,
    reset_chain,
)
from networth.services.identity.oidc import (
    FIREBASE_JWKS_URI,
    OIDCIdentityProvider,
    OIDCProviderConfig,
    firebase_config,
)


def _make_identity(user_id="uid-123"):
    return AuthenticatedIdentity(
        user_id=user_id,
        provider="builtin",
        subject=user_id,
        email="test@example.com",
        raw_claims={"type": "access", "sub": user_id},
    )


# ---------------------------------------------------------------------------
# IdentityProviderChain
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestIdentityProviderChain:
    """Test the chain orchestrator."""

    @pytest.mark.asyncio
    async def test_first_matching_provider_wins(self):
        """Chain returns identity from the first provider that can_handle the token."""
        provider_a = Mock(spec=IdentityProvider)
        provider_a.can_handle = Mock(return_value=False)

        provider_b = Mock(spec=IdentityProvider)
        provider_b.can_handle = Mock(return_value=True)
        provider_b.validate_token = AsyncMock(return_value=_make_identity("uid-b"))

        chain = IdentityProviderChain([provider_a, provider_b])
        identity = await chain.authenticate("token")

        assert identity.user_id == "uid-b"
        provider_a.validate_token.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_token_raises(self):
        chain = IdentityProviderChain([BuiltinIdentityProvider()])
        with pytest.raises(Unauthenticated):
            await chain.authenticate(None)

    @pytest.mark.asyncio
    async def test_no_matching_provider_raises(self):
        provider = Mock(spec=IdentityProvider)
        provider.can_handle = Mock(return_value=False)

        chain = IdentityProviderChain([provider])
        with pytest.raises(Unauthenticated):
            await chain.authenticate("token")

    @pytest.mark.asyncio
    async def test_provider_claims_but_rejects_raises(self):
        """A claiming provider that rejects the token ends the search."""
        rejecting = Mock(spec=IdentityProvider)
        rejecting.can_handle = Mock(return_value=True)
        rejecting.validate_token = AsyncMock(return_value=None)
        later = Mock(spec=IdentityProvider)
        later.can_handle = Mock(return_value=True)

        chain = IdentityProviderChain([rejecting, later])
        with pytest.raises(Unauthenticated):
            await chain.authenticate("token")

        later.validate_token.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_chain_raises(self):
        with pytest.raises(Unauthenticated):
            await IdentityProviderChain([]).authenticate("token")


# ---------------------------------------------------------------------------
# BuiltinIdentityProvider
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestBuiltinIdentityProvider:
    """Test the app-native HS256 provider."""

    @pytest.fixture
    def provider(self):
        return BuiltinIdentityProvider()

    def test_can_handle_hs256_token(self, provider):
        token = create_access_token({"sub": "uid-1"})
        assert provider.can_handle(token) is True

    def test_cannot_handle_garbage(self, provider):
        assert provider.can_handle("not-a-jwt") is False
        assert provider.can_handle("") is False

    @pytest.mark.asyncio
    async def test_validates_access_token(self, provider):
        token = create_access_token({"sub": "uid-1", "email": "test@example.com"})

        identity = await provider.validate_token(token)

        assert identity.user_id == "uid-1"
        assert identity.provider == "builtin"
        assert identity.email == "test@example.com"

    @pytest.mark.asyncio
    async def test_rejects_expired_token(self, provider):
        token = create_access_token({"sub": "uid-1"}, expires_delta=timedelta(minutes=-5))
        assert await provider.validate_token(token) is None

    @pytest.mark.asyncio
    async def test_rejects_wrong_token_type(self, provider):
        from networth.config import settings

        token = jose_jwt.encode(
            {"sub": "uid-1", "type": "refresh"}, settings.SECRET_KEY, algorithm="HS256"
        )
        assert await provider.validate_token(token) is None

    @pytest.mark.asyncio
    async def test_rejects_token_without_subject(self, provider):
        token = create_access_token({"email": "x@example.com"})
        assert await provider.validate_token(token) is None

    @pytest.mark.asyncio
    async def test_rejects_invalid_token(self, provider):
        assert await provider.validate_token("garbage.token.here") is None


# ---------------------------------------------------------------------------
# OIDCIdentityProvider (Firebase)
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestFirebaseProvider:
    """Test Firebase ID token handling without network access."""

    @pytest.fixture
    def provider(self):
        return OIDCIdentityProvider(firebase_config("pesa-demo"))

    def test_firebase_config(self):
        config = firebase_config("pesa-demo")
        assert config.issuer == "https://securetoken.google.com/pesa-demo"
        assert config.client_id == "pesa-demo"
        assert config.resolved_jwks_uri == FIREBASE_JWKS_URI

    def test_default_jwks_uri_from_issuer(self):
        config = OIDCProviderConfig(provider_name="oidc", issuer="https://id.example.com/", client_id="c")
        assert config.resolved_jwks_uri == "https://id.example.com/.well-known/jwks.json"

    def test_can_handle_matches_issuer(self, provider):
        token = jose_jwt.encode(
            {"iss": "https://securetoken.google.com/pesa-demo", "sub": "u"}, "k", algorithm="HS256"
        )
        assert provider.can_handle(token) is True

    def test_cannot_handle_other_issuer(self, provider):
        token = jose_jwt.encode({"iss": "https://elsewhere", "sub": "u"}, "k", algorithm="HS256")
        assert provider.can_handle(token) is False
        assert provider.can_handle("not-a-jwt") is False

    @pytest.mark.asyncio
    async def test_jwks_fetch_failure_rejects_token(self, provider):
        token = jose_jwt.encode(
            {"iss": "https://securetoken.google.com/pesa-demo", "sub": "u"}, "k", algorithm="HS256"
        )
        with patch.object(
            provider, "_get_jwks", AsyncMock(side_effect=httpx.ConnectError("unreachable"))
        ):
            assert await provider.validate_token(token) is None

    @pytest.mark.asyncio
    async def test_wrong_algorithm_rejects_token(self, provider):
        token = jose_jwt.encode(
            {"iss": "https://securetoken.google.com/pesa-demo", "sub": "u"}, "k", algorithm="HS256"
        )
        with patch.object(provider, "_get_jwks", AsyncMock(return_value={"keys": []})):
            assert await provider.validate_token(token) is None


# ---------------------------------------------------------------------------
# build_chain / get_chain / reset_chain
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestBuildChain:
    """Test chain factory and singleton helpers."""

    def setup_method(self):
        reset_chain()

    def teardown_method(self):
        reset_chain()

    def test_get_chain_returns_same_instance(self):
        assert get_chain() is get_chain()

    def test_reset_chain_clears_singleton(self):
        chain1 = get_chain()
        reset_chain()
        assert get_chain() is not chain1

    def test_firebase_then_builtin(self, monkeypatch):
        from networth.services.identity import chain as chain_module

        monkeypatch.setattr(chain_module.settings, "IDENTITY_PROVIDER_CHAIN", ["firebase", "builtin"])
        monkeypatch.setattr(chain_module.settings, "IDP_FIREBASE_PROJECT_ID", "pesa-demo")

        providers = build_chain().providers

        assert isinstance(providers[0], OIDCIdentityProvider)
        assert providers[0].provider_name == "firebase"
        assert isinstance(providers[1], BuiltinIdentityProvider)

    def test_firebase_without_project_is_skipped(self, monkeypatch):
        from networth.services.identity import chain as chain_module

        monkeypatch.setattr(chain_module.settings, "IDENTITY_PROVIDER_CHAIN", ["firebase", "builtin"])
        monkeypatch.setattr(chain_module.settings, "IDP_FIREBASE_PROJECT_ID", None)

        providers = build_chain().providers

        assert len(providers) == 1
        assert isinstance(providers[0], BuiltinIdentityProvider)

    def test_unknown_provider_name_is_skipped(self, monkeypatch):
        from networth.services.identity import chain as chain_module

        monkeypatch.setattr(
            chain_module.settings, "IDENTITY_PROVIDER_CHAIN", ["nonexistent_provider", "builtin"]
        )

        providers = build_chain().providers

        assert len(providers) == 1
        assert isinstance(providers[0], BuiltinIdentityProvider)

    def test_empty_provider_list_falls_back_to_builtin(self, monkeypatch):
        from networth.services.identity import chain as chain_module

        monkeypatch.setattr(chain_module.settings, "IDENTITY_PROVIDER_CHAIN", [])

        providers = build_chain().providers

        assert len(providers) == 1
        assert isinstance(providers[0], BuiltinIdentityProvider)
