"""Tests for the Google adapter (src/agrogate/core/identity_provider.py)."""

import time
from typing import Any
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt

from src.agrogate.core.config import Settings
from src.agrogate.core.exceptions import AuthenticationError, UnexpectedError
from src.agrogate.core.identity_provider import GOOGLE_JWKS_URL, GoogleIdentityProvider

pytestmark = pytest.mark.unit


class TestFromSettings:
    def test_none_when_not_configured(self, settings: Settings):
        assert GoogleIdentityProvider.from_settings(
            settings.model_copy(update={"google_client_id": None})
        ) is None

    def test_built_when_all_settings_present(self, settings: Settings):
        configured = settings.model_copy(
            update={
                "google_client_id": "client-id",
                "google_client_secret": "client-secret",
                "google_redirect_uri": "http://localhost:8000/api/v1/auth/google/callback",
            }
        )
        provider = GoogleIdentityProvider.from_settings(configured)
        assert provider is not None
        assert provider.client_id == "client-id"


class TestAuthorizationUrl:
    def test_carries_state_and_scopes(self):
        provider = GoogleIdentityProvider(
            "client-id", "client-secret", "http://localhost:8000/callback"
        )

        url = provider.authorization_url("state-123")

        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        assert parsed.netloc == "accounts.google.com"
        assert query["state"] == ["state-123"]
        assert query["client_id"] == ["client-id"]
        assert query["response_type"] == ["code"]
        assert set(query["scope"][0].split()) == {"openid", "email", "profile"}
        assert query["prompt"] == ["select_account"]


KEY_ID = "test-key"


@pytest.fixture(scope="module")
def signing_key() -> tuple[bytes, dict[str, Any]]:
    """RSA private key (PEM) and the matching public JWKS document."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    public_jwk = jwk.construct(public_pem, "RS256").to_dict()
    public_jwk["kid"] = KEY_ID
    return private_pem, {"keys": [public_jwk]}


@pytest.fixture
def provider() -> GoogleIdentityProvider:
    return GoogleIdentityProvider("client-id", "client-secret", "http://localhost:8000/callback")


def _id_token(private_pem: bytes, **overrides: Any) -> str:
    now = int(time.time())
    claims = {
        "iss": "https://accounts.google.com",
        "aud": "client-id",
        "sub": "google-sub-1",
        "email": "Ana@Gmail.com",
        "email_verified": True,
        "name": "Ana",
        "iat": now,
        "exp": now + 300,
    }
    claims.update(overrides)
    return jwt.encode(claims, private_pem, algorithm="RS256", headers={"kid": KEY_ID})


def _google(
    jwks: dict[str, Any], token: dict[str, Any] | None = None, **fetch_kwargs: Any
) -> tuple[Any, Any]:
    """Patch the token and JWKS requests made through the authlib client."""
    fetch_token = AsyncMock(return_value=token, **fetch_kwargs)
    get = AsyncMock(
        return_value=httpx.Response(
            200, json=jwks, request=httpx.Request("GET", GOOGLE_JWKS_URL)
        )
    )
    return (
        patch.object(AsyncOAuth2Client, "fetch_token", fetch_token),
        patch.object(AsyncOAuth2Client, "get", get),
    )


class TestExchangeCode:
    async def test_verified_token_becomes_an_assertion(self, provider, signing_key):
        private_pem, jwks = signing_key
        fetch, get = _google(jwks, {"id_token": _id_token(private_pem)})

        with fetch, get:
            assertion = await provider.exchange_code("code-1")

        assert assertion.email == "ana@gmail.com"
        assert assertion.email_verified is True
        assert assertion.subject == "google-sub-1"
        assert assertion.name == "Ana"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"aud": "someone-elses-client"},
            {"iss": "https://accounts.evil.test"},
            {"exp": int(time.time()) - 60},
        ],
        ids=["wrong-audience", "wrong-issuer", "expired"],
    )
    async def test_rejected_claims(self, provider, signing_key, overrides: dict[str, Any]):
        private_pem, jwks = signing_key
        fetch, get = _google(jwks, {"id_token": _id_token(private_pem, **overrides)})

        with fetch, get, pytest.raises(AuthenticationError) as exc_info:
            await provider.exchange_code("code-1")
        assert exc_info.value.status_code == 401

    async def test_token_signed_by_another_key(self, provider, signing_key):
        _, jwks = signing_key
        other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        other_pem = other_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        fetch, get = _google(jwks, {"id_token": _id_token(other_pem)})

        with fetch, get, pytest.raises(AuthenticationError):
            await provider.exchange_code("code-1")

    async def test_missing_id_token(self, provider, signing_key):
        _, jwks = signing_key
        fetch, get = _google(jwks, {"access_token": "ya29.token"})

        with fetch, get, pytest.raises(AuthenticationError):
            await provider.exchange_code("code-1")

    async def test_missing_email_claim(self, provider, signing_key):
        private_pem, jwks = signing_key
        fetch, get = _google(jwks, {"id_token": _id_token(private_pem, email=None)})

        with fetch, get, pytest.raises(AuthenticationError):
            await provider.exchange_code("code-1")

    async def test_rejected_code_is_401(self, provider, signing_key):
        _, jwks = signing_key
        fetch, get = _google(jwks, side_effect=OAuthError(error="invalid_grant"))

        with fetch, get, pytest.raises(AuthenticationError) as exc_info:
            await provider.exchange_code("code-1")
        assert exc_info.value.status_code == 401

    async def test_unreachable_google_is_500(self, provider, signing_key):
        _, jwks = signing_key
        fetch, get = _google(jwks, side_effect=httpx.ConnectError("Connection refused"))

        with fetch, get, pytest.raises(UnexpectedError) as exc_info:
            await provider.exchange_code("code-1")
        assert exc_info.value.status_code == 500
