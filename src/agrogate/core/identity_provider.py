"""Google OpenID Connect adapter.

Builds the authorization URL and turns an authorization code into a verified
identity assertion. Authlib's httpx client drives the OAuth2 exchange; the
returned id_token is verified with python-jose against Google's published
JWKS, the configured client id as audience, and Google's issuer.
"""

from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from jose import JWTError, jwt

from src.agrogate.core.config import Settings
from src.agrogate.core.exceptions import AuthenticationError, UnexpectedError
from src.agrogate.core.logging import get_logger

logger = get_logger(__name__)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 -- URL, not a password
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")
GOOGLE_SCOPE = "openid email profile"


@dataclass(frozen=True)
class IdentityAssertion:
    email: str
    email_verified: bool
    subject: str
    name: str | None = None


class IdentityProvider(Protocol):
    def authorization_url(self, state: str) -> str: ...

    async def exchange_code(self, code: str) -> IdentityAssertion: ...


class GoogleIdentityProvider:
    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, timeout: float = 10.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleIdentityProvider | None":
        """None when any of the three Google settings is missing."""
        if not settings.google_oauth_configured:
            return None
        return cls(
            client_id=settings.google_client_id,  # type: ignore[arg-type]
            client_secret=settings.google_client_secret,  # type: ignore[arg-type]
            redirect_uri=settings.google_redirect_uri,  # type: ignore[arg-type]
        )

    def _client(self) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=GOOGLE_SCOPE,
            redirect_uri=self.redirect_uri,
            timeout=self.timeout,
        )

    def authorization_url(self, state: str) -> str:
        url, _ = self._client().create_authorization_url(
            GOOGLE_AUTHORIZE_URL,
            state=state,
            access_type="offline",
            prompt="select_account",
        )
        return str(url)

    async def exchange_code(self, code: str) -> IdentityAssertion:
        """Exchange ``code`` for tokens and verify the returned id_token.

        Raises:
            AuthenticationError: Google rejected the code or the id_token failed verification.
            UnexpectedError: Google could not be reached.
        """
        try:
            async with self._client() as client:
                token = await client.fetch_token(GOOGLE_TOKEN_URL, code=code)
                jwks_response = await client.get(GOOGLE_JWKS_URL)
                jwks_response.raise_for_status()
                jwks = jwks_response.json()
        except OAuthError as e:
            logger.warning("Google code exchange rejected", error=str(e))
            raise AuthenticationError("Could not verify Google identity") from e
        except httpx.HTTPError as e:
            logger.error("Google code exchange failed", error=str(e))
            raise UnexpectedError("Google sign-in is temporarily unavailable") from e

        id_token = token.get("id_token")
        if not id_token:
            raise AuthenticationError("Could not verify Google identity")

        claims = self._verify_id_token(id_token, jwks, token.get("access_token"))
        email = claims.get("email")
        subject = claims.get("sub")
        if not email or not subject:
            raise AuthenticationError("Could not verify Google identity")

        return IdentityAssertion(
            email=email.lower(),
            email_verified=bool(claims.get("email_verified", False)),
            subject=str(subject),
            name=claims.get("name"),
        )

    def _verify_id_token(
        self, id_token: str, jwks: dict[str, Any], access_token: str | None
    ) -> dict[str, Any]:
        try:
            return jwt.decode(  # type: ignore[no-any-return]
                id_token,
                jwks,
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=GOOGLE_ISSUERS,
                access_token=access_token,
            )
        except JWTError as e:
            logger.warning("Google id_token verification failed", error=str(e))
            raise AuthenticationError("Could not verify Google identity") from e
