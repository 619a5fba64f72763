"""Google sign-in - CSRF state, identity linking, one-time exchange codes."""

from src.agrogate.core.cache import PREFIX_GOOGLE_EXCHANGE, PREFIX_GOOGLE_STATE, SingleUseTokenStore
from src.agrogate.core.config import Settings
from src.agrogate.core.db import TenantContextGate
from src.agrogate.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ProviderNotConfiguredError,
    TenantStateError,
    ValidationError,
)
from src.agrogate.core.identity_provider import IdentityAssertion, IdentityProvider
from src.agrogate.core.logging import get_logger
from src.agrogate.models import AuditAction, User
from src.agrogate.models.base import utc_now
from src.agrogate.repositories import TenantRepository, UserRepository
from src.agrogate.schemas.auth import AuthTokens
from src.agrogate.services.audit_service import AuditWriter
from src.agrogate.services.auth_service import AuthService

logger = get_logger(__name__)


class OAuthService:
    """Sign-in with Google for users that already exist locally.

    There is no auto-provisioning: the verified Google email must match a
    local user. The first successful sign-in links the Google subject id to
    that user; afterwards only the same subject is accepted.

    The callback never hands the token pair to the browser directly. It
    returns a short-lived exchange code that the frontend swaps for the
    tokens with a POST, keeping credentials out of redirect URLs.
    """

    def __init__(
        self,
        provider: IdentityProvider | None,
        auth: AuthService,
        tokens: SingleUseTokenStore,
        gate: TenantContextGate,
        audit: AuditWriter,
        settings: Settings,
    ):
        self.provider = provider
        self.auth = auth
        self.tokens = tokens
        self.gate = gate
        self.audit = audit
        self.settings = settings

    def _require_provider(self) -> IdentityProvider:
        if self.provider is None:
            raise ProviderNotConfiguredError("Google sign-in is not configured")
        return self.provider

    async def generate_auth_url(self) -> str:
        """Issue a CSRF state token and return Google's authorization URL.

        Raises:
            ProviderNotConfiguredError: Google credentials are not configured.
        """
        provider = self._require_provider()
        state = await self.tokens.issue(
            PREFIX_GOOGLE_STATE, "1", self.settings.oauth_state_expire_seconds
        )
        return provider.authorization_url(state)

    async def handle_callback(self, code: str, state: str) -> str:
        """Complete the Google redirect and return a one-time exchange code.

        Raises:
            ProviderNotConfiguredError: Google credentials are not configured.
            ValidationError: Missing, expired or already-used state.
            AuthenticationError: The identity could not be verified.
            AuthorizationError: Unregistered email, social login disabled, or a
                subject that does not match the linked account.
            TenantStateError: The account or organization is inactive.
        """
        provider = self._require_provider()
        if not state or await self.tokens.consume(PREFIX_GOOGLE_STATE, state) is None:
            raise ValidationError("Invalid or expired state")

        assertion = await provider.exchange_code(code)
        if not assertion.email_verified:
            logger.warning("Google sign-in rejected: email not verified")
            raise AuthenticationError("Google account email is not verified")

        user = await self._link_user(assertion)
        auth_tokens = await self.auth.create_session(user)
        exchange_code = await self.tokens.issue(
            PREFIX_GOOGLE_EXCHANGE,
            auth_tokens.model_dump_json(),
            self.settings.oauth_exchange_expire_seconds,
        )

        logger.info("Google sign-in successful", user_id=str(user.id))
        await self.audit.record(
            AuditAction.USER_LOGIN_GOOGLE, actor=user, target_type="user", target_id=user.id
        )
        return exchange_code

    async def _link_user(self, assertion: IdentityAssertion) -> User:
        async with self.gate.bypass_session() as session:
            users = UserRepository(session)
            user = await users.get_by_email(assertion.email)
            if user is None:
                raise AuthorizationError("Email is not registered")
            if not user.is_active:
                raise TenantStateError("Account is inactive")

            tenant = await TenantRepository(session).get_by_id(user.tenant_id)
            if tenant is not None and not tenant.allow_social_login:
                raise AuthorizationError("Social login is disabled for this organization")

            if user.provider_subject is None:
                holder = await users.get_by_provider_subject(assertion.subject)
                if holder is not None and holder.id != user.id:
                    logger.warning(
                        "Google subject already linked to another user", user_id=str(user.id)
                    )
                    raise AuthorizationError("Google account does not match this user")
                user.provider_subject = assertion.subject
                user.updated_at = utc_now()
                session.add(user)
                logger.info("Google account linked", user_id=str(user.id))
            elif user.provider_subject != assertion.subject:
                logger.warning("Google subject mismatch", user_id=str(user.id))
                raise AuthorizationError("Google account does not match this user")

        return user

    async def exchange_code(self, code: str) -> AuthTokens:
        """Swap a one-time exchange code for the session tokens.

        Raises:
            AuthenticationError: Unknown, expired or already-used code.
        """
        raw = await self.tokens.consume(PREFIX_GOOGLE_EXCHANGE, code)
        if raw is None:
            raise AuthenticationError("Invalid or expired code")
        return AuthTokens.model_validate_json(raw)
