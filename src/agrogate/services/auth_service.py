"""Authentication service - login, session issuance, refresh rotation, password flows."""

from datetime import timedelta
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from src.agrogate.core.cache import (
    PREFIX_ORG_INVITE,
    PREFIX_PASSWORD_RESET,
    SessionLedger,
    SingleUseTokenStore,
)
from src.agrogate.core.config import Settings
from src.agrogate.core.db import TenantContextGate
from src.agrogate.core.exceptions import AuthenticationError, TenantStateError
from src.agrogate.core.logging import get_logger
from src.agrogate.core.notifications import MailSender, build_password_reset_email
from src.agrogate.core.permissions import is_top_role
from src.agrogate.core.rate_limit import LoginGuard
from src.agrogate.core.security import (
    ACCESS_TOKEN_TYPE,
    DUMMY_PASSWORD_HASH,
    create_access_token,
    decode_token,
    generate_opaque_token,
    hash_password,
    verify_password,
)
from src.agrogate.models import AuditAction, User
from src.agrogate.models.base import utc_now
from src.agrogate.repositories import TenantRepository, UserRepository
from src.agrogate.schemas.auth import AuthTokens, TokenClaims
from src.agrogate.services.audit_service import AuditWriter

logger = get_logger(__name__)


class AuthService:
    """Authentication flows over the session ledger and single-use tokens.

    Access tokens are stateless JWTs. Refresh tokens are opaque and live only
    in the ledger; each one is consumed on use and replaced (rotation), so a
    leaked token that has already been rotated is dead.

    Single-use tokens are consumed before the effect they authorize is
    applied. If the effect then fails (database down mid-reset), the token
    is gone and the user must request a new one.
    """

    def __init__(
        self,
        gate: TenantContextGate,
        ledger: SessionLedger,
        tokens: SingleUseTokenStore,
        guard: LoginGuard,
        mailer: MailSender,
        audit: AuditWriter,
        settings: Settings,
    ):
        self.gate = gate
        self.ledger = ledger
        self.tokens = tokens
        self.guard = guard
        self.mailer = mailer
        self.audit = audit
        self.settings = settings

    async def _get_user(self, user_id: UUID | str) -> User | None:
        async with self.gate.bypass_session() as session:
            return await UserRepository(session).get_by_id(UUID(str(user_id)))

    async def login(self, email: str, password: str, ip: str | None = None) -> AuthTokens:
        """Authenticate with email and password.

        Raises:
            RateLimitedError: Too many attempts from ``ip``, or the account is locked.
            AuthenticationError: Unknown email, no password set yet, or wrong password.
                The wording is identical in every case.
            TenantStateError: The account or its organization is inactive.
        """
        await self.guard.check_ip(ip)
        await self.guard.check_account(email)

        async with self.gate.bypass_session() as session:
            user = await UserRepository(session).get_by_email(email)

        # Always verify against some hash so a lookup miss costs the same as a wrong password
        password_hash = user.password_hash if user and user.password_hash else DUMMY_PASSWORD_HASH
        password_valid = verify_password(password, password_hash)

        if user is None or user.password_hash is None or not password_valid:
            await self.guard.record_failure(email)
            raise AuthenticationError("Invalid credentials")

        if not user.is_active:
            raise TenantStateError("Account is inactive")

        tokens = await self.create_session(user)
        await self.guard.clear_failures(email)
        await self.audit.record(
            AuditAction.USER_LOGIN, actor=user, target_type="user", target_id=user.id
        )
        return tokens

    async def create_session(self, user: User) -> AuthTokens:
        """Issue an access/refresh pair for an already-authenticated user.

        Raises:
            TenantStateError: The user's organization is not active (top role exempt).
        """
        single_session = False
        if not is_top_role(user.role):
            async with self.gate.bypass_session() as session:
                tenant = await TenantRepository(session).get_by_id(user.tenant_id)
            if tenant is None or not tenant.is_active:
                logger.info(
                    "Session refused for inactive organization",
                    user_id=str(user.id),
                    tenant_id=str(user.tenant_id),
                )
                raise TenantStateError("Organization is not active")
            single_session = tenant.single_session

        if single_session:
            await self.ledger.revoke_all(str(user.id))

        access_token = create_access_token(
            user.id,
            user.email,
            user.role,
            user.tenant_id,
            expires_delta=timedelta(minutes=self.settings.access_token_expire_minutes),
        )
        refresh_token = generate_opaque_token()
        await self.ledger.register(refresh_token, str(user.id))

        async with self.gate.bypass_session() as session:
            stored = await UserRepository(session).get_by_id(user.id)
            if stored is not None:
                stored.last_login_at = utc_now()
                session.add(stored)

        logger.info("Session created", user_id=str(user.id), single_session=single_session)
        return AuthTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.settings.access_token_expire_minutes * 60,
        )

    async def refresh(self, refresh_token: str) -> AuthTokens:
        """Rotate a refresh token.

        The presented token is consumed first, so a replay (or the loser of a
        concurrent race on the same token) always fails.

        Raises:
            AuthenticationError: Unknown, expired or already-used token.
            TenantStateError: The account or its organization is no longer active.
        """
        user_id = await self.ledger.consume(refresh_token)
        if user_id is None:
            raise AuthenticationError("Invalid or expired refresh token")

        user = await self._get_user(user_id)
        if user is None:
            raise AuthenticationError("Invalid or expired refresh token")
        if not user.is_active:
            raise TenantStateError("Account is inactive")

        return await self.create_session(user)

    async def logout(self, refresh_token: str) -> None:
        """Revoke one refresh token. Unknown tokens are ignored."""
        user_id = await self.ledger.consume(refresh_token)
        if user_id is not None:
            logger.info("User logged out", user_id=user_id)
            await self.audit.record(
                AuditAction.USER_LOGOUT, target_type="user", target_id=UUID(user_id)
            )

    async def invalidate_all_sessions(self, user_id: UUID | str) -> int:
        return await self.ledger.revoke_all(str(user_id))

    def authenticate(self, access_token: str) -> TokenClaims:
        """Verify an access token without touching any store.

        Raises:
            AuthenticationError: Bad signature, expired, wrong token type or malformed claims.
        """
        payload = decode_token(access_token)
        if payload is None or payload.get("type") != ACCESS_TOKEN_TYPE:
            raise AuthenticationError("Invalid or expired token")
        try:
            return TokenClaims.model_validate(payload)
        except PydanticValidationError as e:
            raise AuthenticationError("Invalid or expired token") from e

    async def request_password_reset(self, email: str) -> None:
        """Mail a reset link. Silent for unknown or inactive accounts."""
        async with self.gate.bypass_session() as session:
            user = await UserRepository(session).get_by_email(email)

        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown or inactive account")
            return

        await self.send_reset_link(user)

    async def send_reset_link(self, user: User) -> None:
        ttl = self.settings.password_reset_expire_seconds
        token = await self.tokens.issue(PREFIX_PASSWORD_RESET, str(user.id), ttl)
        reset_url = f"{self.settings.app_url}/reset-password?token={token}"
        subject, text, html = build_password_reset_email(user.name, reset_url, ttl // 60)
        await self.mailer.send(user.email, subject, text, html)
        logger.info("Password reset link sent", user_id=str(user.id))

    async def reset_password(self, token: str, password: str) -> None:
        """Set a new password from a reset token and end every existing session.

        Raises:
            AuthenticationError: Unknown, expired or already-used token.
        """
        user = await self._set_password_from_token(PREFIX_PASSWORD_RESET, token, password)
        await self.invalidate_all_sessions(user.id)
        logger.info("Password reset completed", user_id=str(user.id))
        await self.audit.record(
            AuditAction.PASSWORD_RESET, actor=user, target_type="user", target_id=user.id
        )

    async def accept_invite(self, token: str, password: str) -> AuthTokens:
        """Set the first password of an invited user and sign them in.

        Raises:
            AuthenticationError: Unknown, expired or already-used token.
            TenantStateError: The account or organization is inactive.
        """
        user = await self._set_password_from_token(
            PREFIX_ORG_INVITE, token, password, require_active=True
        )
        tokens = await self.create_session(user)
        logger.info("Invite accepted", user_id=str(user.id))
        await self.audit.record(
            AuditAction.INVITE_ACCEPT, actor=user, target_type="user", target_id=user.id
        )
        return tokens

    async def _set_password_from_token(
        self, prefix: str, token: str, password: str, *, require_active: bool = False
    ) -> User:
        user_id = await self.tokens.consume(prefix, token)
        if user_id is None:
            raise AuthenticationError("Invalid or expired token")

        password_hash = hash_password(password)
        async with self.gate.bypass_session() as session:
            user = await UserRepository(session).get_by_id(UUID(user_id))
            if user is None:
                raise AuthenticationError("Invalid or expired token")
            if require_active:
                await self._ensure_can_sign_in(session, user)
            user.password_hash = password_hash
            user.updated_at = utc_now()
            session.add(user)
        return user

    async def _ensure_can_sign_in(self, session: AsyncSession, user: User) -> None:
        if not user.is_active:
            raise TenantStateError("Account is inactive")
        if is_top_role(user.role):
            return
        tenant = await TenantRepository(session).get_by_id(user.tenant_id)
        if tenant is None or not tenant.is_active:
            raise TenantStateError("Organization is not active")
