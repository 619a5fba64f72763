"""Organization user administration - invites, role and status changes, seat usage."""

import math
from uuid import UUID

from src.agrogate.core.cache import PREFIX_ORG_INVITE, SingleUseTokenStore
from src.agrogate.core.config import Settings
from src.agrogate.core.db import TenantContextGate
from src.agrogate.core.exceptions import (
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from src.agrogate.core.logging import get_logger
from src.agrogate.core.notifications import MailSender, build_invite_email
from src.agrogate.core.permissions import ASSIGNABLE_BASE_ROLES
from src.agrogate.models import AuditAction, Tenant, User, UserRole, UserStatus
from src.agrogate.models.base import utc_now
from src.agrogate.repositories import TenantRepository, UserRepository
from src.agrogate.schemas.user import SeatUsage
from src.agrogate.services.audit_service import AuditWriter
from src.agrogate.services.auth_service import AuthService
from src.agrogate.services.permission_service import PermissionResolver

logger = get_logger(__name__)

SEAT_WARNING_PERCENTAGE = 80


def _require_assignable(role: UserRole | str) -> UserRole:
    value = UserRole(role)
    if value not in ASSIGNABLE_BASE_ROLES:
        allowed = ", ".join(r.value for r in ASSIGNABLE_BASE_ROLES)
        raise ValidationError(f"Invalid role. Allowed roles: {allowed}")
    return value


class OrgUserService:
    """Admin-side credential lifecycle for the members of one organization.

    Role and status changes end the target user's sessions and drop their
    cached permissions, so the change takes effect on the next request.
    """

    def __init__(
        self,
        gate: TenantContextGate,
        auth: AuthService,
        resolver: PermissionResolver,
        tokens: SingleUseTokenStore,
        mailer: MailSender,
        audit: AuditWriter,
        settings: Settings,
    ):
        self.gate = gate
        self.auth = auth
        self.resolver = resolver
        self.tokens = tokens
        self.mailer = mailer
        self.audit = audit
        self.settings = settings

    async def invite_user(
        self,
        tenant_id: UUID,
        email: str,
        name: str,
        role: UserRole | str,
        actor: User | None = None,
    ) -> User:
        """Create an active user without a password and mail them an invite link.

        Raises:
            ValidationError: ``role`` is not assignable.
            NotFoundError: Unknown organization.
            BusinessRuleError: Organization inactive, or its seat limit reached.
            ConflictError: The email is already registered (in any organization).
        """
        assigned = _require_assignable(role)

        # Emails are unique across organizations, so this runs unfiltered
        async with self.gate.bypass_session() as session:
            tenant = await TenantRepository(session).get_by_id(tenant_id)
            if tenant is None:
                raise NotFoundError("Organization not found")
            if not tenant.is_active:
                raise BusinessRuleError("Organization is not active")

            users = UserRepository(session)
            if await users.count_by_tenant(tenant_id) >= tenant.max_users:
                raise BusinessRuleError("User limit reached")
            if await users.exists_by_email(email):
                raise ConflictError("Email already registered")

            user = await users.save(
                User(
                    tenant_id=tenant_id,
                    email=email.strip().lower(),
                    name=name,
                    role=assigned.value,
                    status=UserStatus.ACTIVE.value,
                )
            )

        await self._send_invite(user, tenant)
        logger.info("Org user invited", user_id=str(user.id), tenant_id=str(tenant_id))
        await self.audit.record(
            AuditAction.USER_INVITE,
            actor=actor,
            tenant_id=tenant_id,
            target_type="user",
            target_id=user.id,
            metadata={"role": assigned.value},
        )
        return user

    async def _send_invite(self, user: User, tenant: Tenant) -> None:
        ttl = self.settings.org_invite_expire_seconds
        token = await self.tokens.issue(PREFIX_ORG_INVITE, str(user.id), ttl)
        invite_url = f"{self.settings.app_url}/accept-invite?token={token}"
        subject, text, html = build_invite_email(
            tenant.name, user.name, invite_url, expires_days=max(1, ttl // 86400)
        )
        await self.mailer.send(user.email, subject, text, html)

    async def _get_member(self, tenant_id: UUID, user_id: UUID) -> tuple[User, Tenant]:
        async with self.gate.tenant_session(tenant_id) as session:
            user = await UserRepository(session).get_in_tenant(tenant_id, user_id)
            if user is None:
                raise NotFoundError("User not found in this organization")
            tenant = await TenantRepository(session).get_by_id(tenant_id)
            if tenant is None:
                raise NotFoundError("Organization not found")
        return user, tenant

    async def resend_invite(self, tenant_id: UUID, user_id: UUID) -> None:
        """Mail a fresh invite link to a user who has not set a password yet.

        Raises:
            NotFoundError: No such user in this organization.
            BusinessRuleError: The user already set a password.
        """
        user, tenant = await self._get_member(tenant_id, user_id)
        if user.password_hash is not None:
            raise BusinessRuleError("User has already set a password")
        await self._send_invite(user, tenant)
        logger.info("Org user invite resent", user_id=str(user_id), tenant_id=str(tenant_id))

    async def send_password_reset(self, tenant_id: UUID, user_id: UUID) -> None:
        """Admin-triggered reset mail for a member.

        Raises:
            NotFoundError: No such user in this organization.
        """
        user, _ = await self._get_member(tenant_id, user_id)
        await self.auth.send_reset_link(user)

    async def change_role(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        user_id: UUID,
        role: UserRole | str,
        actor: User | None = None,
    ) -> User:
        """Change a member's base role.

        Raises:
            BusinessRuleError: The actor targets themself.
            ValidationError: ``role`` is not assignable.
            NotFoundError: No such user in this organization.
        """
        if actor_id == user_id:
            raise BusinessRuleError("You cannot change your own role")
        assigned = _require_assignable(role)

        async with self.gate.tenant_session(tenant_id) as session:
            user = await UserRepository(session).get_in_tenant(tenant_id, user_id)
            if user is None:
                raise NotFoundError("User not found in this organization")
            previous = user.role
            user.role = assigned.value
            user.updated_at = utc_now()
            session.add(user)

        if previous != assigned.value:
            await self.auth.invalidate_all_sessions(user_id)
            await self.resolver.invalidate(user_id)
            await self.audit.record(
                AuditAction.USER_ROLE_CHANGE,
                actor=actor,
                tenant_id=tenant_id,
                target_type="user",
                target_id=user_id,
                metadata={"from": previous, "to": assigned.value},
            )
        return user

    async def set_status(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        user_id: UUID,
        status: UserStatus | str,
        actor: User | None = None,
    ) -> User:
        """Activate or deactivate a member. Deactivation ends their sessions.

        Raises:
            BusinessRuleError: The actor tries to deactivate themself.
            NotFoundError: No such user in this organization.
        """
        new_status = UserStatus(status)
        if actor_id == user_id and new_status is UserStatus.INACTIVE:
            raise BusinessRuleError("You cannot deactivate your own account")

        async with self.gate.tenant_session(tenant_id) as session:
            user = await UserRepository(session).get_in_tenant(tenant_id, user_id)
            if user is None:
                raise NotFoundError("User not found in this organization")
            user.status = new_status.value
            user.updated_at = utc_now()
            session.add(user)

        if new_status is UserStatus.INACTIVE:
            await self.auth.invalidate_all_sessions(user_id)
            await self.resolver.invalidate(user_id)

        logger.info("Org user status updated", user_id=str(user_id), status=new_status.value)
        await self.audit.record(
            AuditAction.USER_STATUS_CHANGE,
            actor=actor,
            tenant_id=tenant_id,
            target_type="user",
            target_id=user_id,
            metadata={"status": new_status.value},
        )
        return user

    async def seat_usage(self, tenant_id: UUID) -> SeatUsage:
        """Seats used against the organization's user limit.

        Raises:
            NotFoundError: Unknown organization.
        """
        async with self.gate.tenant_session(tenant_id) as session:
            tenant = await TenantRepository(session).get_by_id(tenant_id)
            if tenant is None:
                raise NotFoundError("Organization not found")
            current = await UserRepository(session).count_by_tenant(tenant_id)

        maximum = tenant.max_users
        percentage = math.floor(current * 100 / maximum + 0.5) if maximum > 0 else 100
        return SeatUsage(
            current=current,
            max=maximum,
            percentage=percentage,
            warning=percentage >= SEAT_WARNING_PERCENTAGE,
            blocked=percentage >= 100,
        )
