"""Composition root.

Builds the process-wide store clients and the services that share them,
once, at application startup. Nothing else in the codebase constructs an
engine or a Redis client.
"""

from dataclasses import dataclass

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from src.agrogate.core.cache import SessionLedger, SingleUseTokenStore
from src.agrogate.core.config import Settings
from src.agrogate.core.db import TenantContextGate, create_engine_from_settings, create_session_factory
from src.agrogate.core.identity_provider import GoogleIdentityProvider, IdentityProvider
from src.agrogate.core.logging import get_logger
from src.agrogate.core.notifications import MailSender
from src.agrogate.core.rate_limit import LoginGuard
from src.agrogate.core.redis import close_redis, create_redis
from src.agrogate.services.audit_service import AuditWriter
from src.agrogate.services.auth_service import AuthService
from src.agrogate.services.oauth_service import OAuthService
from src.agrogate.services.org_user_service import OrgUserService
from src.agrogate.services.permission_service import PermissionResolver
from src.agrogate.services.role_service import CustomRoleService

logger = get_logger(__name__)


@dataclass
class AppContainer:
    settings: Settings
    engine: AsyncEngine
    redis: Redis
    gate: TenantContextGate
    ledger: SessionLedger
    tokens: SingleUseTokenStore
    guard: LoginGuard
    mailer: MailSender
    audit: AuditWriter
    permissions: PermissionResolver
    auth: AuthService
    oauth: OAuthService
    roles: CustomRoleService
    org_users: OrgUserService

    async def aclose(self) -> None:
        self.mailer.shutdown()
        await close_redis(self.redis)
        await self.engine.dispose()
        logger.info("Application container closed")


def build_container(
    settings: Settings,
    *,
    engine: AsyncEngine | None = None,
    redis: Redis | None = None,
    identity_provider: IdentityProvider | None = None,
    mailer: MailSender | None = None,
) -> AppContainer:
    """Wire every service. Arguments override the settings-derived defaults."""
    engine = engine or create_engine_from_settings(settings)
    redis = redis or create_redis(settings)
    provider = identity_provider or GoogleIdentityProvider.from_settings(settings)
    mailer = mailer or MailSender(settings)

    gate = TenantContextGate(create_session_factory(engine))
    ledger = SessionLedger(redis, settings.refresh_token_expire_seconds)
    tokens = SingleUseTokenStore(redis)
    guard = LoginGuard.from_settings(redis, settings)
    audit = AuditWriter(gate)
    permissions = PermissionResolver(gate, redis, settings.permission_cache_ttl_seconds)
    auth = AuthService(gate, ledger, tokens, guard, mailer, audit, settings)

    return AppContainer(
        settings=settings,
        engine=engine,
        redis=redis,
        gate=gate,
        ledger=ledger,
        tokens=tokens,
        guard=guard,
        mailer=mailer,
        audit=audit,
        permissions=permissions,
        auth=auth,
        oauth=OAuthService(provider, auth, tokens, gate, audit, settings),
        roles=CustomRoleService(gate, permissions, audit),
        org_users=OrgUserService(gate, auth, permissions, tokens, mailer, audit, settings),
    )
