"""Permission Resolver - effective permission sets with a Redis fast path."""

import json
from collections.abc import Iterable
from uuid import UUID

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from src.agrogate.core.db import TenantContextGate
from src.agrogate.core.logging import get_logger
from src.agrogate.core.permissions import allowed_subset, default_permissions, is_top_role
from src.agrogate.models import UserRole
from src.agrogate.repositories import CustomRoleRepository, UserRepository

logger = get_logger(__name__)

PREFIX_PERMISSIONS = "permissions"


def _cache_key(user_id: UUID | str) -> str:
    return f"{PREFIX_PERMISSIONS}:{user_id}"


class PermissionResolver:
    """Resolves a user's effective permissions.

    A user on an active custom role gets that role's allowed rows, clamped to
    the base role's current defaults; everyone else gets the default set of
    their static role. Results are cached per user for ``ttl_seconds`` and
    must be invalidated whenever the inputs change.
    """

    def __init__(self, gate: TenantContextGate, redis: Redis, ttl_seconds: int):
        self.gate = gate
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    async def resolve(self, user_id: UUID | str) -> frozenset[str]:
        cached = await self._read_cache(user_id)
        if cached is not None:
            return cached

        async def load(session: AsyncSession) -> frozenset[str]:
            return await self._load(session, UUID(str(user_id)))

        permissions = await self.gate.open_bypass_scope(load)
        await self._write_cache(user_id, permissions)
        return permissions

    async def _load(self, session: AsyncSession, user_id: UUID) -> frozenset[str]:
        user = await UserRepository(session).get_by_id(user_id)
        if user is None:
            return frozenset()

        if user.custom_role_id is not None:
            roles = CustomRoleRepository(session)
            custom_role = await roles.get_by_id(user.custom_role_id)
            if custom_role is not None and custom_role.is_active:
                granted = await roles.allowed_permissions(custom_role.id)
                # Rows are clamped at write time; clamp again in case the
                # default matrix shrank since the role was saved.
                return allowed_subset(custom_role.base_role, granted)

        return default_permissions(user.role)

    async def authorize(
        self, user_id: UUID | str, permission: str, role: UserRole | str | None = None
    ) -> bool:
        """Check one permission. The top-rank role passes without any lookup."""
        return await self.authorize_all(user_id, (permission,), role)

    async def authorize_all(
        self,
        user_id: UUID | str,
        permissions: Iterable[str],
        role: UserRole | str | None = None,
    ) -> bool:
        if role is not None and is_top_role(role):
            return True
        effective = await self.resolve(user_id)
        return all(p in effective for p in permissions)

    async def invalidate(self, user_id: UUID | str) -> None:
        await self.invalidate_many((user_id,))

    async def invalidate_many(self, user_ids: Iterable[UUID | str]) -> None:
        keys = [_cache_key(user_id) for user_id in user_ids]
        if not keys:
            return
        try:
            await self.redis.delete(*keys)
        except RedisError as e:
            logger.error("Failed to invalidate permission cache", keys=len(keys), error=str(e))

    async def invalidate_for_role(self, custom_role_id: UUID) -> int:
        """Drop the cached set of every user currently on ``custom_role_id``."""

        async def load(session: AsyncSession) -> list[UUID]:
            return list(await UserRepository(session).list_ids_by_custom_role(custom_role_id))

        user_ids = await self.gate.open_bypass_scope(load)
        await self.invalidate_many(user_ids)
        return len(user_ids)

    async def _read_cache(self, user_id: UUID | str) -> frozenset[str] | None:
        try:
            raw = await self.redis.get(_cache_key(user_id))
        except RedisError as e:
            logger.warning("Permission cache read failed", user_id=str(user_id), error=str(e))
            return None
        if raw is None:
            return None
        return frozenset(json.loads(raw))

    async def _write_cache(self, user_id: UUID | str, permissions: frozenset[str]) -> None:
        try:
            await self.redis.set(
                _cache_key(user_id), json.dumps(sorted(permissions)), ex=self.ttl_seconds
            )
        except RedisError as e:
            logger.warning("Permission cache write failed", user_id=str(user_id), error=str(e))
