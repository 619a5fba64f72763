"""Repository for CustomRole and its RolePermission rows."""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import func
from sqlmodel import select

from src.agrogate.models import CustomRole, RolePermission, User
from src.agrogate.repositories.base import BaseRepository


class CustomRoleRepository(BaseRepository[CustomRole]):
    model = CustomRole

    async def get_in_tenant(self, tenant_id: UUID, role_id: UUID) -> CustomRole | None:
        result = await self.session.execute(
            select(CustomRole).where(CustomRole.id == role_id, CustomRole.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def get_by_name(
        self, tenant_id: UUID, name: str, exclude_id: UUID | None = None
    ) -> CustomRole | None:
        """Find a role by name in a tenant. Inactive roles still hold their name."""
        query = select(CustomRole).where(CustomRole.tenant_id == tenant_id, CustomRole.name == name)
        if exclude_id is not None:
            query = query.where(CustomRole.id != exclude_id)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def list_active(self, tenant_id: UUID) -> Sequence[CustomRole]:
        result = await self.session.execute(
            select(CustomRole)
            .where(CustomRole.tenant_id == tenant_id, CustomRole.is_active == True)  # noqa: E712
            .order_by(CustomRole.name)
        )
        return result.scalars().all()

    async def count_users(self, role_ids: Sequence[UUID]) -> dict[UUID, int]:
        if not role_ids:
            return {}
        result = await self.session.execute(
            select(User.custom_role_id, func.count())
            .where(User.custom_role_id.in_(role_ids))  # type: ignore[union-attr]
            .group_by(User.custom_role_id)
        )
        return {role_id: int(count) for role_id, count in result.all()}

    async def list_permissions(self, role_id: UUID) -> Sequence[RolePermission]:
        result = await self.session.execute(
            select(RolePermission).where(RolePermission.custom_role_id == role_id)
        )
        return result.scalars().all()

    async def list_permissions_for(
        self, role_ids: Sequence[UUID]
    ) -> dict[UUID, list[RolePermission]]:
        grouped: dict[UUID, list[RolePermission]] = {role_id: [] for role_id in role_ids}
        if not role_ids:
            return grouped
        result = await self.session.execute(
            select(RolePermission).where(RolePermission.custom_role_id.in_(role_ids))  # type: ignore[attr-defined]
        )
        for row in result.scalars().all():
            grouped[row.custom_role_id].append(row)
        return grouped

    async def allowed_permissions(self, role_id: UUID) -> set[str]:
        rows = await self.list_permissions(role_id)
        return {row.permission for row in rows if row.allowed}

    async def upsert_permission(
        self, role_id: UUID, module: str, action: str, allowed: bool
    ) -> RolePermission:
        result = await self.session.execute(
            select(RolePermission).where(
                RolePermission.custom_role_id == role_id,
                RolePermission.module == module,
                RolePermission.action == action,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = RolePermission(custom_role_id=role_id, module=module, action=action)
        row.allowed = allowed
        self.session.add(row)
        return row
