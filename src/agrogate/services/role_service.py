"""Custom Role Manager - tenant-defined roles cloned from a base role."""

from collections.abc import Mapping, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.agrogate.core.db import TenantContextGate
from src.agrogate.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.agrogate.core.logging import get_logger
from src.agrogate.core.permissions import (
    ASSIGNABLE_BASE_ROLES,
    clamp_overrides,
    default_permissions,
    parse_permission,
)
from src.agrogate.models import AuditAction, CustomRole, RolePermission, User, UserRole
from src.agrogate.models.base import utc_now
from src.agrogate.repositories import CustomRoleRepository, UserRepository
from src.agrogate.schemas.role import CustomRoleDetail, CustomRoleRead
from src.agrogate.services.audit_service import AuditWriter
from src.agrogate.services.permission_service import PermissionResolver

logger = get_logger(__name__)


def _validate_permission_keys(permissions: Mapping[str, bool]) -> None:
    for permission in permissions:
        try:
            parse_permission(permission)
        except ValueError as e:
            raise ValidationError(str(e)) from e


def _build_detail(
    role: CustomRole, rows: Sequence[RolePermission], user_count: int
) -> CustomRoleDetail:
    matrix = {row.permission: row.allowed for row in rows}
    return CustomRoleDetail(
        id=role.id,
        name=role.name,
        description=role.description,
        base_role=UserRole(role.base_role),
        is_active=role.is_active,
        user_count=user_count,
        permissions=sorted(p for p, allowed in matrix.items() if allowed),
        created_at=role.created_at,
        updated_at=role.updated_at,
        matrix=dict(sorted(matrix.items())),
    )


class CustomRoleService:
    """Create, edit, soft-delete and assign custom roles.

    Every override is clamped to the base role's defaults, so a custom role
    can narrow what its base role grants but never widen it. All work runs in
    the tenant scope of the calling admin's tenant; cache invalidation and
    audit entries follow once that transaction has committed.
    """

    def __init__(
        self,
        gate: TenantContextGate,
        resolver: PermissionResolver,
        audit: AuditWriter,
    ):
        self.gate = gate
        self.resolver = resolver
        self.audit = audit

    async def create(
        self,
        tenant_id: UUID,
        name: str,
        base_role: UserRole | str,
        description: str | None = None,
        overrides: Mapping[str, bool] | None = None,
        actor: User | None = None,
    ) -> CustomRoleDetail:
        """Clone ``base_role`` into a new tenant role.

        Raises:
            ValidationError: ``base_role`` is not assignable, or an override names
                an unknown permission.
            ConflictError: The tenant already has a role named ``name``.
        """
        base = UserRole(base_role)
        if base not in ASSIGNABLE_BASE_ROLES:
            allowed = ", ".join(r.value for r in ASSIGNABLE_BASE_ROLES)
            raise ValidationError(f"Cannot clone role {base.value}. Allowed base roles: {allowed}")
        _validate_permission_keys(overrides or {})

        grid = clamp_overrides(base, overrides)
        dropped = sorted(p for p, v in (overrides or {}).items() if v and not grid[p])
        if dropped:
            logger.info("Escalating overrides dropped", base_role=base.value, dropped=dropped)

        async with self.gate.tenant_session(tenant_id) as session:
            roles = CustomRoleRepository(session)
            if await roles.get_by_name(tenant_id, name) is not None:
                raise ConflictError("A custom role with this name already exists")

            role = await roles.save(
                CustomRole(
                    tenant_id=tenant_id,
                    name=name,
                    description=description,
                    base_role=base.value,
                )
            )
            rows = []
            for permission, allowed in grid.items():
                module, action = parse_permission(permission)
                row = RolePermission(
                    custom_role_id=role.id, module=module, action=action, allowed=allowed
                )
                roles.add(row)
                rows.append(row)
            await session.flush()
            detail = _build_detail(role, rows, user_count=0)

        logger.info("Custom role created", tenant_id=str(tenant_id), role_id=str(role.id))
        await self.audit.record(
            AuditAction.ROLE_CREATE,
            actor=actor,
            tenant_id=tenant_id,
            target_type="custom_role",
            target_id=role.id,
            metadata={"name": name, "base_role": base.value},
        )
        return detail

    async def list_roles(self, tenant_id: UUID) -> list[CustomRoleRead]:
        """Active roles of a tenant, by name, with allowed permissions and user counts."""
        async with self.gate.tenant_session(tenant_id) as session:
            roles = CustomRoleRepository(session)
            active = list(await roles.list_active(tenant_id))
            ids = [role.id for role in active]
            counts = await roles.count_users(ids)
            grouped = await roles.list_permissions_for(ids)

        return [
            CustomRoleRead.model_validate(
                _build_detail(role, grouped[role.id], counts.get(role.id, 0)).model_dump(
                    exclude={"matrix"}
                )
            )
            for role in active
        ]

    async def get(self, tenant_id: UUID, role_id: UUID) -> CustomRoleDetail:
        async with self.gate.tenant_session(tenant_id) as session:
            return await self._load_detail(session, tenant_id, role_id)

    async def _load_detail(
        self, session: AsyncSession, tenant_id: UUID, role_id: UUID
    ) -> CustomRoleDetail:
        roles = CustomRoleRepository(session)
        role = await roles.get_in_tenant(tenant_id, role_id)
        if role is None:
            raise NotFoundError("Custom role not found")
        rows = await roles.list_permissions(role.id)
        counts = await roles.count_users([role.id])
        return _build_detail(role, rows, counts.get(role.id, 0))

    async def update(
        self,
        tenant_id: UUID,
        role_id: UUID,
        name: str | None = None,
        description: str | None = None,
        permissions: Mapping[str, bool] | None = None,
        actor: User | None = None,
    ) -> CustomRoleDetail:
        """Rename, describe or re-grant a role.

        Entries that would grant a pair outside the base defaults are skipped.
        When ``permissions`` is given, every user on the role has their cached
        set dropped.

        Raises:
            NotFoundError: No such role in this tenant.
            ConflictError: ``name`` is taken by another role of the tenant.
            ValidationError: A permission key is unknown.
        """
        if permissions is not None:
            _validate_permission_keys(permissions)

        async with self.gate.tenant_session(tenant_id) as session:
            roles = CustomRoleRepository(session)
            role = await roles.get_in_tenant(tenant_id, role_id)
            if role is None:
                raise NotFoundError("Custom role not found")

            if name is not None and name != role.name:
                if await roles.get_by_name(tenant_id, name, exclude_id=role.id) is not None:
                    raise ConflictError("A custom role with this name already exists")
                role.name = name
            if description is not None:
                role.description = description
            role.updated_at = utc_now()
            roles.add(role)

            affected: list[UUID] = []
            if permissions is not None:
                base = default_permissions(role.base_role)
                for permission, allowed in permissions.items():
                    if allowed and permission not in base:
                        continue
                    module, action = parse_permission(permission)
                    await roles.upsert_permission(role.id, module, action, allowed)
                affected = list(await UserRepository(session).list_ids_by_custom_role(role.id))

            await session.flush()
            detail = await self._load_detail(session, tenant_id, role_id)

        if permissions is not None:
            await self.resolver.invalidate_many(affected)

        await self.audit.record(
            AuditAction.ROLE_UPDATE,
            actor=actor,
            tenant_id=tenant_id,
            target_type="custom_role",
            target_id=role_id,
            metadata={"permissions_changed": permissions is not None},
        )
        return detail

    async def delete(self, tenant_id: UUID, role_id: UUID, actor: User | None = None) -> None:
        """Soft-delete: deactivate the role and move its users back to their base role.

        Raises:
            NotFoundError: No such role in this tenant.
        """
        async with self.gate.tenant_session(tenant_id) as session:
            roles = CustomRoleRepository(session)
            users = UserRepository(session)
            role = await roles.get_in_tenant(tenant_id, role_id)
            if role is None:
                raise NotFoundError("Custom role not found")

            role.is_active = False
            role.updated_at = utc_now()
            roles.add(role)
            # Collect before detaching, the detach clears the link we search on
            affected = list(await users.list_ids_by_custom_role(role.id))
            await users.detach_custom_role(role.id)

        await self.resolver.invalidate_many(affected)
        logger.info(
            "Custom role deactivated",
            tenant_id=str(tenant_id),
            role_id=str(role_id),
            detached_users=len(affected),
        )
        await self.audit.record(
            AuditAction.ROLE_DELETE,
            actor=actor,
            tenant_id=tenant_id,
            target_type="custom_role",
            target_id=role_id,
            metadata={"detached_users": len(affected)},
        )

    async def assign(
        self,
        tenant_id: UUID,
        user_id: UUID,
        role_id: UUID | None,
        actor: User | None = None,
    ) -> User:
        """Put a user on an active custom role of the same tenant, or take them off (None).

        Raises:
            NotFoundError: Unknown user, or unknown/inactive role, in this tenant.
        """
        async with self.gate.tenant_session(tenant_id) as session:
            user = await UserRepository(session).get_in_tenant(tenant_id, user_id)
            if user is None:
                raise NotFoundError("User not found")
            if role_id is not None:
                role = await CustomRoleRepository(session).get_in_tenant(tenant_id, role_id)
                if role is None or not role.is_active:
                    raise NotFoundError("Custom role not found")
            user.custom_role_id = role_id
            user.updated_at = utc_now()
            session.add(user)
            await session.flush()

        await self.resolver.invalidate(user_id)
        await self.audit.record(
            AuditAction.ROLE_ASSIGN,
            actor=actor,
            tenant_id=tenant_id,
            target_type="user",
            target_id=user_id,
            metadata={"custom_role_id": str(role_id) if role_id else None},
        )
        return user
