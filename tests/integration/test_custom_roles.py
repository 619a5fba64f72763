"""Tests for the Custom Role Manager (src/agrogate/services/role_service.py)."""

from uuid import uuid4

import pytest
from redis.asyncio import Redis
from sqlmodel import select

from src.agrogate.core.container import AppContainer
from src.agrogate.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.agrogate.core.permissions import ALL_PERMISSIONS, default_permissions
from src.agrogate.models import AuditLog, User

pytestmark = pytest.mark.integration


class TestCreate:
    async def test_escalation_is_dropped_and_revocation_kept(
        self, container: AppContainer, tenant, admin
    ):
        detail = await container.roles.create(
            tenant.id,
            "Field Lead",
            "OPERATOR",
            overrides={"financial:read": True, "operations:create": False},
            actor=admin,
        )

        assert set(detail.matrix) == ALL_PERMISSIONS
        assert detail.matrix["financial:read"] is False
        assert detail.matrix["operations:create"] is False
        assert set(detail.permissions) == default_permissions("OPERATOR") - {"operations:create"}
        assert detail.user_count == 0

    async def test_manager_clone_cannot_gain_organization_delete(
        self, container: AppContainer, tenant
    ):
        detail = await container.roles.create(
            tenant.id, "Farm Boss", "MANAGER", overrides={"organizations:delete": True}
        )

        assert detail.matrix["organizations:delete"] is False
        assert "organizations:delete" not in detail.permissions

    async def test_user_on_role_resolves_clamped_set(
        self, container: AppContainer, tenant, admin, make_user
    ):
        detail = await container.roles.create(
            tenant.id, "Field Lead", "OPERATOR", overrides={"financial:read": True}
        )
        user = await make_user(tenant_id=tenant.id, role="OPERATOR")
        await container.roles.assign(tenant.id, user.id, detail.id, actor=admin)

        effective = await container.permissions.resolve(user.id)

        assert "financial:read" not in effective
        assert effective == default_permissions("OPERATOR")

    @pytest.mark.parametrize("base_role", ["ADMIN", "SUPER_ADMIN"])
    async def test_admin_bases_are_rejected(self, container: AppContainer, tenant, base_role):
        with pytest.raises(ValidationError):
            await container.roles.create(tenant.id, "Too Strong", base_role)

    async def test_unknown_permission_is_rejected(self, container: AppContainer, tenant):
        with pytest.raises(ValidationError, match="Unknown permission"):
            await container.roles.create(
                tenant.id, "Odd", "OPERATOR", overrides={"barns:read": True}
            )

    async def test_duplicate_name_conflicts(self, container: AppContainer, tenant):
        await container.roles.create(tenant.id, "Field Lead", "OPERATOR")

        with pytest.raises(ConflictError):
            await container.roles.create(tenant.id, "Field Lead", "CONSULTANT")

    async def test_same_name_in_another_tenant_is_fine(
        self, container: AppContainer, tenant, make_tenant
    ):
        other = await make_tenant()
        await container.roles.create(tenant.id, "Field Lead", "OPERATOR")
        await container.roles.create(other.id, "Field Lead", "OPERATOR")

    async def test_creation_is_audited(self, container: AppContainer, tenant, admin):
        detail = await container.roles.create(tenant.id, "Field Lead", "OPERATOR", actor=admin)

        async with container.gate.bypass_session() as session:
            entries = (await session.execute(select(AuditLog))).scalars().all()
        assert [(e.action, e.target_id, e.actor_id) for e in entries] == [
            ("role.create", detail.id, admin.id)
        ]


class TestReadAndUpdate:
    async def test_list_counts_users_and_hides_deleted(
        self, container: AppContainer, tenant, make_user
    ):
        kept = await container.roles.create(tenant.id, "B Role", "OPERATOR")
        dropped = await container.roles.create(tenant.id, "A Role", "OPERATOR")
        user = await make_user(tenant_id=tenant.id)
        await container.roles.assign(tenant.id, user.id, kept.id)
        await container.roles.delete(tenant.id, dropped.id)

        roles = await container.roles.list_roles(tenant.id)

        assert [(r.name, r.user_count) for r in roles] == [("B Role", 1)]

    async def test_get_from_another_tenant_is_not_found(
        self, container: AppContainer, tenant, make_tenant
    ):
        other = await make_tenant()
        detail = await container.roles.create(tenant.id, "Field Lead", "OPERATOR")

        with pytest.raises(NotFoundError):
            await container.roles.get(other.id, detail.id)

    async def test_update_skips_escalation_and_invalidates_users(
        self, container: AppContainer, fake_redis: Redis, tenant, make_user
    ):
        detail = await container.roles.create(tenant.id, "Field Lead", "OPERATOR")
        user = await make_user(tenant_id=tenant.id)
        await container.roles.assign(tenant.id, user.id, detail.id)
        await container.permissions.resolve(user.id)

        updated = await container.roles.update(
            tenant.id,
            detail.id,
            permissions={"operations:create": False, "farms:delete": True},
        )

        assert updated.matrix["operations:create"] is False
        assert updated.matrix["farms:delete"] is False
        assert await fake_redis.get(f"permissions:{user.id}") is None
        assert "operations:create" not in await container.permissions.resolve(user.id)

    async def test_rename_to_taken_name_conflicts(self, container: AppContainer, tenant):
        await container.roles.create(tenant.id, "Field Lead", "OPERATOR")
        second = await container.roles.create(tenant.id, "Vet", "COWBOY")

        with pytest.raises(ConflictError):
            await container.roles.update(tenant.id, second.id, name="Field Lead")

    async def test_update_unknown_role(self, container: AppContainer, tenant):
        with pytest.raises(NotFoundError):
            await container.roles.update(tenant.id, uuid4(), name="Nope")


class TestDeleteAndAssign:
    async def test_delete_detaches_users_and_drops_their_cache(
        self, container: AppContainer, fake_redis: Redis, tenant, make_user
    ):
        detail = await container.roles.create(
            tenant.id, "Field Lead", "MANAGER", overrides={"farms:delete": False}
        )
        user = await make_user(tenant_id=tenant.id, role="MANAGER")
        await container.roles.assign(tenant.id, user.id, detail.id)
        assert "farms:delete" not in await container.permissions.resolve(user.id)

        await container.roles.delete(tenant.id, detail.id)

        assert await fake_redis.get(f"permissions:{user.id}") is None
        async with container.gate.bypass_session() as session:
            stored = await session.get(User, user.id)
            assert stored.custom_role_id is None
        assert await container.permissions.resolve(user.id) == default_permissions("MANAGER")

    async def test_assign_inactive_role_is_not_found(
        self, container: AppContainer, tenant, make_user
    ):
        detail = await container.roles.create(tenant.id, "Field Lead", "OPERATOR")
        await container.roles.delete(tenant.id, detail.id)
        user = await make_user(tenant_id=tenant.id)

        with pytest.raises(NotFoundError):
            await container.roles.assign(tenant.id, user.id, detail.id)

    async def test_assign_user_of_another_tenant_is_not_found(
        self, container: AppContainer, tenant, make_tenant, make_user
    ):
        other = await make_tenant()
        outsider = await make_user(tenant_id=other.id)
        detail = await container.roles.create(tenant.id, "Field Lead", "OPERATOR")

        with pytest.raises(NotFoundError):
            await container.roles.assign(tenant.id, outsider.id, detail.id)

    async def test_unassign(self, container: AppContainer, tenant, make_user):
        detail = await container.roles.create(tenant.id, "Field Lead", "OPERATOR")
        user = await make_user(tenant_id=tenant.id)
        await container.roles.assign(tenant.id, user.id, detail.id)

        updated = await container.roles.assign(tenant.id, user.id, None)

        assert updated.custom_role_id is None
