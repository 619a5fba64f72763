"""Custom role endpoints (organization admins)."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from src.agrogate.api.dependencies import CurrentUser, RoleServiceDep, require_permission
from src.agrogate.schemas.auth import TokenClaims
from src.agrogate.schemas.role import (
    CustomRoleCreate,
    CustomRoleDetail,
    CustomRoleRead,
    CustomRoleUpdate,
)

router = APIRouter(prefix="/org/roles", tags=["roles"])

RoleAdmin = Annotated[TokenClaims, Depends(require_permission("settings:update"))]


@router.get("", response_model=list[CustomRoleRead])
async def list_roles(claims: RoleAdmin, service: RoleServiceDep) -> list[CustomRoleRead]:
    return await service.list_roles(claims.tenant_id)


@router.post("", response_model=CustomRoleDetail, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: CustomRoleCreate, claims: RoleAdmin, actor: CurrentUser, service: RoleServiceDep
) -> CustomRoleDetail:
    """Clone a base role. Overrides that would exceed the base role are ignored."""
    overrides = {o.permission: o.allowed for o in data.overrides} if data.overrides else None
    return await service.create(
        claims.tenant_id,
        data.name,
        data.base_role,
        description=data.description,
        overrides=overrides,
        actor=actor,
    )


@router.get("/{role_id}", response_model=CustomRoleDetail)
async def get_role(role_id: UUID, claims: RoleAdmin, service: RoleServiceDep) -> CustomRoleDetail:
    return await service.get(claims.tenant_id, role_id)


@router.patch("/{role_id}", response_model=CustomRoleDetail)
async def update_role(
    role_id: UUID,
    data: CustomRoleUpdate,
    claims: RoleAdmin,
    actor: CurrentUser,
    service: RoleServiceDep,
) -> CustomRoleDetail:
    permissions = (
        {p.permission: p.allowed for p in data.permissions} if data.permissions is not None else None
    )
    return await service.update(
        claims.tenant_id,
        role_id,
        name=data.name,
        description=data.description,
        permissions=permissions,
        actor=actor,
    )


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: UUID, claims: RoleAdmin, actor: CurrentUser, service: RoleServiceDep
) -> None:
    """Deactivate a role; its users fall back to their base role."""
    await service.delete(claims.tenant_id, role_id, actor=actor)
