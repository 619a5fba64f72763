"""Organization user administration endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from src.agrogate.api.dependencies import (
    CurrentUser,
    OrgUserServiceDep,
    RoleServiceDep,
    require_permission,
)
from src.agrogate.schemas.auth import MessageResponse, TokenClaims
from src.agrogate.schemas.user import (
    CustomRoleAssignment,
    OrgUserInvite,
    RoleChange,
    SeatUsage,
    StatusChange,
    UserRead,
)

router = APIRouter(prefix="/org/users", tags=["org-users"])

UserReader = Annotated[TokenClaims, Depends(require_permission("users:read"))]
UserCreator = Annotated[TokenClaims, Depends(require_permission("users:create"))]
UserEditor = Annotated[TokenClaims, Depends(require_permission("users:update"))]


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def invite_user(
    data: OrgUserInvite, claims: UserCreator, actor: CurrentUser, service: OrgUserServiceDep
) -> UserRead:
    """Create a user without a password and mail them an invite link."""
    user = await service.invite_user(
        claims.tenant_id, data.email, data.name, data.role, actor=actor
    )
    return UserRead.model_validate(user)


@router.get("/limit", response_model=SeatUsage)
async def seat_usage(claims: UserReader, service: OrgUserServiceDep) -> SeatUsage:
    return await service.seat_usage(claims.tenant_id)


@router.patch("/{user_id}/role", response_model=UserRead)
async def change_role(
    user_id: UUID,
    data: RoleChange,
    claims: UserEditor,
    actor: CurrentUser,
    service: OrgUserServiceDep,
) -> UserRead:
    user = await service.change_role(claims.tenant_id, claims.sub, user_id, data.role, actor=actor)
    return UserRead.model_validate(user)


@router.patch("/{user_id}/custom-role", response_model=UserRead)
async def assign_custom_role(
    user_id: UUID,
    data: CustomRoleAssignment,
    claims: Annotated[TokenClaims, Depends(require_permission("settings:update"))],
    actor: CurrentUser,
    service: RoleServiceDep,
) -> UserRead:
    user = await service.assign(claims.tenant_id, user_id, data.custom_role_id, actor=actor)
    return UserRead.model_validate(user)


@router.patch("/{user_id}/status", response_model=UserRead)
async def set_status(
    user_id: UUID,
    data: StatusChange,
    claims: UserEditor,
    actor: CurrentUser,
    service: OrgUserServiceDep,
) -> UserRead:
    user = await service.set_status(
        claims.tenant_id, claims.sub, user_id, data.status, actor=actor
    )
    return UserRead.model_validate(user)


@router.post("/{user_id}/resend-invite", response_model=MessageResponse)
async def resend_invite(
    user_id: UUID, claims: UserEditor, service: OrgUserServiceDep
) -> MessageResponse:
    await service.resend_invite(claims.tenant_id, user_id)
    return MessageResponse(message="Invite resent")


@router.post("/{user_id}/reset-password", response_model=MessageResponse)
async def send_password_reset(
    user_id: UUID, claims: UserEditor, service: OrgUserServiceDep
) -> MessageResponse:
    await service.send_password_reset(claims.tenant_id, user_id)
    return MessageResponse(message="Password reset email sent")
