from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from src.agrogate.models import UserRole, UserStatus


class UserRead(BaseModel):
    id: UUID
    tenant_id: UUID
    email: EmailStr
    name: str
    role: UserRole
    custom_role_id: UUID | None
    status: UserStatus
    last_login_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class OrgUserInvite(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=200)
    role: UserRole


class RoleChange(BaseModel):
    role: UserRole


class StatusChange(BaseModel):
    status: UserStatus


class CustomRoleAssignment(BaseModel):
    custom_role_id: UUID | None


class SeatUsage(BaseModel):
    current: int
    max: int
    percentage: int
    warning: bool
    blocked: bool
