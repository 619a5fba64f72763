from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from src.agrogate.core.permissions import parse_permission
from src.agrogate.models import UserRole


class PermissionEntry(BaseModel):
    permission: str
    allowed: bool

    @field_validator("permission")
    @classmethod
    def validate_permission(cls, v: str) -> str:
        parse_permission(v)
        return v


class CustomRoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    base_role: UserRole
    overrides: list[PermissionEntry] | None = None


class CustomRoleUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    permissions: list[PermissionEntry] | None = None


class CustomRoleRead(BaseModel):
    id: UUID
    name: str
    description: str | None
    base_role: UserRole
    is_active: bool
    user_count: int
    permissions: list[str]
    created_at: datetime
    updated_at: datetime


class CustomRoleDetail(CustomRoleRead):
    """Role with its full module x action grid."""

    matrix: dict[str, bool]
