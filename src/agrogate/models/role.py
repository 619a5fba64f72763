"""Custom role models - tenant-defined clones of a base role."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from src.agrogate.models.base import utc_now


class CustomRole(SQLModel, table=True):
    """Role cloned from a base role; soft-deleted by flipping ``is_active``."""

    __tablename__ = "custom_roles"
    __table_args__ = (UniqueConstraint("name", "tenant_id", name="uq_custom_roles_name_tenant"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    name: str = Field(max_length=100)
    description: str | None = Field(default=None, max_length=500)
    base_role: str = Field(max_length=30)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class RolePermission(SQLModel, table=True):
    """One (module, action) grant row of a custom role.

    ``allowed`` may only be true for pairs in the base role's default set.
    """

    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint(
            "custom_role_id", "module", "action", name="uq_role_permissions_role_module_action"
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    custom_role_id: UUID = Field(foreign_key="custom_roles.id", index=True)
    module: str = Field(max_length=30)
    action: str = Field(max_length=10)
    allowed: bool = Field(default=False)

    @property
    def permission(self) -> str:
        return f"{self.module}:{self.action}"
