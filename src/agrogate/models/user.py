"""User model - credential store for one tenant's members."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from src.agrogate.models.base import utc_now
from src.agrogate.models.enums import UserRole, UserStatus


class User(SQLModel, table=True):
    """Tenant member.

    ``password_hash`` stays null until the invite is accepted.
    ``provider_subject`` holds the linked Google ``sub`` once the user has
    signed in with Google for the first time.
    """

    __tablename__ = "users"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    email: str = Field(max_length=255, unique=True, index=True)
    name: str = Field(max_length=200)
    role: str = Field(default=UserRole.OPERATOR.value, max_length=30)
    custom_role_id: UUID | None = Field(default=None, foreign_key="custom_roles.id", index=True)
    password_hash: str | None = Field(default=None, max_length=255)
    status: str = Field(default=UserStatus.ACTIVE.value, max_length=20)
    provider_subject: str | None = Field(default=None, max_length=255, unique=True)
    last_login_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def role_enum(self) -> UserRole:
        return UserRole(self.role)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value
