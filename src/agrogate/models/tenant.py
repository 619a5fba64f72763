"""Tenant model - one row per customer organization."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from src.agrogate.models.base import utc_now
from src.agrogate.models.enums import SessionPolicy, TenantStatus


class Tenant(SQLModel, table=True):
    """Customer organization. All domain data is scoped to exactly one tenant."""

    __tablename__ = "tenants"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(max_length=200)
    status: str = Field(default=TenantStatus.ACTIVE.value, max_length=20)
    session_policy: str = Field(default=SessionPolicy.MULTI.value, max_length=20)
    max_users: int = Field(default=10)
    allow_social_login: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def status_enum(self) -> TenantStatus:
        """Get status as TenantStatus enum."""
        return TenantStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE.value

    @property
    def single_session(self) -> bool:
        return self.session_policy == SessionPolicy.SINGLE.value
