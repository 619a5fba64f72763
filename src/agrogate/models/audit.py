"""Audit log model for tracking security-relevant actions."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from src.agrogate.models.base import utc_now


class AuditAction(str, Enum):
    """Audit action types for type-safe logging."""

    # Auth
    USER_LOGIN = "user.login"
    USER_LOGIN_GOOGLE = "user.login_google"
    USER_LOGOUT = "user.logout"
    PASSWORD_RESET = "password.reset"
    INVITE_ACCEPT = "invite.accept"

    # Org users
    USER_INVITE = "user.invite"
    USER_ROLE_CHANGE = "user.role_change"
    USER_STATUS_CHANGE = "user.status_change"

    # Custom roles
    ROLE_CREATE = "role.create"
    ROLE_UPDATE = "role.update"
    ROLE_DELETE = "role.delete"
    ROLE_ASSIGN = "role.assign"


class AuditLog(SQLModel, table=True):
    """Append-only audit trail. Written best-effort; readers are external."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_tenant_created", "tenant_id", "created_at"),
        Index("ix_audit_logs_actor_created", "actor_id", "created_at"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    actor_id: UUID | None = Field(default=None)
    actor_email: str | None = Field(default=None, max_length=255)
    actor_role: str | None = Field(default=None, max_length=30)

    action: str = Field(max_length=50)
    target_type: str | None = Field(default=None, max_length=50)
    target_id: UUID | None = Field(default=None)
    metadata_: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column("metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True),
    )

    ip_address: str | None = Field(default=None, max_length=45)
    request_id: str | None = Field(default=None, max_length=36)
    tenant_id: UUID | None = Field(default=None, index=True)

    created_at: datetime = Field(default_factory=utc_now)
