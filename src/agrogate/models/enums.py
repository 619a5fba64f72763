"""Shared enums for models."""

from enum import Enum


class TenantStatus(str, Enum):
    """Tenant (organization) lifecycle status."""

    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"


class SessionPolicy(str, Enum):
    """How many concurrent login sessions a tenant allows per user."""

    SINGLE = "SINGLE"
    MULTI = "MULTI"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class UserRole(str, Enum):
    """Fixed base roles. Rank and default grants live in core.permissions."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    AGRONOMIST = "AGRONOMIST"
    FINANCIAL = "FINANCIAL"
    OPERATOR = "OPERATOR"
    COWBOY = "COWBOY"
    CONSULTANT = "CONSULTANT"
