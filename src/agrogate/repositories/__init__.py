"""Repository layer - data access abstraction."""

from src.agrogate.repositories.audit import AuditLogRepository
from src.agrogate.repositories.base import BaseRepository
from src.agrogate.repositories.custom_role import CustomRoleRepository
from src.agrogate.repositories.tenant import TenantRepository
from src.agrogate.repositories.user import UserRepository

__all__ = [
    "AuditLogRepository",
    "BaseRepository",
    "CustomRoleRepository",
    "TenantRepository",
    "UserRepository",
]
