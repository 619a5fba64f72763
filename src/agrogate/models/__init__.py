"""Model exports.

Import from here: `from src.agrogate.models import User, Tenant`
"""

from src.agrogate.models.audit import AuditAction, AuditLog
from src.agrogate.models.enums import SessionPolicy, TenantStatus, UserRole, UserStatus
from src.agrogate.models.role import CustomRole, RolePermission
from src.agrogate.models.tenant import Tenant
from src.agrogate.models.user import User

__all__ = [
    # Enums
    "AuditAction",
    "SessionPolicy",
    "TenantStatus",
    "UserRole",
    "UserStatus",
    # Models
    "AuditLog",
    "CustomRole",
    "RolePermission",
    "Tenant",
    "User",
]
