from src.agrogate.services.audit_service import AuditWriter
from src.agrogate.services.auth_service import AuthService
from src.agrogate.services.oauth_service import OAuthService
from src.agrogate.services.org_user_service import OrgUserService
from src.agrogate.services.permission_service import PermissionResolver
from src.agrogate.services.role_service import CustomRoleService

__all__ = [
    "AuditWriter",
    "AuthService",
    "CustomRoleService",
    "OAuthService",
    "OrgUserService",
    "PermissionResolver",
]
