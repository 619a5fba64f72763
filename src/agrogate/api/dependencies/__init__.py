"""FastAPI dependencies."""

from src.agrogate.api.dependencies.auth import (
    ClientIP,
    CurrentClaims,
    CurrentUser,
    get_current_claims,
    get_current_user,
    require_permission,
)
from src.agrogate.api.dependencies.services import (
    AuthServiceDep,
    ContainerDep,
    OAuthServiceDep,
    OrgUserServiceDep,
    PermissionResolverDep,
    RoleServiceDep,
    get_container,
)

__all__ = [
    # Auth
    "ClientIP",
    "CurrentClaims",
    "CurrentUser",
    "get_current_claims",
    "get_current_user",
    "require_permission",
    # Services
    "AuthServiceDep",
    "ContainerDep",
    "OAuthServiceDep",
    "OrgUserServiceDep",
    "PermissionResolverDep",
    "RoleServiceDep",
    "get_container",
]
