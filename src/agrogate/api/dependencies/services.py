"""Service dependencies.

Services are built once by the composition root and stored on
``app.state.container``; these dependencies only look them up.
"""

from typing import Annotated

from fastapi import Depends, Request

from src.agrogate.core.container import AppContainer
from src.agrogate.services import (
    AuthService,
    CustomRoleService,
    OAuthService,
    OrgUserService,
    PermissionResolver,
)


def get_container(request: Request) -> AppContainer:
    return request.app.state.container  # type: ignore[no-any-return]


ContainerDep = Annotated[AppContainer, Depends(get_container)]


def get_auth_service(container: ContainerDep) -> AuthService:
    return container.auth


def get_oauth_service(container: ContainerDep) -> OAuthService:
    return container.oauth


def get_role_service(container: ContainerDep) -> CustomRoleService:
    return container.roles


def get_org_user_service(container: ContainerDep) -> OrgUserService:
    return container.org_users


def get_permission_resolver(container: ContainerDep) -> PermissionResolver:
    return container.permissions


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
OAuthServiceDep = Annotated[OAuthService, Depends(get_oauth_service)]
RoleServiceDep = Annotated[CustomRoleService, Depends(get_role_service)]
OrgUserServiceDep = Annotated[OrgUserService, Depends(get_org_user_service)]
PermissionResolverDep = Annotated[PermissionResolver, Depends(get_permission_resolver)]
