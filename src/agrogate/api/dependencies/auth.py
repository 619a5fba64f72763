"""Authentication and authorization dependencies."""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Header, Request

from src.agrogate.api.dependencies.services import (
    AuthServiceDep,
    ContainerDep,
    PermissionResolverDep,
)
from src.agrogate.core.exceptions import AuthenticationError, AuthorizationError, TenantStateError
from src.agrogate.core.logging import bind_user_context
from src.agrogate.core.rate_limit import get_guard_address
from src.agrogate.models import User
from src.agrogate.repositories import UserRepository
from src.agrogate.schemas.auth import TokenClaims


def get_current_claims(
    service: AuthServiceDep,
    authorization: Annotated[str | None, Header()] = None,
) -> TokenClaims:
    """Verify the bearer access token. Stateless: no store lookup."""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Missing or invalid authorization header")

    claims = service.authenticate(authorization[7:])
    bind_user_context(claims.sub, claims.tenant_id, claims.email)
    return claims


CurrentClaims = Annotated[TokenClaims, Depends(get_current_claims)]


async def get_current_user(claims: CurrentClaims, container: ContainerDep) -> User:
    """Load the caller's user row, for endpoints that act on their behalf."""
    async with container.gate.bypass_session() as session:
        user = await UserRepository(session).get_by_id(claims.sub)

    if user is None:
        raise AuthenticationError("Invalid or expired token")
    if not user.is_active:
        raise TenantStateError("Account is inactive")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_permission(*permissions: str) -> Callable[..., Awaitable[TokenClaims]]:
    """Dependency factory: the caller must hold every one of ``permissions``."""

    async def check(claims: CurrentClaims, resolver: PermissionResolverDep) -> TokenClaims:
        if not await resolver.authorize_all(claims.sub, permissions, claims.role):
            raise AuthorizationError("Insufficient permission")
        return claims

    return check


def get_request_ip(request: Request, container: ContainerDep) -> str | None:
    return get_guard_address(request, container.settings.trusted_proxy_ips)


ClientIP = Annotated[str | None, Depends(get_request_ip)]
