"""Permission vocabulary, role hierarchy and the default permission matrix.

A permission is the string ``"<module>:<action>"``. The matrix below is the
single source of truth for what each base role may do; custom roles can only
narrow it (see ``clamp_overrides``).
"""

from collections.abc import Iterable, Mapping
from typing import Final

from src.agrogate.models.enums import UserRole

ALL_MODULES: Final[tuple[str, ...]] = (
    "organizations",
    "users",
    "farms",
    "operations",
    "financial",
    "reports",
    "settings",
)

ALL_ACTIONS: Final[tuple[str, ...]] = ("create", "read", "update", "delete")

ROLE_HIERARCHY: Final[Mapping[UserRole, int]] = {
    UserRole.SUPER_ADMIN: 100,
    UserRole.ADMIN: 90,
    UserRole.MANAGER: 70,
    UserRole.AGRONOMIST: 50,
    UserRole.FINANCIAL: 50,
    UserRole.OPERATOR: 30,
    UserRole.COWBOY: 20,
    UserRole.CONSULTANT: 10,
}

TOP_RANK: Final[int] = max(ROLE_HIERARCHY.values())

# An admin may only clone or assign roles it could itself hand out.
ASSIGNABLE_BASE_ROLES: Final[tuple[UserRole, ...]] = (
    UserRole.MANAGER,
    UserRole.AGRONOMIST,
    UserRole.FINANCIAL,
    UserRole.OPERATOR,
    UserRole.COWBOY,
    UserRole.CONSULTANT,
)


def permission_key(module: str, action: str) -> str:
    return f"{module}:{action}"


def parse_permission(permission: str) -> tuple[str, str]:
    """Split ``"module:action"`` and validate both halves.

    Raises:
        ValueError: If the string is not a known module/action pair.
    """
    module, sep, action = permission.partition(":")
    if not sep or module not in ALL_MODULES or action not in ALL_ACTIONS:
        raise ValueError(f"Unknown permission: {permission!r}")
    return module, action


ALL_PERMISSIONS: Final[frozenset[str]] = frozenset(
    permission_key(m, a) for m in ALL_MODULES for a in ALL_ACTIONS
)


def _module(module: str) -> set[str]:
    return {permission_key(module, a) for a in ALL_ACTIONS}


def _p(module: str, *actions: str) -> set[str]:
    return {permission_key(module, a) for a in actions}


DEFAULT_ROLE_PERMISSIONS: Final[Mapping[UserRole, frozenset[str]]] = {
    UserRole.SUPER_ADMIN: ALL_PERMISSIONS,
    UserRole.ADMIN: ALL_PERMISSIONS - {"organizations:create", "organizations:delete"},
    UserRole.MANAGER: frozenset(
        _module("farms")
        | _p("users", "read")
        | _module("operations")
        | _p("reports", "read")
        | _p("settings", "read")
    ),
    UserRole.AGRONOMIST: frozenset(
        _p("farms", "read") | _p("operations", "create", "read", "update") | _p("reports", "read")
    ),
    UserRole.FINANCIAL: frozenset(_module("financial") | _p("farms", "read") | _p("reports", "read")),
    UserRole.OPERATOR: frozenset(_p("farms", "read") | _p("operations", "create", "read")),
    UserRole.COWBOY: frozenset(_p("farms", "read") | _p("operations", "create", "read")),
    UserRole.CONSULTANT: frozenset(
        _p("farms", "read") | _p("operations", "read") | _p("reports", "read")
    ),
}


def role_rank(role: UserRole | str) -> int:
    return ROLE_HIERARCHY.get(UserRole(role), 0)


def is_top_role(role: UserRole | str) -> bool:
    """True for the role that passes every permission check unconditionally."""
    return role_rank(role) >= TOP_RANK


def default_permissions(role: UserRole | str) -> frozenset[str]:
    return DEFAULT_ROLE_PERMISSIONS.get(UserRole(role), frozenset())


def clamp_overrides(
    base_role: UserRole | str, overrides: Mapping[str, bool] | None = None
) -> dict[str, bool]:
    """Build the full (permission -> allowed) grid for a role cloned from ``base_role``.

    Every module x action pair starts at its base default. An override is
    applied unless it would grant a pair the base role does not have; such
    escalation attempts are dropped.
    """
    base = default_permissions(base_role)
    grid = {perm: perm in base for perm in sorted(ALL_PERMISSIONS)}
    for perm, allowed in (overrides or {}).items():
        if perm not in grid:
            continue
        if allowed and perm not in base:
            continue
        grid[perm] = allowed
    return grid


def allowed_subset(base_role: UserRole | str, granted: Iterable[str]) -> frozenset[str]:
    """Intersect ``granted`` with the base role's current defaults."""
    return frozenset(granted) & default_permissions(base_role)
