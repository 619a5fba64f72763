from src.agrogate.schemas.auth import (
    AcceptInviteRequest,
    AuthTokens,
    ForgotPasswordRequest,
    GoogleAuthUrlResponse,
    GoogleExchangeRequest,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    ResetPasswordRequest,
    TokenClaims,
)
from src.agrogate.schemas.role import (
    CustomRoleCreate,
    CustomRoleDetail,
    CustomRoleRead,
    CustomRoleUpdate,
    PermissionEntry,
)
from src.agrogate.schemas.user import (
    CustomRoleAssignment,
    OrgUserInvite,
    RoleChange,
    SeatUsage,
    StatusChange,
    UserRead,
)

__all__ = [
    # Auth
    "AcceptInviteRequest",
    "AuthTokens",
    "ForgotPasswordRequest",
    "GoogleAuthUrlResponse",
    "GoogleExchangeRequest",
    "LoginRequest",
    "LogoutRequest",
    "MessageResponse",
    "RefreshRequest",
    "ResetPasswordRequest",
    "TokenClaims",
    # Roles
    "CustomRoleCreate",
    "CustomRoleDetail",
    "CustomRoleRead",
    "CustomRoleUpdate",
    "PermissionEntry",
    # Users
    "CustomRoleAssignment",
    "OrgUserInvite",
    "RoleChange",
    "SeatUsage",
    "StatusChange",
    "UserRead",
]
