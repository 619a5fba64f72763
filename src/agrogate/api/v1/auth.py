"""Authentication endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import RedirectResponse
from starlette.requests import Request

from src.agrogate.api.dependencies import (
    AuthServiceDep,
    ClientIP,
    ContainerDep,
    CurrentUser,
    OAuthServiceDep,
)
from src.agrogate.core.exceptions import AppError
from src.agrogate.core.logging import get_logger
from src.agrogate.core.rate_limit import limiter
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
)
from src.agrogate.schemas.user import UserRead

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=AuthTokens,
    responses={
        401: {"description": "Invalid credentials"},
        403: {"description": "Account or organization inactive"},
        429: {"description": "Too many attempts or account locked"},
    },
)
async def login(login_data: LoginRequest, service: AuthServiceDep, ip: ClientIP) -> AuthTokens:
    """Authenticate with email and password.

    Throttled per client IP and per account by the login guard.
    """
    return await service.login(login_data.email, login_data.password, ip)


@router.post("/refresh", response_model=AuthTokens)
async def refresh(data: RefreshRequest, service: AuthServiceDep) -> AuthTokens:
    """Rotate a refresh token. The presented token can never be used again."""
    return await service.refresh(data.refresh_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(data: LogoutRequest, service: AuthServiceDep) -> None:
    await service.logout(data.refresh_token)


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("3/minute")
async def forgot_password(
    request: Request, data: ForgotPasswordRequest, service: AuthServiceDep
) -> MessageResponse:
    """Mail a reset link. The response is the same whether or not the email exists."""
    await service.request_password_reset(data.email)
    return MessageResponse(
        message="If the email is registered, you will receive a password reset link"
    )


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit("5/minute")
async def reset_password(
    request: Request, data: ResetPasswordRequest, service: AuthServiceDep
) -> MessageResponse:
    await service.reset_password(data.token, data.password)
    return MessageResponse(message="Password has been reset")


@router.post("/accept-invite", response_model=AuthTokens)
@limiter.limit("5/minute")
async def accept_invite(
    request: Request, data: AcceptInviteRequest, service: AuthServiceDep
) -> AuthTokens:
    """Set the first password from an invite and sign in."""
    return await service.accept_invite(data.token, data.password)


@router.get("/google", response_model=GoogleAuthUrlResponse)
async def google_auth_url(service: OAuthServiceDep) -> GoogleAuthUrlResponse:
    return GoogleAuthUrlResponse(url=await service.generate_auth_url())


@router.get("/google/callback", response_class=RedirectResponse)
async def google_callback(
    service: OAuthServiceDep,
    container: ContainerDep,
    code: str = "",
    state: str = "",
) -> RedirectResponse:
    """Google redirects here; the browser is sent on to the frontend.

    On success the frontend receives a one-time exchange code, never the
    tokens themselves. On failure it receives an error marker only.
    """
    app_url = container.settings.app_url
    try:
        exchange_code = await service.handle_callback(code, state)
    except AppError as e:
        logger.warning("Google callback rejected", status_code=e.status_code, detail=e.detail)
        return RedirectResponse(f"{app_url}/login?error=oauth_failed", status_code=302)
    return RedirectResponse(f"{app_url}/auth/google/callback?code={exchange_code}", status_code=302)


@router.post("/google/exchange", response_model=AuthTokens)
async def google_exchange(data: GoogleExchangeRequest, service: OAuthServiceDep) -> AuthTokens:
    return await service.exchange_code(data.code)


@router.get("/me", response_model=UserRead)
async def me(user: CurrentUser) -> UserRead:
    return UserRead.model_validate(user)
