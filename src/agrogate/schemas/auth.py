from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator
from zxcvbn import zxcvbn

# Minimum zxcvbn score (0-4 scale): 3 = "safely unguessable"
MIN_PASSWORD_SCORE = 3


def check_password_strength(password: str) -> str:
    """Validate password strength using zxcvbn entropy estimation."""
    result = zxcvbn(password)
    if result["score"] >= MIN_PASSWORD_SCORE:
        return password

    feedback = result.get("feedback", {})
    warning = feedback.get("warning", "")
    suggestions = feedback.get("suggestions", [])
    if warning:
        raise ValueError(f"Weak password: {warning}")
    if suggestions:
        raise ValueError(f"Weak password: {suggestions[0]}")
    raise ValueError("Password is too weak. Use a longer password with a mix of characters.")


class LoginRequest(BaseModel):
    email: EmailStr
    # No strength rules here: a short password must still fail as "invalid credentials"
    password: str = Field(min_length=1, max_length=128)


class AuthTokens(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1, max_length=256)


class LogoutRequest(BaseModel):
    refresh_token: str = Field(min_length=1, max_length=256)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class NewPasswordRequest(BaseModel):
    """Base for flows that consume a single-use token and set a password."""

    token: str = Field(min_length=16, max_length=256)
    password: str = Field(min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        return check_password_strength(v)


class ResetPasswordRequest(NewPasswordRequest):
    pass


class AcceptInviteRequest(NewPasswordRequest):
    pass


class GoogleAuthUrlResponse(BaseModel):
    url: str


class GoogleExchangeRequest(BaseModel):
    code: str = Field(min_length=16, max_length=256)


class MessageResponse(BaseModel):
    message: str


class TokenClaims(BaseModel):
    """Verified claims of an access token."""

    sub: UUID
    email: str
    role: str
    tenant_id: UUID

    @property
    def user_id(self) -> UUID:
        return self.sub
