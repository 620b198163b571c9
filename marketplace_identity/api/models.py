"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from marketplace_identity.domain.identity import AccountView, AuthResult
from marketplace_identity.domain.ports import Role

OTP_PATTERN = r"^\d{4,8}$"


class RegisterRequest(BaseModel):
    """Request model for account registration."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72, description="Password (min 6 characters)")
    role: Role = Field(default=Role.CUSTOMER, description="customer, vendor or rider")
    phone: str | None = Field(default=None, max_length=32)

    @field_validator("role")
    @classmethod
    def role_is_self_service(cls, role: Role) -> Role:
        """Admin accounts cannot be created through public registration."""
        if role is Role.ADMIN:
            raise ValueError("role must be one of customer, vendor, rider")
        return role


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class VerifyRequest(BaseModel):
    """Request model for account verification."""

    email: EmailStr
    otp: str = Field(..., pattern=OTP_PATTERN, description="Numeric verification code")


class EmailRequest(BaseModel):
    """Request model for resend-verification and forgot-password."""

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., pattern=OTP_PATTERN, description="Numeric reset code")
    new_password: str = Field(..., min_length=6, max_length=72)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=72)


class AccountResponse(BaseModel):
    """Public account fields."""

    id: str
    first_name: str
    last_name: str
    email: str
    role: Role
    is_verified: bool

    @classmethod
    def from_view(cls, view: AccountView) -> "AccountResponse":
        return cls(
            id=view.id,
            first_name=view.first_name,
            last_name=view.last_name,
            email=view.email,
            role=view.role,
            is_verified=view.is_verified,
        )


class RegisterResponse(BaseModel):
    """Response model for successful registration."""

    message: str
    user: AccountResponse


class AuthResponse(BaseModel):
    """Response model for login and verification."""

    message: str
    token: str
    expires_at: datetime
    user: AccountResponse

    @classmethod
    def from_result(cls, message: str, result: AuthResult) -> "AuthResponse":
        return cls(
            message=message,
            token=result.session.token,
            expires_at=result.session.expires_at,
            user=AccountResponse.from_view(result.account),
        )


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Standard error response model."""

    kind: str
    detail: str
