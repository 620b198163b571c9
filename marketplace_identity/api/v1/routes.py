"""
API v1 routes.

Defines REST endpoints for the marketplace identity lifecycle. Handlers
only translate between HTTP models and the domain service; domain errors
are rendered by the exception handlers in ``marketplace_identity.api.errors``.
"""

from fastapi import APIRouter, Depends, status

from marketplace_identity.api.dependencies import get_current_account, get_identity_service
from marketplace_identity.api.models import (
    AccountResponse,
    AuthResponse,
    ChangePasswordRequest,
    EmailRequest,
    ErrorResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    VerifyRequest,
)
from marketplace_identity.domain.identity import AccountView, IdentityService

router = APIRouter(prefix="/auth", tags=["v1"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "Email already registered"},
        422: {"description": "Validation error"},
    },
    summary="Register a new account",
    description="Create an unverified customer, vendor or rider account. "
    "A verification code is sent to the provided email.",
)
def register(
    request_data: RegisterRequest,
    service: IdentityService = Depends(get_identity_service),
) -> RegisterResponse:
    account = service.register(
        first_name=request_data.first_name,
        last_name=request_data.last_name,
        email=request_data.email,
        password=request_data.password,
        role=request_data.role,
        phone=request_data.phone,
    )
    return RegisterResponse(
        message="User registered successfully. Please check your email for verification code.",
        user=AccountResponse.from_view(account),
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials or deactivated"}},
    summary="Log in with email and password",
)
def login(
    request_data: LoginRequest,
    service: IdentityService = Depends(get_identity_service),
) -> AuthResponse:
    result = service.login(request_data.email, request_data.password)
    return AuthResponse.from_result("Login successful", result)


@router.post(
    "/verify",
    response_model=AuthResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid or expired code"},
        404: {"model": ErrorResponse, "description": "Account not found"},
        409: {"model": ErrorResponse, "description": "Account already verified"},
    },
    summary="Verify account with emailed code",
)
def verify(
    request_data: VerifyRequest,
    service: IdentityService = Depends(get_identity_service),
) -> AuthResponse:
    result = service.verify_account(request_data.email, request_data.otp)
    return AuthResponse.from_result("Account verified successfully", result)


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Account not found"},
        409: {"model": ErrorResponse, "description": "Account already verified"},
    },
    summary="Send a new verification code",
)
def resend_verification(
    request_data: EmailRequest,
    service: IdentityService = Depends(get_identity_service),
) -> MessageResponse:
    service.resend_verification(request_data.email)
    return MessageResponse(message="Verification code sent successfully")


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    responses={404: {"model": ErrorResponse, "description": "Account not found"}},
    summary="Request a password reset code",
)
def forgot_password(
    request_data: EmailRequest,
    service: IdentityService = Depends(get_identity_service),
) -> MessageResponse:
    service.forgot_password(request_data.email)
    return MessageResponse(message="Password reset code sent to your email")


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid or expired code"},
        404: {"model": ErrorResponse, "description": "Account not found"},
    },
    summary="Reset password with emailed code",
)
def reset_password(
    request_data: ResetPasswordRequest,
    service: IdentityService = Depends(get_identity_service),
) -> MessageResponse:
    service.reset_password(request_data.email, request_data.otp, request_data.new_password)
    return MessageResponse(message="Password reset successfully")


@router.put(
    "/change-password",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Current password is incorrect"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
    summary="Change password of the logged-in account",
)
def change_password(
    request_data: ChangePasswordRequest,
    account: AccountView = Depends(get_current_account),
    service: IdentityService = Depends(get_identity_service),
) -> MessageResponse:
    service.change_password(account.id, request_data.current_password, request_data.new_password)
    return MessageResponse(message="Password changed successfully")


@router.get(
    "/me",
    response_model=AccountResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Account not found"},
    },
    summary="Get the logged-in account",
)
def me(
    account: AccountView = Depends(get_current_account),
    service: IdentityService = Depends(get_identity_service),
) -> AccountResponse:
    return AccountResponse.from_view(service.get_account(account.id))
