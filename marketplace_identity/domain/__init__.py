"""
Domain layer - Pure business logic with zero framework imports.

This package contains the identity and credential lifecycle core of the
marketplace: account state, one-time passcodes, password hashing and
session tokens. It defines its own port interfaces for infrastructure
abstraction, ensuring true hexagonal architecture decoupling.
"""

from .exceptions import (
    AccountDeactivated,
    AlreadyVerified,
    AuthError,
    ConcurrentUpdate,
    ConflictError,
    DependencyError,
    DuplicateEmail,
    ExpiredOTP,
    IdentityError,
    IncorrectCurrentPassword,
    InvalidCredentials,
    InvalidOTP,
    InvalidSignature,
    NotFoundError,
    NotificationError,
    StaleAccount,
    TokenExpired,
    ValidationError,
)
from .hashing import PasswordHasher
from .identity import AccountView, AuthResult, IdentityService
from .models import Account, OTPRecord, RoleProfile
from .notifications import OTPDispatcher
from .otp import OTPEngine
from .ports import (
    AccountRepository,
    ActivationState,
    NotificationSender,
    OTPCheck,
    OTPPurpose,
    Role,
    VerificationState,
)
from .state import AccountStateMachine
from .tokens import SessionToken, TokenClaims, TokenIssuer

__all__ = [
    "Account",
    "AccountDeactivated",
    "AccountRepository",
    "AccountStateMachine",
    "AccountView",
    "ActivationState",
    "AlreadyVerified",
    "AuthError",
    "AuthResult",
    "ConcurrentUpdate",
    "ConflictError",
    "DependencyError",
    "DuplicateEmail",
    "ExpiredOTP",
    "IdentityError",
    "IdentityService",
    "IncorrectCurrentPassword",
    "InvalidCredentials",
    "InvalidOTP",
    "InvalidSignature",
    "NotFoundError",
    "NotificationError",
    "NotificationSender",
    "OTPCheck",
    "OTPDispatcher",
    "OTPEngine",
    "OTPPurpose",
    "OTPRecord",
    "PasswordHasher",
    "Role",
    "RoleProfile",
    "SessionToken",
    "StaleAccount",
    "TokenClaims",
    "TokenExpired",
    "TokenIssuer",
    "ValidationError",
    "VerificationState",
]
