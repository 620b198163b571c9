"""
Domain exceptions - Semantic error types for the identity lifecycle.

Every error carries a stable ``kind`` string and a human-readable
``message`` that are safe to show to the caller. Infrastructure detail
travels only on ``__cause__`` and is never part of the message.

Taxonomy:
- ValidationError: bad or missing input
- NotFoundError: account does not exist
- ConflictError: duplicate email, already verified, lost update race
- AuthError: bad credentials, invalid/expired OTP, deactivated account,
  invalid/expired session token
- DependencyError: record store or notification failure
"""


class IdentityError(Exception):
    """Base class for identity domain errors."""

    kind = "identity_error"
    default_message = "Identity operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(IdentityError):
    """Input failed a domain rule (password length, empty names...)."""

    kind = "validation_error"
    default_message = "Invalid input"


class NotFoundError(IdentityError):
    """No account matches the lookup key."""

    kind = "not_found"
    default_message = "User not found"


class ConflictError(IdentityError):
    """Request conflicts with the current account state."""

    kind = "conflict"
    default_message = "Request conflicts with current state"


class DuplicateEmail(ConflictError):
    """Email is already registered to another account."""

    kind = "duplicate_email"
    default_message = "User already exists with this email"

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__()

    def __str__(self) -> str:
        return f"{self.message}: {self.email}"


class AlreadyVerified(ConflictError):
    """Account has already completed verification."""

    kind = "already_verified"
    default_message = "Account is already verified"


class ConcurrentUpdate(ConflictError):
    """Account kept changing underneath us; retries exhausted."""

    kind = "concurrent_update"
    default_message = "Account was modified concurrently, please retry"


class StaleAccount(Exception):
    """
    Raised by repositories when a save loses the compare-and-swap race.

    Internal to the read-modify-write loop; callers of the domain service
    see ConcurrentUpdate once retries are exhausted.
    """

    def __init__(self, account_id: str, expected_version: int) -> None:
        self.account_id = account_id
        self.expected_version = expected_version
        super().__init__(f"Account {account_id} changed since version {expected_version}")


class AuthError(IdentityError):
    """Authentication or proof-of-possession failure."""

    kind = "auth_error"
    default_message = "Not authorized"


class InvalidCredentials(AuthError):
    """Unknown email or wrong password. Deliberately indistinguishable."""

    kind = "invalid_credentials"
    default_message = "Invalid credentials"


class AccountDeactivated(AuthError):
    kind = "account_deactivated"
    default_message = "Your account has been deactivated. Please contact support."


class InvalidOTP(AuthError):
    kind = "invalid_otp"
    default_message = "Invalid verification code"


class ExpiredOTP(AuthError):
    kind = "expired_otp"
    default_message = "Verification code has expired"


class IncorrectCurrentPassword(AuthError):
    kind = "incorrect_current_password"
    default_message = "Current password is incorrect"


class InvalidSignature(AuthError):
    """Session token is malformed, tampered with, or signed with another key."""

    kind = "invalid_signature"
    default_message = "Not authorized, token failed"


class TokenExpired(AuthError):
    kind = "token_expired"
    default_message = "Not authorized, token expired"


class DependencyError(IdentityError):
    """Record store or another out-of-process collaborator failed."""

    kind = "dependency_error"
    default_message = "Service temporarily unavailable"


class NotificationError(DependencyError):
    """OTP delivery over e-mail or SMS failed."""

    kind = "notification_error"
    default_message = "Failed to deliver notification"
