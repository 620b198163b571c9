"""
Identity lifecycle service - Account registration, verification and credentials.

This module orchestrates the credential lifecycle for customers, vendors,
riders and admins. It composes the password hasher, OTP engine, token issuer
and account state machine, and talks to the record store and notification
ports.

Consistency
===========

Every mutation is a read-modify-write on the Account aggregate:

    load -> mutate in memory -> save (compare-and-swap on version)

If another request saved the same account in between, the save raises
StaleAccount and the whole step is replayed on a fresh copy, so an OTP that
was just overwritten by a resend can never be consumed by a racing verify.
OTP fields and state flags always go out in the same save.

Notification
============

OTP delivery is handed to the OTPDispatcher after the account is saved and
is never awaited. Delivery failures are logged there and do not affect the
result of the operation.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TypeVar

from .exceptions import (
    ConcurrentUpdate,
    DuplicateEmail,
    ExpiredOTP,
    IncorrectCurrentPassword,
    InvalidCredentials,
    InvalidOTP,
    NotFoundError,
    StaleAccount,
    ValidationError,
)
from .hashing import MAX_PASSWORD_BYTES, PasswordHasher
from .models import Account, OTPRecord, RoleProfile
from .notifications import OTPDispatcher
from .otp import OTPEngine
from .ports import AccountRepository, OTPCheck, OTPPurpose, Role
from .state import AccountStateMachine
from .tokens import SessionToken, TokenIssuer

logger = logging.getLogger(__name__)

T = TypeVar("T")

_OTP_MESSAGES = {
    OTPPurpose.VERIFICATION: ("Invalid verification code", "Verification code has expired"),
    OTPPurpose.PASSWORD_RESET: ("Invalid reset code", "Reset code has expired"),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AccountView:
    """Role-agnostic public projection of an account."""

    id: str
    first_name: str
    last_name: str
    email: str
    role: Role
    is_verified: bool
    phone: str | None = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountView":
        return cls(
            id=account.id,
            first_name=account.first_name,
            last_name=account.last_name,
            email=account.email,
            role=account.role,
            is_verified=account.is_verified,
            phone=account.phone,
        )


@dataclass(frozen=True)
class AuthResult:
    """Successful login or verification: who, and their session token."""

    account: AccountView
    session: SessionToken


@dataclass
class IdentityService:
    """
    Domain service for the account credential lifecycle.

    All collaborators are injected once at process startup; tests pass fakes.
    """

    repository: AccountRepository
    dispatcher: OTPDispatcher
    token_issuer: TokenIssuer
    hasher: PasswordHasher = field(default_factory=PasswordHasher)
    otp_engine: OTPEngine = field(default_factory=OTPEngine)
    clock: Callable[[], datetime] = _utcnow
    min_password_length: int = 6
    max_write_attempts: int = 3

    def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        role: Role = Role.CUSTOMER,
        phone: str | None = None,
    ) -> AccountView:
        """
        Create an unverified account and send it a verification code.

        The account and its role profile are stored in one transaction.
        Code delivery is best-effort: the account exists even if the
        message never arrives.

        Raises:
            ValidationError: Empty names or unacceptable password
            DuplicateEmail: If the email is already registered
        """
        normalized_email = self._normalize_email(email)
        first_name, last_name = first_name.strip(), last_name.strip()
        if not normalized_email:
            raise ValidationError("Email is required")
        if not first_name or not last_name:
            raise ValidationError("First and last name are required")
        self._check_password(password)

        if self.repository.find_by_email(normalized_email) is not None:
            raise DuplicateEmail(normalized_email)

        now = self.clock()
        account = Account(
            email=normalized_email,
            password_hash=self.hasher.hash(password),
            first_name=first_name,
            last_name=last_name,
            role=role,
            phone=phone.strip() if phone and phone.strip() else None,
            created_at=now,
            updated_at=now,
        )
        AccountStateMachine.initialize(account)
        otp = self.otp_engine.issue(OTPPurpose.VERIFICATION, now)
        account.set_otp(otp)

        account = self.repository.create(account, RoleProfile.for_account(account))
        logger.info("Registered %s account %s", account.role.value, account.id)

        self.dispatcher.deliver(account, otp)
        return AccountView.from_account(account)

    def login(self, email: str, password: str) -> AuthResult:
        """
        Authenticate with email and password and mint a session token.

        Unknown email and wrong password raise the same InvalidCredentials,
        and both spend one bcrypt verification. A deactivated account is
        rejected whether or not the password is right. Unverified accounts
        may log in. If the password is replaced while the login is being
        recorded, the login fails.

        Raises:
            InvalidCredentials: Unknown email or wrong password
            AccountDeactivated: Account is deactivated
        """
        normalized_email = self._normalize_email(email)
        account = self.repository.find_by_email(normalized_email)
        if account is None:
            self.hasher.burn(password)
            raise InvalidCredentials()

        password_valid = self.hasher.verify(password, account.password_hash)
        AccountStateMachine.ensure_can_login(account)
        if not password_valid:
            raise InvalidCredentials()

        verified_hash = account.password_hash

        def record_login(current: Account) -> None:
            AccountStateMachine.ensure_can_login(current)
            # Password replaced since it was verified
            if current.password_hash != verified_hash:
                raise InvalidCredentials()
            current.last_login_at = self.clock()

        account, _ = self._update(account.id, record_login, loaded=account)
        logger.info("Account %s logged in", account.id)
        return AuthResult(AccountView.from_account(account), self.token_issuer.issue(account.id))

    def verify_account(self, email: str, code: str) -> AuthResult:
        """
        Consume the verification OTP and mark the account verified.

        Raises:
            NotFoundError: No account for the email
            AlreadyVerified: Account was verified before
            InvalidOTP: No pending code or the code does not match
            ExpiredOTP: Code matched but its window has passed
        """
        normalized_email = self._normalize_email(email)

        def consume(account: Account) -> None:
            AccountStateMachine.ensure_unverified(account)
            self._consume_otp(account, code, OTPPurpose.VERIFICATION)
            AccountStateMachine.verify(account)

        account, _ = self._update_by_email(normalized_email, consume)
        logger.info("Account %s verified", account.id)
        return AuthResult(AccountView.from_account(account), self.token_issuer.issue(account.id))

    def resend_verification(self, email: str) -> None:
        """
        Issue a new verification code, replacing the previous one.

        Raises:
            NotFoundError: No account for the email
            AlreadyVerified: Nothing left to verify
        """

        def reissue(account: Account) -> OTPRecord:
            AccountStateMachine.ensure_unverified(account)
            return self._issue_otp(account, OTPPurpose.VERIFICATION)

        account, otp = self._update_by_email(self._normalize_email(email), reissue)
        logger.info("Reissued verification code for account %s", account.id)
        self.dispatcher.deliver(account, otp)

    def forgot_password(self, email: str) -> None:
        """
        Issue a password-reset code, replacing any previous one.

        Raises:
            NotFoundError: No account for the email
        """

        def issue(account: Account) -> OTPRecord:
            return self._issue_otp(account, OTPPurpose.PASSWORD_RESET)

        account, otp = self._update_by_email(self._normalize_email(email), issue)
        logger.info("Issued password reset code for account %s", account.id)
        self.dispatcher.deliver(account, otp)

    def reset_password(self, email: str, code: str, new_password: str) -> None:
        """
        Consume the reset code and store a hash of the new password.

        Only the most recently issued reset code is accepted.

        Raises:
            ValidationError: Unacceptable new password
            NotFoundError: No account for the email
            InvalidOTP: No pending reset code or the code does not match
            ExpiredOTP: Code matched but its window has passed
        """
        self._check_password(new_password)
        new_hash = self.hasher.hash(new_password)

        def replace(account: Account) -> None:
            self._consume_otp(account, code, OTPPurpose.PASSWORD_RESET)
            account.clear_otp(OTPPurpose.PASSWORD_RESET)
            account.password_hash = new_hash

        account, _ = self._update_by_email(self._normalize_email(email), replace)
        logger.info("Password reset for account %s", account.id)

    def change_password(self, account_id: str, current_password: str, new_password: str) -> None:
        """
        Replace the password of an authenticated account.

        Raises:
            ValidationError: Unacceptable new password
            NotFoundError: Account no longer exists
            IncorrectCurrentPassword: Current password does not match
        """
        self._check_password(new_password)
        new_hash = self.hasher.hash(new_password)

        def replace(account: Account) -> None:
            if not self.hasher.verify(current_password, account.password_hash):
                raise IncorrectCurrentPassword()
            account.password_hash = new_hash

        self._update(account_id, replace)
        logger.info("Password changed for account %s", account_id)

    def authenticate(self, token: str) -> AccountView:
        """
        Resolve a session token to an active account.

        Raises:
            InvalidSignature: Token is malformed or tampered with
            TokenExpired: Token validity window has passed
            InvalidCredentials: Token subject no longer exists
            AccountDeactivated: Account was deactivated after issuance
        """
        claims = self.token_issuer.decode(token)
        account = self.repository.find_by_id(claims.subject)
        if account is None:
            raise InvalidCredentials("Not authorized, user not found")
        AccountStateMachine.ensure_can_login(account)
        return AccountView.from_account(account)

    def get_account(self, account_id: str) -> AccountView:
        account = self.repository.find_by_id(account_id)
        if account is None:
            raise NotFoundError()
        return AccountView.from_account(account)

    def deactivate(self, account_id: str) -> AccountView:
        """Admin action: block all further logins for the account."""
        account, _ = self._update(account_id, AccountStateMachine.deactivate)
        logger.info("Account %s deactivated", account_id)
        return AccountView.from_account(account)

    def reactivate(self, account_id: str) -> AccountView:
        """Admin action: allow a deactivated account to log in again."""
        account, _ = self._update(account_id, AccountStateMachine.reactivate)
        logger.info("Account %s reactivated", account_id)
        return AccountView.from_account(account)

    def _issue_otp(self, account: Account, purpose: OTPPurpose) -> OTPRecord:
        otp = self.otp_engine.issue(purpose, self.clock())
        account.set_otp(otp)
        return otp

    def _consume_otp(self, account: Account, code: str, purpose: OTPPurpose) -> None:
        invalid_message, expired_message = _OTP_MESSAGES[purpose]
        check = self.otp_engine.validate(code, account.pending_otp(purpose), purpose, self.clock())
        if check is OTPCheck.EXPIRED:
            raise ExpiredOTP(expired_message)
        if check is not OTPCheck.CONSUMED:
            raise InvalidOTP(invalid_message)

    def _update_by_email(
        self, email: str, mutate: Callable[[Account], T]
    ) -> tuple[Account, T]:
        account = self.repository.find_by_email(email)
        if account is None:
            raise NotFoundError()
        return self._update(account.id, mutate, loaded=account)

    def _update(
        self,
        account_id: str,
        mutate: Callable[[Account], T],
        loaded: Account | None = None,
    ) -> tuple[Account, T]:
        """
        Apply ``mutate`` to the account and save it with compare-and-swap.

        On StaleAccount the account is reloaded and ``mutate`` replayed, so
        guards always run against the state that is actually written over.
        ``mutate`` may raise to abort without saving.

        Args:
            account_id: Account to update
            mutate: Mutates the account in place and returns a value
            loaded: Copy already fetched by the caller, used for the first try

        Returns:
            Tuple of (saved account, value returned by mutate)

        Raises:
            NotFoundError: Account does not exist
            ConcurrentUpdate: Lost the race ``max_write_attempts`` times
        """
        account = loaded
        for attempt in range(1, self.max_write_attempts + 1):
            if account is None:
                account = self.repository.find_by_id(account_id)
                if account is None:
                    raise NotFoundError()

            result = mutate(account)
            account.updated_at = self.clock()
            try:
                return self.repository.save(account), result
            except StaleAccount:
                logger.warning(
                    "Concurrent update on account %s (attempt %d/%d)",
                    account_id,
                    attempt,
                    self.max_write_attempts,
                )
                account = None

        raise ConcurrentUpdate()

    def _check_password(self, password: str) -> None:
        if len(password) < self.min_password_length:
            raise ValidationError(
                f"Password must be at least {self.min_password_length} characters"
            )
        if len(password.encode()) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()
