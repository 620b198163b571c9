"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure, plus the state enums shared by domain and adapters.
Adapters implement these protocols through structural subtyping.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .models import Account, RoleProfile


class Role(str, Enum):
    """Marketplace role, fixed at account creation."""

    CUSTOMER = "customer"
    VENDOR = "vendor"
    RIDER = "rider"
    ADMIN = "admin"


class VerificationState(str, Enum):
    """
    Verification axis of the account state machine.

    UNVERIFIED -> VERIFIED happens exactly once, only through a valid
    verification-purpose OTP, and never reverses.
    """

    UNVERIFIED = "UNVERIFIED"
    VERIFIED = "VERIFIED"


class ActivationState(str, Enum):
    """
    Activation axis of the account state machine.

    Orthogonal to verification. DEACTIVATED overrides everything for login.
    """

    ACTIVE = "ACTIVE"
    DEACTIVATED = "DEACTIVATED"


class OTPPurpose(str, Enum):
    """What a one-time passcode proves."""

    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"


class OTPCheck(Enum):
    """
    Result of validating a submitted code against a stored OTP record.

    Only CONSUMED means success; the caller must then clear the record.
    """

    CONSUMED = "consumed"
    NOT_ISSUED = "not_issued"
    MISMATCH = "mismatch"
    EXPIRED = "expired"


class AccountRepository(Protocol):
    """Port interface for account persistence."""

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by normalized email."""
        ...

    def find_by_id(self, account_id: str) -> Account | None:
        """Look up an account by its immutable id."""
        ...

    def create(self, account: Account, profile: RoleProfile | None) -> Account:
        """
        Persist a new account together with its role-specific profile.

        Both rows are written in one transaction: either the account and its
        profile exist afterwards or neither does.

        Args:
            account: Freshly built account (version 0)
            profile: Role side record, None for roles without one

        Returns:
            The stored account

        Raises:
            DuplicateEmail: If the email is already registered
            DependencyError: If the store is unavailable
        """
        ...

    def save(self, account: Account) -> Account:
        """
        Write every mutable field of the account atomically.

        Compare-and-swap on ``account.version``: the write only applies if the
        stored version still equals the one the account was loaded with.

        Returns:
            The stored account with its version incremented

        Raises:
            StaleAccount: If another writer saved the account first
            DependencyError: If the store is unavailable
        """
        ...


class NotificationSender(Protocol):
    """Port interface for out-of-band OTP delivery over one channel."""

    def send_otp(self, destination: str, code: str, purpose: OTPPurpose) -> None:
        """
        Deliver an OTP to an e-mail address or phone number.

        Args:
            destination: Recipient address for this channel
            code: Numeric one-time passcode
            purpose: Verification or password reset, selects the wording

        Raises:
            NotificationError: If delivery failed
        """
        ...

    def close(self) -> None:
        """Release connections held between sends."""
        ...
