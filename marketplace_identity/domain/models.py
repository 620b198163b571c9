"""
Domain models - Account aggregate and its value objects.

The Account is the consistency boundary for credential, verification and
activation state of one identity. Pending OTPs live on the aggregate as
optional values: ``None`` is the defined "absent" state, and clearing a
code is a deliberate transition saved together with the rest of the account.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from .ports import ActivationState, OTPPurpose, Role, VerificationState


@dataclass(frozen=True)
class OTPRecord:
    """Issued one-time passcode with an absolute expiry."""

    code: str
    purpose: OTPPurpose
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class RoleProfile:
    """Role-specific side record created alongside a new account."""

    role: Role
    account_id: str
    business_name: str | None = None

    @classmethod
    def for_account(cls, account: Account) -> RoleProfile | None:
        """
        Build the side record a new account of this role needs.

        Vendors get a default business name; admins have no profile.
        """
        if account.role is Role.ADMIN:
            return None
        if account.role is Role.VENDOR:
            return cls(
                role=account.role,
                account_id=account.id,
                business_name=f"{account.first_name} {account.last_name}'s Kitchen",
            )
        return cls(role=account.role, account_id=account.id)


def new_account_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Account:
    """Identity aggregate root."""

    email: str
    password_hash: str
    first_name: str
    last_name: str
    role: Role = Role.CUSTOMER
    phone: str | None = None
    id: str = field(default_factory=new_account_id)
    verification_state: VerificationState = VerificationState.UNVERIFIED
    activation_state: ActivationState = ActivationState.ACTIVE
    verification_otp: OTPRecord | None = None
    reset_otp: OTPRecord | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    @property
    def is_verified(self) -> bool:
        return self.verification_state is VerificationState.VERIFIED

    @property
    def is_active(self) -> bool:
        return self.activation_state is ActivationState.ACTIVE

    def pending_otp(self, purpose: OTPPurpose) -> OTPRecord | None:
        """Return the unconsumed OTP for a purpose, if any."""
        if purpose is OTPPurpose.VERIFICATION:
            return self.verification_otp
        return self.reset_otp

    def set_otp(self, record: OTPRecord) -> None:
        """Store a freshly issued OTP, overwriting any previous one of the same purpose."""
        if record.purpose is OTPPurpose.VERIFICATION:
            self.verification_otp = record
        else:
            self.reset_otp = record

    def clear_otp(self, purpose: OTPPurpose) -> None:
        """Consume the OTP of a purpose."""
        if purpose is OTPPurpose.VERIFICATION:
            self.verification_otp = None
        else:
            self.reset_otp = None
