"""
Account state machine - Verification and activation transitions.

Two orthogonal axes:

    Verification:  UNVERIFIED -> VERIFIED   (once, irreversible, OTP only)
    Activation:    ACTIVE <-> DEACTIVATED   (admin action)

Guards:
- verify requires UNVERIFIED, otherwise AlreadyVerified
- login requires ACTIVE, otherwise AccountDeactivated; verification is
  NOT required, an unverified account may log in

The machine mutates the in-memory aggregate only. Callers persist the
account with a single save so OTP fields and flags change together.
"""

from .exceptions import AccountDeactivated, AlreadyVerified
from .models import Account
from .ports import ActivationState, OTPPurpose, VerificationState


class AccountStateMachine:
    """Transition functions over the Account aggregate."""

    @staticmethod
    def initialize(account: Account) -> None:
        """Put a newly created account in its initial UNVERIFIED, ACTIVE state."""
        account.verification_state = VerificationState.UNVERIFIED
        account.activation_state = ActivationState.ACTIVE

    @staticmethod
    def ensure_unverified(account: Account) -> None:
        if account.is_verified:
            raise AlreadyVerified()

    @classmethod
    def verify(cls, account: Account) -> None:
        """
        Mark the account verified and consume its verification OTP.

        The caller must already have validated the OTP.
        """
        cls.ensure_unverified(account)
        account.verification_state = VerificationState.VERIFIED
        account.clear_otp(OTPPurpose.VERIFICATION)

    @staticmethod
    def ensure_can_login(account: Account) -> None:
        if not account.is_active:
            raise AccountDeactivated()

    @staticmethod
    def deactivate(account: Account) -> None:
        account.activation_state = ActivationState.DEACTIVATED

    @staticmethod
    def reactivate(account: Account) -> None:
        account.activation_state = ActivationState.ACTIVE
