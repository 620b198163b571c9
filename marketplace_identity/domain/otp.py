"""
OTP engine - Issue and validate numeric one-time passcodes.

Issuance is pure: the engine returns an OTPRecord and never touches storage,
so the caller decides how "generate + mutate account + notify" is ordered.

Validation order:
1. A record for the requested purpose must exist (NOT_ISSUED otherwise)
2. Submitted code must match (MISMATCH otherwise)
3. Current time must not be past the expiry (EXPIRED otherwise)

Codes are compared with secrets.compare_digest.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from .models import OTPRecord
from .ports import OTPCheck, OTPPurpose

DEFAULT_OTP_TTL = timedelta(minutes=10)


@dataclass(frozen=True)
class OTPEngine:
    """Stateless OTP issuer and validator."""

    ttl: timedelta = DEFAULT_OTP_TTL
    length: int = 6

    def issue(self, purpose: OTPPurpose, now: datetime) -> OTPRecord:
        """
        Generate a cryptographically random code valid for ``ttl``.

        Returns a string to preserve leading zeros.
        """
        code = "".join(secrets.choice("0123456789") for _ in range(self.length))
        return OTPRecord(code=code, purpose=purpose, issued_at=now, expires_at=now + self.ttl)

    def validate(
        self,
        submitted: str,
        record: OTPRecord | None,
        purpose: OTPPurpose,
        now: datetime,
    ) -> OTPCheck:
        """
        Check a submitted code against the stored record for a purpose.

        Args:
            submitted: Code supplied by the user
            record: Pending OTP stored on the account, or None
            purpose: Purpose the caller is trying to prove
            now: Current time (timezone-aware)

        Returns:
            OTPCheck.CONSUMED if the caller must now clear the record,
            otherwise the reason for rejection
        """
        if record is None or record.purpose is not purpose:
            return OTPCheck.NOT_ISSUED
        if not secrets.compare_digest(record.code.encode(), submitted.encode()):
            return OTPCheck.MISMATCH
        if record.is_expired(now):
            return OTPCheck.EXPIRED
        return OTPCheck.CONSUMED
