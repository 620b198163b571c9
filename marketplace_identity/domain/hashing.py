"""
Credential hasher - bcrypt password hashing and verification.

Hashes are salted with a configurable work factor. Verification goes through
``bcrypt.checkpw``; stored hashes are never compared directly.
"""

from dataclasses import dataclass, field

import bcrypt

# bcrypt only considers the first 72 bytes and newer releases reject longer input
MAX_PASSWORD_BYTES = 72


@dataclass
class PasswordHasher:
    """Hash and verify passwords with a configurable bcrypt cost factor."""

    rounds: int = 12
    _dummy_hash: bytes | None = field(default=None, init=False, repr=False)

    def hash(self, password: str) -> str:
        """Return a salted bcrypt hash of the cleartext password."""
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self.rounds)).decode()

    def verify(self, password: str, password_hash: str) -> bool:
        """
        Check a cleartext password against a stored bcrypt hash.

        Returns False instead of raising for malformed hashes or passwords
        bcrypt refuses to process.
        """
        try:
            return bcrypt.checkpw(password.encode(), password_hash.encode())
        except ValueError:
            return False

    def burn(self, password: str) -> None:
        """
        Spend one verification's worth of effort against a dummy hash.

        Used when the account does not exist so that "unknown email" and
        "wrong password" take the same time.
        """
        if self._dummy_hash is None:
            self._dummy_hash = bcrypt.hashpw(
                b"dummy_password_for_timing_safety", bcrypt.gensalt(rounds=self.rounds)
            )
        bcrypt.checkpw(password.encode()[:MAX_PASSWORD_BYTES], self._dummy_hash)
