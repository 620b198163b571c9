"""
Token issuer - Signed, time-bounded session tokens.

Tokens are HS256 JWTs carrying only the account id (``sub``) plus ``iat``
and ``exp``. They are self-contained: validation needs the signing secret
but no lookup in the record store.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from .exceptions import InvalidSignature, TokenExpired

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME = timedelta(days=30)


@dataclass(frozen=True)
class SessionToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    """Decoded, verified contents of a session token."""

    subject: str
    issued_at: datetime
    expires_at: datetime


class TokenIssuer:
    """Mint and verify session tokens with a process-wide signing secret."""

    def __init__(
        self,
        secret: str,
        lifetime: timedelta = DEFAULT_TOKEN_LIFETIME,
        algorithm: str = "HS256",
    ) -> None:
        if not secret:
            raise ValueError("Token signing secret is not configured")
        if secret == "change-me":
            logger.warning("Token signing secret uses the default value; set JWT_SECRET in production")
        self._secret = secret
        self._lifetime = lifetime
        self._algorithm = algorithm

    def issue(self, account_id: str, now: datetime | None = None) -> SessionToken:
        """
        Mint a token binding ``account_id`` until ``now + lifetime``.

        No side effects besides reading the signing secret.
        """
        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + self._lifetime
        payload = {"sub": account_id, "iat": issued_at, "exp": expires_at}
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        return SessionToken(token=token, expires_at=expires_at)

    def decode(self, token: str) -> TokenClaims:
        """
        Verify signature and expiry of a token and return its claims.

        Raises:
            TokenExpired: Signature is valid but ``exp`` has passed
            InvalidSignature: Token is malformed, tampered, or signed with
                another key
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpired() from e
        except jwt.InvalidTokenError as e:
            raise InvalidSignature() from e

        return TokenClaims(
            subject=payload["sub"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
