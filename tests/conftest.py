"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock for OTP expiry
- In-memory record store and mocked notification channels
- A fully wired IdentityService using cheap bcrypt rounds
"""

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from marketplace_identity.adapters.repository.memory import InMemoryAccountRepository
from marketplace_identity.domain.hashing import PasswordHasher
from marketplace_identity.domain.identity import IdentityService
from marketplace_identity.domain.notifications import OTPDispatcher
from marketplace_identity.domain.tokens import TokenIssuer

TEST_SECRET = "test-signing-secret-0123456789abcdef"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def repository() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def email_sender() -> Mock:
    return Mock()


@pytest.fixture
def dispatcher(email_sender: Mock) -> Generator[OTPDispatcher, None, None]:
    dispatcher = OTPDispatcher(email_sender=email_sender, max_workers=1)
    yield dispatcher
    dispatcher.close()


@pytest.fixture
def token_issuer() -> TokenIssuer:
    return TokenIssuer(secret=TEST_SECRET)


@pytest.fixture
def hasher() -> PasswordHasher:
    """bcrypt hasher with the minimum cost so tests stay fast."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def service(
    repository: InMemoryAccountRepository,
    dispatcher: OTPDispatcher,
    token_issuer: TokenIssuer,
    hasher: PasswordHasher,
    clock: FrozenClock,
) -> IdentityService:
    return IdentityService(
        repository=repository,
        dispatcher=dispatcher,
        token_issuer=token_issuer,
        hasher=hasher,
        clock=clock,
    )
