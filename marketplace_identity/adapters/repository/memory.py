"""
In-memory repository adapter - Implements AccountRepository protocol.

Process-local store for development and tests. It honours the same
contract as the PostgreSQL adapter: unique emails, atomic create of account
plus profile, and compare-and-swap saves on ``version``. Accounts are copied
on the way in and out so callers never share mutable state with the store.
"""

import copy
import dataclasses
import threading

from marketplace_identity.domain.exceptions import DuplicateEmail, StaleAccount
from marketplace_identity.domain.models import Account, RoleProfile


class InMemoryAccountRepository:
    """
    Implements AccountRepository protocol with dictionaries and a lock.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._accounts: dict[str, Account] = {}
        self._ids_by_email: dict[str, str] = {}
        self.profiles: dict[str, RoleProfile] = {}

    def find_by_email(self, email: str) -> Account | None:
        with self._lock:
            account_id = self._ids_by_email.get(email)
            if account_id is None:
                return None
            return copy.deepcopy(self._accounts[account_id])

    def find_by_id(self, account_id: str) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            return copy.deepcopy(account) if account is not None else None

    def create(self, account: Account, profile: RoleProfile | None) -> Account:
        with self._lock:
            if account.email in self._ids_by_email:
                raise DuplicateEmail(account.email)
            self._accounts[account.id] = copy.deepcopy(account)
            self._ids_by_email[account.email] = account.id
            if profile is not None:
                self.profiles[account.id] = profile
        return account

    def save(self, account: Account) -> Account:
        with self._lock:
            stored = self._accounts.get(account.id)
            if stored is None or stored.version != account.version:
                raise StaleAccount(account.id, account.version)
            saved = dataclasses.replace(copy.deepcopy(account), version=account.version + 1)
            self._accounts[account.id] = saved
            return copy.deepcopy(saved)
