"""
PostgreSQL repository adapter - Implements AccountRepository protocol.

This module provides the PostgreSQL implementation of the domain's
repository port using psycopg3 with raw SQL.

Concurrency Design - Optimistic Compare-and-Swap:
------------------------------------------------
Every account row carries a ``version`` counter. ``save`` only updates the
row when the stored version still equals the version the account was read
with, and bumps it in the same statement:

    UPDATE accounts SET ..., version = version + 1
    WHERE id = %(id)s AND version = %(version)s

A zero rowcount means another request saved the account first; the adapter
raises StaleAccount and the domain service replays its step on a fresh read.
All fields of the aggregate (OTP columns, state flags, password hash) are
written by that single statement, so they can never be observed half-updated.

Registration inserts the account and its role profile in one transaction.
The UNIQUE constraint on email turns a racing duplicate registration into
DuplicateEmail rather than a second row.

Driver errors are wrapped in DependencyError so psycopg detail never crosses
the domain boundary.
"""

import dataclasses
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from marketplace_identity.domain.exceptions import DependencyError, DuplicateEmail, StaleAccount
from marketplace_identity.domain.models import Account, OTPRecord, RoleProfile
from marketplace_identity.domain.ports import (
    ActivationState,
    OTPPurpose,
    Role,
    VerificationState,
)

logger = logging.getLogger(__name__)

_COLUMNS = """
    id, email, phone, password_hash, role, first_name, last_name,
    verification_state, activation_state,
    verification_code, verification_issued_at, verification_expires_at,
    reset_code, reset_issued_at, reset_expires_at,
    last_login_at, created_at, updated_at, version
"""

_PROFILE_SQL = {
    Role.CUSTOMER: "INSERT INTO customer_profiles (account_id) VALUES (%(account_id)s)",
    Role.VENDOR: """
        INSERT INTO vendor_profiles (account_id, business_name)
        VALUES (%(account_id)s, %(business_name)s)
    """,
    Role.RIDER: "INSERT INTO rider_profiles (account_id) VALUES (%(account_id)s)",
}


class PostgresAccountRepository:
    """
    Implements AccountRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def find_by_email(self, email: str) -> Account | None:
        return self._fetch_one(f"SELECT {_COLUMNS} FROM accounts WHERE email = %s", (email,))

    def find_by_id(self, account_id: str) -> Account | None:
        return self._fetch_one(f"SELECT {_COLUMNS} FROM accounts WHERE id = %s", (account_id,))

    def create(self, account: Account, profile: RoleProfile | None) -> Account:
        """
        Insert the account and its role profile in one transaction.

        Uses INSERT ... ON CONFLICT (email) DO NOTHING so a concurrent
        registration of the same email loses cleanly instead of raising a
        unique violation halfway through.

        Raises:
            DuplicateEmail: If the email is already registered
        """
        insert_sql = f"""
            INSERT INTO accounts ({_COLUMNS})
            VALUES (
                %(id)s, %(email)s, %(phone)s, %(password_hash)s, %(role)s,
                %(first_name)s, %(last_name)s,
                %(verification_state)s, %(activation_state)s,
                %(verification_code)s, %(verification_issued_at)s, %(verification_expires_at)s,
                %(reset_code)s, %(reset_issued_at)s, %(reset_expires_at)s,
                %(last_login_at)s, COALESCE(%(created_at)s, NOW()), COALESCE(%(updated_at)s, NOW()),
                %(version)s
            )
            ON CONFLICT (email) DO NOTHING
        """

        with self._cursor() as (conn, cursor):
            cursor.execute(insert_sql, _to_params(account))
            if cursor.rowcount != 1:
                conn.rollback()
                raise DuplicateEmail(account.email)

            if profile is not None:
                cursor.execute(
                    _PROFILE_SQL[profile.role],
                    {"account_id": profile.account_id, "business_name": profile.business_name},
                )
            conn.commit()

        return account

    def save(self, account: Account) -> Account:
        """
        Write all mutable fields with compare-and-swap on version.

        Raises:
            StaleAccount: If the stored version moved on since the read
        """
        update_sql = """
            UPDATE accounts
            SET phone = %(phone)s,
                password_hash = %(password_hash)s,
                first_name = %(first_name)s,
                last_name = %(last_name)s,
                verification_state = %(verification_state)s,
                activation_state = %(activation_state)s,
                verification_code = %(verification_code)s,
                verification_issued_at = %(verification_issued_at)s,
                verification_expires_at = %(verification_expires_at)s,
                reset_code = %(reset_code)s,
                reset_issued_at = %(reset_issued_at)s,
                reset_expires_at = %(reset_expires_at)s,
                last_login_at = %(last_login_at)s,
                updated_at = COALESCE(%(updated_at)s, NOW()),
                version = version + 1
            WHERE id = %(id)s AND version = %(version)s
        """

        with self._cursor() as (conn, cursor):
            cursor.execute(update_sql, _to_params(account))
            updated = cursor.rowcount == 1
            conn.commit()

        if not updated:
            raise StaleAccount(account.id, account.version)
        return dataclasses.replace(account, version=account.version + 1)

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> Account | None:
        with self._cursor() as (conn, cursor):
            cursor.execute(sql, params)
            row = cursor.fetchone()
            conn.commit()
        return _to_account(row) if row is not None else None

    @contextmanager
    def _cursor(self) -> Iterator[tuple[psycopg.Connection, psycopg.Cursor]]:
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                yield conn, cursor
        except psycopg.Error as e:
            logger.error("Record store error: %s", e)
            raise DependencyError() from e


def _to_params(account: Account) -> dict[str, Any]:
    verification = account.verification_otp
    reset = account.reset_otp
    return {
        "id": account.id,
        "email": account.email,
        "phone": account.phone,
        "password_hash": account.password_hash,
        "role": account.role.value,
        "first_name": account.first_name,
        "last_name": account.last_name,
        "verification_state": account.verification_state.value,
        "activation_state": account.activation_state.value,
        "verification_code": verification.code if verification else None,
        "verification_issued_at": verification.issued_at if verification else None,
        "verification_expires_at": verification.expires_at if verification else None,
        "reset_code": reset.code if reset else None,
        "reset_issued_at": reset.issued_at if reset else None,
        "reset_expires_at": reset.expires_at if reset else None,
        "last_login_at": account.last_login_at,
        "created_at": account.created_at,
        "updated_at": account.updated_at,
        "version": account.version,
    }


def _to_otp(row: dict[str, Any], prefix: str, purpose: OTPPurpose) -> OTPRecord | None:
    code = row[f"{prefix}_code"]
    if code is None:
        return None
    return OTPRecord(
        code=code,
        purpose=purpose,
        issued_at=row[f"{prefix}_issued_at"],
        expires_at=row[f"{prefix}_expires_at"],
    )


def _to_account(row: dict[str, Any]) -> Account:
    return Account(
        id=row["id"],
        email=row["email"],
        phone=row["phone"],
        password_hash=row["password_hash"],
        role=Role(row["role"]),
        first_name=row["first_name"],
        last_name=row["last_name"],
        verification_state=VerificationState(row["verification_state"]),
        activation_state=ActivationState(row["activation_state"]),
        verification_otp=_to_otp(row, "verification", OTPPurpose.VERIFICATION),
        reset_otp=_to_otp(row, "reset", OTPPurpose.PASSWORD_RESET),
        last_login_at=row["last_login_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        version=row["version"],
    )


MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"


def run_migrations(pool: ConnectionPool, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """
    Apply every ``*.sql`` file in ``migrations_dir`` in filename order.

    Files must be idempotent; they are re-applied on every startup. Each file
    runs in its own transaction.

    Returns:
        Names of the applied files

    Raises:
        DependencyError: A migration failed; startup must not continue
    """
    sql_files = sorted(migrations_dir.glob("*.sql"))
    if not sql_files:
        logger.warning("No migration files found in %s", migrations_dir)
        return []

    applied = []
    for sql_file in sql_files:
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
        except psycopg.Error as e:
            logger.error("Migration %s failed: %s", sql_file.name, e)
            raise DependencyError(f"Database migration failed: {sql_file.name}") from e
        applied.append(sql_file.name)
        logger.info("Applied migration %s", sql_file.name)
    return applied
