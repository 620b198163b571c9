"""
Fixtures for tests that run against a real PostgreSQL database.

Requires PostgreSQL to be running (via docker-compose). Tests using the
``pool`` fixture are skipped when the database is unreachable.
"""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from marketplace_identity.adapters.repository.postgres import run_migrations
from marketplace_identity.config.settings import get_settings


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for integration tests and apply migrations."""
    settings = get_settings()
    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=True)
    try:
        pool.wait(timeout=5.0)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL is not reachable")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Remove all accounts (profiles cascade) before each test."""
    with pool.connection() as conn:
        conn.execute("TRUNCATE accounts CASCADE")
        conn.commit()
    yield
