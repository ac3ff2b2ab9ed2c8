"""
Claim store construction from environment configuration.

Mode is determined by environment variables:
- CLAIMSTORE_DRIVER: Explicit driver selection (memory, psycopg2)
- DATABASE_URL or DATABASE_HOST: Database connection (auto-selects psycopg2)
- Neither set: Use in-memory (default for development)
"""

import logging

import psycopg2

from .config import ClaimStoreDriver, DatabaseConfig, get_claimstore_driver, load_database_config
from .store import ClaimStore, ClaimStoreError, InMemoryClaimStore, PostgresClaimStore

logger = logging.getLogger(__name__)


def create_claim_store() -> ClaimStore:
    """
    Create the appropriate ClaimStore based on configuration.

    Returns:
        InMemoryClaimStore for development/testing
        PostgresClaimStore for production (when a database is configured)

    Raises:
        ClaimStoreError: psycopg2 was selected but the database is unreachable
    """
    driver = get_claimstore_driver()

    if driver == ClaimStoreDriver.MEMORY:
        logger.info("Using in-memory claim store (no persistence)")
        return InMemoryClaimStore()

    config = load_database_config()
    if config is None:
        logger.warning(
            f"Driver is {driver.value} but no database configured; "
            "falling back to in-memory claim store"
        )
        return InMemoryClaimStore()

    return create_postgres_store(config)


def create_postgres_store(config: DatabaseConfig) -> PostgresClaimStore:
    """Create PostgresClaimStore, verify connectivity and ensure the schema."""

    def connection_factory():
        return psycopg2.connect(**config.connect_kwargs())

    try:
        test_conn = connection_factory()
        test_conn.close()
    except psycopg2.Error as e:
        raise ClaimStoreError(
            f"Could not connect to PostgreSQL at {config.to_url(include_password=False)}"
        ) from e

    store = PostgresClaimStore(connection_factory)
    store.ensure_schema()
    logger.info(f"PostgreSQL claim store ready ({config.host}:{config.port}/{config.database})")
    return store
