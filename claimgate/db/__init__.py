"""
Database Layer for ClaimGate

Provides:
- ClaimStore abstraction (InMemory for dev, Postgres for prod)
- The anonymous_claims schema
- Environment-based configuration
"""

from .store import (
    ClaimStore,
    ClaimAttempt,
    InMemoryClaimStore,
    PostgresClaimStore,
    ClaimStoreError,
    LockTimeoutError,
)
from .config import (
    DatabaseConfig,
    ClaimStoreDriver,
    get_database_url,
    get_claimstore_driver,
    load_database_config,
)
from .factory import create_claim_store

__all__ = [
    "ClaimStore",
    "ClaimAttempt",
    "InMemoryClaimStore",
    "PostgresClaimStore",
    "ClaimStoreError",
    "LockTimeoutError",
    "DatabaseConfig",
    "ClaimStoreDriver",
    "get_database_url",
    "get_claimstore_driver",
    "load_database_config",
    "create_claim_store",
]
