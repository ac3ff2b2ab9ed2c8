"""
Claim Store Abstraction

This module defines the ClaimStore interface and provides two implementations:
- InMemoryClaimStore: For development and testing
- PostgresClaimStore: For production with durability and concurrency safety

The ClaimStore is responsible for:
- Uniqueness of claim records by network address
- The atomic window check + upsert (claim_if_eligible)
- Range queries and purges on last_claimed_at

The ClaimService retains responsibility for:
- Caller identity and input validation
- Choosing the window cutoff
- Translating store failures into StorageError

ATOMICITY CONTRACT:
claim_if_eligible() MUST behave as if serialized per address. Two callers
racing on the same address can never both observe "no active claim" and
both commit. A separate read followed by a write does not satisfy this.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Generator, Optional

import psycopg2

from ..schemas import AddressClaimRecord


# ============================================================
# EXCEPTIONS
# ============================================================

class ClaimStoreError(Exception):
    """Base exception for claim store errors."""
    pass


class LockTimeoutError(ClaimStoreError):
    """Raised when the address row stayed locked past the lock timeout."""
    pass


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass
class ClaimAttempt:
    """
    Result of an atomic claim attempt.

    accepted=True: record is the row just written.
    accepted=False: record is the existing claim that blocked this one.
    """
    accepted: bool
    record: Optional[AddressClaimRecord]


# ============================================================
# ABSTRACT BASE CLASS
# ============================================================

class ClaimStore(ABC):
    """
    Abstract base class for address claim storage.

    Implementations must ensure:
    1. At most one record per address
    2. claim_if_eligible is atomic per address
    3. A rejected attempt leaves the existing record untouched
    """

    @abstractmethod
    def claim_if_eligible(
        self,
        address: str,
        option_id: str,
        caller_agent: Optional[str],
        now: datetime,
        cutoff: datetime,
    ) -> ClaimAttempt:
        """
        Record a claim unless the address claimed at or after `cutoff`.

        Args:
            address: Canonical caller address (unique key)
            option_id: Catalog entry being claimed
            caller_agent: Advisory user agent
            now: Timestamp to store as last_claimed_at
            cutoff: Start of the window; a record with
                last_claimed_at >= cutoff blocks the claim

        Returns:
            ClaimAttempt describing what happened
        """
        pass

    @abstractmethod
    def get(self, address: str) -> Optional[AddressClaimRecord]:
        """Get the record for an address regardless of age."""
        pass

    @abstractmethod
    def find_active(self, address: str, since: datetime) -> Optional[AddressClaimRecord]:
        """Get the record for an address if last_claimed_at >= since."""
        pass

    @abstractmethod
    def purge_expired(self, cutoff: datetime) -> int:
        """
        Delete records with last_claimed_at < cutoff.

        Returns:
            Number of records removed
        """
        pass

    @abstractmethod
    def count(self) -> int:
        """Total number of address records."""
        pass


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

class InMemoryClaimStore(ClaimStore):
    """
    In-memory implementation of ClaimStore.

    Suitable for:
    - Development
    - Testing
    - Single-process deployments without persistence requirements

    NOT suitable for:
    - Production (no durability)
    - Multi-instance deployments (no shared state)
    """

    def __init__(self):
        self._records: dict[str, AddressClaimRecord] = {}
        self._lock = Lock()

    def claim_if_eligible(
        self,
        address: str,
        option_id: str,
        caller_agent: Optional[str],
        now: datetime,
        cutoff: datetime,
    ) -> ClaimAttempt:
        """Check and upsert under one lock acquisition."""
        with self._lock:
            existing = self._records.get(address)
            if existing is not None and existing.last_claimed_at >= cutoff:
                return ClaimAttempt(accepted=False, record=existing.model_copy())

            record = AddressClaimRecord(
                address=address,
                claimed_option=option_id,
                last_claimed_at=now,
                caller_agent=caller_agent,
            )
            self._records[address] = record
            return ClaimAttempt(accepted=True, record=record.model_copy())

    def get(self, address: str) -> Optional[AddressClaimRecord]:
        with self._lock:
            record = self._records.get(address)
            return record.model_copy() if record else None

    def find_active(self, address: str, since: datetime) -> Optional[AddressClaimRecord]:
        with self._lock:
            record = self._records.get(address)
            if record is None or record.last_claimed_at < since:
                return None
            return record.model_copy()

    def purge_expired(self, cutoff: datetime) -> int:
        with self._lock:
            expired = [
                address for address, record in self._records.items()
                if record.last_claimed_at < cutoff
            ]
            for address in expired:
                del self._records[address]
            return len(expired)

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def clear(self) -> None:
        """Clear all records (for testing only)."""
        with self._lock:
            self._records.clear()


# ============================================================
# POSTGRESQL IMPLEMENTATION
# ============================================================

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS anonymous_claims (
    ip_address      TEXT PRIMARY KEY,
    claimed_option  TEXT NOT NULL,
    last_claimed_at TIMESTAMPTZ NOT NULL,
    caller_agent    TEXT
);

CREATE INDEX IF NOT EXISTS idx_anonymous_claims_last_claimed_at
    ON anonymous_claims (last_claimed_at);
"""

# The WHERE on DO UPDATE is evaluated against the locked, current row, so a
# concurrent claim for the same address either waits and then fails the
# window check, or conflicts on the primary key and does the same.
UPSERT_IF_ELIGIBLE_SQL = """
    INSERT INTO anonymous_claims AS c
        (ip_address, claimed_option, last_claimed_at, caller_agent)
    VALUES (%(address)s, %(option_id)s, %(now)s, %(caller_agent)s)
    ON CONFLICT (ip_address) DO UPDATE
    SET claimed_option = EXCLUDED.claimed_option,
        last_claimed_at = EXCLUDED.last_claimed_at,
        caller_agent = EXCLUDED.caller_agent
    WHERE c.last_claimed_at < %(cutoff)s
    RETURNING ip_address, claimed_option, last_claimed_at, caller_agent
"""

SELECT_COLUMNS = "ip_address, claimed_option, last_claimed_at, caller_agent"


class PostgresClaimStore(ClaimStore):
    """
    PostgreSQL implementation of ClaimStore.

    Provides:
    - Atomic conditional upsert via INSERT ... ON CONFLICT ... WHERE
    - Durability and multi-instance support (shared database)
    - Lock/statement timeouts to prevent hanging

    THREAD SAFETY:
    Each call opens its own connection from connection_factory, so one
    store instance can be shared across request threads.

    Usage:
        store = PostgresClaimStore(lambda: psycopg2.connect(dsn))
        store.ensure_schema()
    """

    # Timeouts to prevent hanging under load
    LOCK_TIMEOUT_MS = 2000  # 2 seconds
    STATEMENT_TIMEOUT_MS = 10000  # 10 seconds

    # psycopg2 error codes for lock/statement timeout
    PGCODE_LOCK_NOT_AVAILABLE = '55P03'
    PGCODE_QUERY_CANCELED = '57014'

    def __init__(
        self,
        connection_factory: Callable[[], Any],
        lock_timeout_ms: int = LOCK_TIMEOUT_MS,
        statement_timeout_ms: int = STATEMENT_TIMEOUT_MS,
    ):
        """
        Initialize PostgreSQL claim store.

        Args:
            connection_factory: Callable that returns a psycopg2 connection.
            lock_timeout_ms: How long to wait for a row lock (ms). Default 2000.
            statement_timeout_ms: Max statement execution time (ms). Default 10000.
        """
        self._connection_factory = connection_factory
        self._lock_timeout_ms = lock_timeout_ms
        self._statement_timeout_ms = statement_timeout_ms

    @contextmanager
    def _transaction(self) -> Generator[Any, None, None]:
        """
        Yield a cursor inside one transaction with timeouts applied.

        Commits on normal exit, rolls back on error, always closes.
        Driver errors, including a failed connect, are re-raised as
        ClaimStoreError / LockTimeoutError.
        """
        conn = cursor = None
        try:
            conn = self._connection_factory()
            conn.autocommit = False
            cursor = conn.cursor()
            # SET LOCAL keeps timeouts transaction-scoped
            cursor.execute(f"SET LOCAL lock_timeout = '{self._lock_timeout_ms}ms'")
            cursor.execute(f"SET LOCAL statement_timeout = '{self._statement_timeout_ms}ms'")
            yield cursor
            conn.commit()
        except psycopg2.Error as e:
            if conn is not None:
                self._safe_rollback(conn)
            kind = self._timeout_kind(e)
            if kind == "lock":
                raise LockTimeoutError(
                    "Claim row busy - could not acquire lock."
                ) from e
            if kind is not None:
                raise ClaimStoreError("Query timed out.") from e
            raise ClaimStoreError(f"Database error: {e.__class__.__name__}") from e
        except BaseException:
            if conn is not None:
                self._safe_rollback(conn)
            raise
        finally:
            try:
                if cursor is not None:
                    cursor.close()
            finally:
                if conn is not None:
                    conn.close()

    @staticmethod
    def _safe_rollback(conn) -> None:
        try:
            conn.rollback()
        except psycopg2.Error:
            pass  # Connection might be broken

    def _timeout_kind(self, e: Exception) -> Optional[str]:
        """
        Determine the type of timeout from a PostgreSQL exception.

        Returns:
            "lock" - Lock-related failure
            "statement" - Statement timeout
            "timeout" - Some timeout but unclear which
            None - Not a timeout error

        NOTE: PostgreSQL uses 57014 (query_canceled) for BOTH lock_timeout and
        statement_timeout, so the message text decides which one it was.
        """
        pgcode = getattr(e, 'pgcode', None)
        err_msg = (getattr(e, 'pgerror', None) or str(e)).lower()

        if pgcode == self.PGCODE_LOCK_NOT_AVAILABLE:
            return "lock"

        if pgcode == self.PGCODE_QUERY_CANCELED:
            if 'lock timeout' in err_msg or 'lock_timeout' in err_msg:
                return "lock"
            if 'statement timeout' in err_msg or 'statement_timeout' in err_msg:
                return "statement"
            return "timeout"

        return None

    def ensure_schema(self) -> None:
        """Create the claims table and index if missing."""
        with self._transaction() as cursor:
            cursor.execute(SCHEMA_SQL)

    def claim_if_eligible(
        self,
        address: str,
        option_id: str,
        caller_agent: Optional[str],
        now: datetime,
        cutoff: datetime,
    ) -> ClaimAttempt:
        """Single-statement conditional upsert."""
        with self._transaction() as cursor:
            cursor.execute(UPSERT_IF_ELIGIBLE_SQL, {
                "address": address,
                "option_id": option_id,
                "now": now,
                "caller_agent": caller_agent,
                "cutoff": cutoff,
            })
            row = cursor.fetchone()
            if row is not None:
                return ClaimAttempt(accepted=True, record=self._row_to_record(row))

            # Blocked: report the claim that is holding the window
            cursor.execute(
                f"SELECT {SELECT_COLUMNS} FROM anonymous_claims WHERE ip_address = %s",
                (address,),
            )
            existing = cursor.fetchone()
            return ClaimAttempt(
                accepted=False,
                record=self._row_to_record(existing) if existing else None,
            )

    def get(self, address: str) -> Optional[AddressClaimRecord]:
        with self._transaction() as cursor:
            cursor.execute(
                f"SELECT {SELECT_COLUMNS} FROM anonymous_claims WHERE ip_address = %s",
                (address,),
            )
            row = cursor.fetchone()
            return self._row_to_record(row) if row else None

    def find_active(self, address: str, since: datetime) -> Optional[AddressClaimRecord]:
        with self._transaction() as cursor:
            cursor.execute(
                f"""
                SELECT {SELECT_COLUMNS} FROM anonymous_claims
                WHERE ip_address = %s AND last_claimed_at >= %s
                """,
                (address, since),
            )
            row = cursor.fetchone()
            return self._row_to_record(row) if row else None

    def purge_expired(self, cutoff: datetime) -> int:
        with self._transaction() as cursor:
            cursor.execute(
                "DELETE FROM anonymous_claims WHERE last_claimed_at < %s",
                (cutoff,),
            )
            return cursor.rowcount

    def count(self) -> int:
        with self._transaction() as cursor:
            cursor.execute("SELECT COUNT(*) FROM anonymous_claims")
            return cursor.fetchone()[0]

    def _row_to_record(self, row: tuple) -> AddressClaimRecord:
        """Convert a database row to an AddressClaimRecord."""
        last_claimed_at = row[2]
        if last_claimed_at.tzinfo is None:
            last_claimed_at = last_claimed_at.replace(tzinfo=timezone.utc)

        return AddressClaimRecord(
            address=row[0],
            claimed_option=row[1],
            last_claimed_at=last_claimed_at,
            caller_agent=row[3],
        )
