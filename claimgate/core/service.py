"""
Claim Service - The Address Gate

Decides whether a network address may claim a catalog entry, and records
the claim when it may.

Per-request state machine:

    RECEIVED -> IDENTITY_RESOLVED -> VALIDATED -> WINDOW_CHECKED -> COMMITTED -> RESPONDED
        \\______________\\_______________\\______________> REJECTED(reason)
                                                    \\___> FAILED(cause)

Rules (enforced in code):
- Identity comes only from the configured headers (and the peer address
  when the policy trusts it)
- The option must name a catalog entry
- One accepted claim per address per window; the window restarts at the
  most recent accepted claim
- Window check and commit are a single atomic store operation
- Success is reported only after the commit returned

No state is retried; the caller may resubmit.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Mapping, Optional

from ..db.store import ClaimStore, ClaimStoreError
from ..schemas import AddressClaimRecord, CatalogEntry, ClaimData, ClaimRequest, ClaimResponse
from .catalog import Catalog
from .errors import ClaimError, IdentityUnavailable, RateLimited, StorageError
from .identity import resolve_client_address
from .policy import ClaimPolicy
from .validation import sanitize_input, validate_option

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Claim validated successfully"


class ClaimState(str, Enum):
    """Where a claim request ended up."""
    RECEIVED = "received"
    IDENTITY_RESOLVED = "identity_resolved"
    VALIDATED = "validated"
    WINDOW_CHECKED = "window_checked"
    COMMITTED = "committed"
    RESPONDED = "responded"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class ClaimOutcome:
    """
    Terminal result of submit_claim.

    state is RESPONDED on success, REJECTED for business rejections
    (InvalidOption, IdentityUnavailable, RateLimited) and FAILED for
    infrastructure errors (StorageError).
    """
    state: ClaimState
    record: Optional[AddressClaimRecord] = None
    entry: Optional[CatalogEntry] = None
    error: Optional[ClaimError] = None
    address: Optional[str] = None
    commit_ms: Optional[float] = None
    history: list[ClaimState] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.state == ClaimState.RESPONDED

    @property
    def status_code(self) -> int:
        if self.error is not None:
            return self.error.status_code
        return 200

    def to_response(self) -> ClaimResponse:
        if self.accepted and self.record is not None:
            return ClaimResponse(
                success=True,
                message=SUCCESS_MESSAGE,
                data=ClaimData.from_record(self.record),
            )
        error = self.error or StorageError("Outcome without error or record")
        return ClaimResponse(
            success=False,
            message=error.public_message,
            reason=error.reason,
        )


class ClaimService:
    """
    The server-side claim gate.

    Stateless apart from the shared ClaimStore: one instance can serve
    concurrent requests from many threads.
    """

    def __init__(
        self,
        store: ClaimStore,
        catalog: Catalog,
        policy: Optional[ClaimPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize ClaimService.

        Args:
            store: ClaimStore holding one record per address
            catalog: Known catalog entries
            policy: Window and identity rules (default ClaimPolicy())
            clock: Returns the current UTC time; injectable for tests
        """
        self._store = store
        self._catalog = catalog
        self._policy = policy or ClaimPolicy()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def policy(self) -> ClaimPolicy:
        return self._policy

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def store(self) -> ClaimStore:
        return self._store

    def submit_claim(
        self,
        request: ClaimRequest,
        headers: Mapping[str, str],
        peer_address: Optional[str] = None,
    ) -> ClaimOutcome:
        """
        Run one claim request through the gate.

        Args:
            request: Parsed claim body
            headers: Transport headers used to derive the caller address
            peer_address: Socket peer, only consulted if the policy trusts it

        Returns:
            ClaimOutcome; never raises for claim rejections or store failures
        """
        outcome = ClaimOutcome(state=ClaimState.RECEIVED, history=[ClaimState.RECEIVED])

        def advance(state: ClaimState) -> None:
            outcome.state = state
            outcome.history.append(state)

        try:
            # Step 1: identity
            address = resolve_client_address(
                headers,
                self._policy.identity_headers,
                peer_address if self._policy.trust_peer_address else None,
            )
            if address is None:
                raise IdentityUnavailable("No header yielded a valid IP literal")
            outcome.address = address
            advance(ClaimState.IDENTITY_RESOLVED)

            # Step 2: option
            entry = validate_option(self._catalog, request.option_id)
            outcome.entry = entry
            advance(ClaimState.VALIDATED)

            # Steps 3+4: atomic window check and commit
            now = self._clock()
            cutoff = self._policy.window_start(now)
            start = time.perf_counter()
            try:
                attempt = self._store.claim_if_eligible(
                    address=address,
                    option_id=entry.option_id,
                    caller_agent=sanitize_input(request.caller_agent, max_length=512) or None,
                    now=now,
                    cutoff=cutoff,
                )
            except ClaimStoreError as e:
                raise StorageError(str(e)) from e
            finally:
                outcome.commit_ms = round((time.perf_counter() - start) * 1000, 2)

            advance(ClaimState.WINDOW_CHECKED)
            if not attempt.accepted:
                blocking = attempt.record
                raise RateLimited(
                    f"Address {address} last claimed at "
                    f"{blocking.last_claimed_at.isoformat() if blocking else 'unknown'}",
                    window_days=self._policy.window_days,
                )

            outcome.record = attempt.record
            advance(ClaimState.COMMITTED)

        except StorageError as e:
            logger.error(f"Claim store failure: {e.detail}", exc_info=e.__cause__)
            outcome.error = e
            advance(ClaimState.FAILED)
            return outcome

        except ClaimError as e:
            logger.info(
                f"Claim rejected ({e.reason}): {e.detail} "
                f"[option={sanitize_input(request.option_id)!r}, address={outcome.address}]"
            )
            outcome.error = e
            advance(ClaimState.REJECTED)
            return outcome

        logger.info(
            f"Claim accepted: {outcome.record.claimed_option} for {outcome.address} "
            f"(client timestamp={sanitize_input(request.timestamp)!r})"
        )
        advance(ClaimState.RESPONDED)
        return outcome

    def purge_expired(self) -> int:
        """Remove address records whose window has fully elapsed."""
        cutoff = self._policy.window_start(self._clock())
        try:
            removed = self._store.purge_expired(cutoff)
        except ClaimStoreError as e:
            raise StorageError(str(e)) from e
        logger.info(f"Purged {removed} expired claim records (cutoff={cutoff.isoformat()})")
        return removed
