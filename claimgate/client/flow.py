"""
Claim Flow

The client-side sequence behind the "claim" button:

    validate option -> device guard -> server claim -> record on device

Only one claim may be in flight per ClaimFlow; a second submission while
one is pending is refused with ClaimErrorKind.BUSY instead of queued.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from ..core.catalog import Catalog
from ..core.errors import InvalidOption
from ..core.validation import validate_option
from ..schemas import CatalogEntry
from .api import ClaimClient
from .guard import DeviceClaimGuard, StorageStatus
from .messages import ClaimErrorKind, format_error_message, remaining_days_message

logger = logging.getLogger(__name__)


@dataclass
class ClaimResult:
    success: bool
    option_id: Optional[str] = None
    entry: Optional[CatalogEntry] = None
    kind: Optional[ClaimErrorKind] = None
    message: Optional[str] = None
    server_data: dict[str, Any] = field(default_factory=dict)
    # False when the claim succeeded but the device could not remember it
    recorded_locally: bool = False


@dataclass
class Eligibility:
    can_claim: bool
    kind: Optional[ClaimErrorKind] = None
    message: Optional[str] = None
    remaining_days: int = 0


class ClaimFlow:
    """Client claim orchestration over a guard, an API client and a catalog."""

    def __init__(self, guard: DeviceClaimGuard, client: ClaimClient, catalog: Catalog):
        self._guard = guard
        self._client = client
        self._catalog = catalog
        self._processing = threading.Lock()

    @property
    def is_processing(self) -> bool:
        return self._processing.locked()

    def _failure(self, kind: ClaimErrorKind, option_id: Optional[str], detail: Optional[str] = None) -> ClaimResult:
        return ClaimResult(
            success=False,
            option_id=option_id,
            kind=kind,
            message=format_error_message(kind, detail),
        )

    def _restricted_message(self, days: int) -> str:
        return f"{format_error_message(ClaimErrorKind.DEVICE_RESTRICTED)}. {remaining_days_message(days)}"

    def check_eligibility(self, option_id: Optional[str] = None) -> Eligibility:
        """
        Local-only eligibility: device window first, then option.

        Storage that cannot be read counts as "no claim" so the page stays
        usable.
        """
        if self._guard.is_valid():
            days = self._guard.remaining_days()
            return Eligibility(
                can_claim=False,
                kind=ClaimErrorKind.DEVICE_RESTRICTED,
                message=self._restricted_message(days),
                remaining_days=days,
            )

        if option_id is not None:
            try:
                validate_option(self._catalog, option_id)
            except InvalidOption:
                return Eligibility(
                    can_claim=False,
                    kind=ClaimErrorKind.VALIDATION_ERROR,
                    message="The selected edition is not available",
                )

        return Eligibility(can_claim=True)

    def process_claim(self, option_id: str) -> ClaimResult:
        """Run the full claim sequence for one option."""
        if not self._processing.acquire(blocking=False):
            return self._failure(ClaimErrorKind.BUSY, option_id)

        try:
            try:
                entry = validate_option(self._catalog, option_id)
            except InvalidOption:
                detail = "Please select a textbook edition" if not (option_id or "").strip() \
                    else "The selected edition is not available"
                return self._failure(ClaimErrorKind.VALIDATION_ERROR, option_id, detail)

            if self._guard.is_valid():
                return ClaimResult(
                    success=False,
                    option_id=entry.option_id,
                    kind=ClaimErrorKind.DEVICE_RESTRICTED,
                    message=self._restricted_message(self._guard.remaining_days()),
                )

            reply = self._client.submit(entry.option_id)
            if not reply.success:
                return ClaimResult(
                    success=False,
                    option_id=entry.option_id,
                    kind=reply.kind,
                    message=reply.message,
                )

            result = self._guard.record(entry.option_id)
            if result.status == StorageStatus.UNAVAILABLE:
                logger.warning("Claim accepted but device storage is unavailable; not recorded locally")

            return ClaimResult(
                success=True,
                option_id=entry.option_id,
                entry=entry,
                server_data=reply.data,
                recorded_locally=result.persisted,
            )
        finally:
            self._processing.release()
