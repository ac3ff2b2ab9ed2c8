"""
Device Claim Guard

Keeps the single record of the last successful claim on this device and
answers "may this device claim?".

Rules (enforced in code):
- At most one record; a new claim overwrites the old one
- expires_at = claimed_at + window, exactly
- A record is valid iff now < expires_at (equality counts as expired)
- remaining_days() is never negative
- A record that fails to parse or validate is deleted and treated as absent
- Storage failures never raise into the caller; they surface as
  StorageStatus.UNAVAILABLE and the guard behaves as unrestricted

The fingerprint is diagnostic only and never affects a decision.
"""

import hashlib
import locale
import logging
import platform
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ..schemas import DeviceClaimRecord
from .storage import LocalStorage, StorageUnavailableError

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


class StorageStatus(str, Enum):
    """Outcome of a guard storage operation."""
    OK = "ok"                    # Read/write succeeded
    EMPTY = "empty"              # No record stored
    CORRUPT = "corrupt"          # Record was unreadable and has been discarded
    UNAVAILABLE = "unavailable"  # Storage medium failed


@dataclass(frozen=True)
class GuardConfig:
    """Configuration for the device claim guard."""
    storage_key: str = "claim_info"
    window_days: int = 30

    @property
    def window(self) -> timedelta:
        return timedelta(days=self.window_days)


@dataclass
class LoadResult:
    status: StorageStatus
    record: Optional[DeviceClaimRecord] = None


@dataclass
class RecordResult:
    """
    Result of recording a claim.

    record is always set: the claim happened even if it could not be
    persisted. persisted tells the caller whether the device will
    remember it.
    """
    status: StorageStatus
    record: DeviceClaimRecord

    @property
    def persisted(self) -> bool:
        return self.status == StorageStatus.OK


def generate_device_fingerprint() -> str:
    """Short hash over platform, locale and timezone details."""
    try:
        parts = [
            platform.system(),
            platform.release(),
            platform.machine(),
            platform.python_implementation(),
            locale.getlocale()[0] or "",
            str(time.timezone),
        ]
    except (ValueError, OSError):
        return "fingerprint-fallback"
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


class DeviceClaimGuard:
    """
    Client-side claim gate backed by a LocalStorage.

    Every public method reads storage afresh, so two guards sharing one
    storage always agree.
    """

    def __init__(
        self,
        storage: LocalStorage,
        config: Optional[GuardConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        fingerprint: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize the guard.

        Args:
            storage: Where the record lives
            config: Storage key and window length (default GuardConfig())
            clock: Returns the current time; injectable for tests
            fingerprint: Device signature provider (default generate_device_fingerprint)
        """
        self._storage = storage
        self._config = config or GuardConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._fingerprint = fingerprint or generate_device_fingerprint
        self.last_status: Optional[StorageStatus] = None

    @property
    def config(self) -> GuardConfig:
        return self._config

    def _now(self, now: Optional[datetime]) -> datetime:
        return _aware(now) if now is not None else _aware(self._clock())

    def _report(self, status: StorageStatus, action: str, error: Optional[Exception] = None) -> StorageStatus:
        self.last_status = status
        if status == StorageStatus.UNAVAILABLE:
            logger.warning(f"Claim storage unavailable during {action}: {error}")
        elif status == StorageStatus.CORRUPT:
            logger.warning(f"Discarded corrupt claim record during {action}: {error}")
        return status

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    def load_result(self) -> LoadResult:
        """Read and validate the stored record, healing corrupt data."""
        key = self._config.storage_key
        try:
            raw = self._storage.get_item(key)
        except StorageUnavailableError as e:
            return LoadResult(self._report(StorageStatus.UNAVAILABLE, "load", e))

        if raw is None:
            return LoadResult(self._report(StorageStatus.EMPTY, "load"))

        try:
            record = DeviceClaimRecord.model_validate_json(raw)
        except ValidationError as e:
            try:
                self._storage.remove_item(key)
            except StorageUnavailableError as remove_error:
                logger.warning(f"Could not remove corrupt claim record: {remove_error}")
            return LoadResult(self._report(StorageStatus.CORRUPT, "load", e))

        return LoadResult(self._report(StorageStatus.OK, "load"), record)

    def load(self) -> Optional[DeviceClaimRecord]:
        """The stored record, or None if absent, corrupt, or unreadable."""
        return self.load_result().record

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """True iff a record exists and now < expires_at."""
        record = self.load()
        if record is None:
            return False
        return self._now(now) < record.expires_at

    def remaining_days(self, now: Optional[datetime] = None) -> int:
        """Whole days left in the device window, rounded up. 0 if none."""
        record = self.load()
        if record is None:
            return 0
        remaining = record.expires_at - self._now(now)
        if remaining <= timedelta(0):
            return 0
        # Ceiling division on timedeltas stays exact
        return -(-remaining // ONE_DAY)

    def claimed_option(self) -> Optional[str]:
        record = self.load()
        return record.selected_option if record else None

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------

    def record(self, selected_option: str, now: Optional[datetime] = None) -> RecordResult:
        """
        Overwrite the stored record with a new claim.

        Raises:
            pydantic.ValidationError: selected_option is blank
        """
        claimed_at = self._now(now)
        record = DeviceClaimRecord(
            selected_option=selected_option,
            claimed_at=claimed_at,
            expires_at=claimed_at + self._config.window,
            fingerprint=self._fingerprint(),
        )

        try:
            self._storage.set_item(self._config.storage_key, record.to_json())
        except StorageUnavailableError as e:
            return RecordResult(self._report(StorageStatus.UNAVAILABLE, "record", e), record)

        logger.debug(
            f"Recorded device claim {record.selected_option} "
            f"until {record.expires_at.isoformat()} (fingerprint={record.fingerprint})"
        )
        return RecordResult(self._report(StorageStatus.OK, "record"), record)

    def clear(self) -> StorageStatus:
        """Delete the stored record. Idempotent."""
        try:
            self._storage.remove_item(self._config.storage_key)
        except StorageUnavailableError as e:
            return self._report(StorageStatus.UNAVAILABLE, "clear", e)
        return self._report(StorageStatus.OK, "clear")

    # ------------------------------------------------------------
    # Debug helpers
    # ------------------------------------------------------------

    def storage_info(self) -> dict[str, Any]:
        """Availability and size of the stored record."""
        key = self._config.storage_key
        try:
            data = self._storage.get_item(key)
        except StorageUnavailableError as e:
            return {
                "available": False,
                "size": 0,
                "size_formatted": "0 bytes",
                "has_data": False,
                "key": key,
                "error": str(e),
            }

        size = len(data.encode("utf-8")) if data else 0
        return {
            "available": self._storage.is_available(),
            "size": size,
            "size_formatted": f"{size / 1024:.2f} KB" if size > 1024 else f"{size} bytes",
            "has_data": bool(data),
            "key": key,
        }

    def export_record(self) -> Optional[dict[str, Any]]:
        """The stored record as JSON-ready camelCase data."""
        record = self.load()
        return record.model_dump(mode="json", by_alias=True) if record else None

    def import_record(self, data: dict[str, Any]) -> bool:
        """Validate and store a record exported earlier. False if rejected or not stored."""
        try:
            record = DeviceClaimRecord.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Invalid claim data provided: {e.error_count()} error(s)")
            return False

        try:
            self._storage.set_item(self._config.storage_key, record.to_json())
        except StorageUnavailableError as e:
            self._report(StorageStatus.UNAVAILABLE, "import", e)
            return False

        self._report(StorageStatus.OK, "import")
        return True
