"""
Client side of the claim protocol.

- DeviceClaimGuard: one-claim-per-device window over a LocalStorage
- ClaimClient: httpx wrapper for POST /api/claims
- ClaimFlow: validate -> guard -> server -> record
"""

from .api import ClaimClient, ServerReply
from .flow import ClaimFlow, ClaimResult, Eligibility
from .guard import (
    DeviceClaimGuard,
    GuardConfig,
    LoadResult,
    RecordResult,
    StorageStatus,
    generate_device_fingerprint,
)
from .messages import ClaimErrorKind, format_error_message, remaining_days_message
from .storage import FileStorage, LocalStorage, MemoryStorage, StorageUnavailableError

__all__ = [
    "ClaimClient",
    "ServerReply",
    "ClaimFlow",
    "ClaimResult",
    "Eligibility",
    "DeviceClaimGuard",
    "GuardConfig",
    "LoadResult",
    "RecordResult",
    "StorageStatus",
    "generate_device_fingerprint",
    "ClaimErrorKind",
    "format_error_message",
    "remaining_days_message",
    "FileStorage",
    "LocalStorage",
    "MemoryStorage",
    "StorageUnavailableError",
]
