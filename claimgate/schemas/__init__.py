# Canonical schemas for the claim gate.
# Wire and persisted JSON use camelCase aliases; attributes are snake_case.

from .catalog import CatalogEntry, CatalogOption
from .claim import (
    AddressClaimRecord,
    ClaimData,
    ClaimRequest,
    ClaimResponse,
)
from .device import DeviceClaimRecord

__all__ = [
    # Catalog
    "CatalogEntry",
    "CatalogOption",
    # Server claims
    "AddressClaimRecord",
    "ClaimData",
    "ClaimRequest",
    "ClaimResponse",
    # Device claims
    "DeviceClaimRecord",
]
