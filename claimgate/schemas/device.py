"""
Device Claim Record Schema

The single record a device keeps about its last successful claim.
Persisted as JSON under one storage key:

    {"selectedOption": "bnu",
     "claimedAt": "2024-03-01T08:00:00+00:00",
     "expiresAt": "2024-03-31T08:00:00+00:00",
     "fingerprint": "9f2c..."}

A record that fails validation is treated as corrupt and discarded.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DeviceClaimRecord(BaseModel):
    """
    Last claim made on this device.

    expires_at is derived (claimed_at + window) but stored redundantly so
    validity checks never need the window configuration.
    """

    model_config = ConfigDict(populate_by_name=True)

    selected_option: str = Field(
        ...,
        alias="selectedOption",
        description="Catalog entry claimed on this device",
    )

    claimed_at: datetime = Field(
        ...,
        alias="claimedAt",
        description="When the claim was recorded",
    )

    expires_at: datetime = Field(
        ...,
        alias="expiresAt",
        description="End of the device window",
    )

    # Advisory only. Never used to deny a claim.
    fingerprint: Optional[str] = Field(
        default=None,
        description="Best-effort device signature for diagnostics",
    )

    @field_validator("selected_option")
    @classmethod
    def option_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("selectedOption must be a non-empty string")
        return v

    @field_validator("claimed_at", "expires_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
