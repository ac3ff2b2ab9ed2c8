"""
Claim Request Schemas

Wire contract for the claim gate:

    POST /api/claims
    {"optionId": "bnu", "timestamp": "...", "callerAgent": "..."}

    -> {"success": true, "message": "...", "data": {"address": ..., "claimedOption": ..., "claimedAt": ...}}

Plus the server-owned AddressClaimRecord kept in the claim store.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ClaimRequest(BaseModel):
    """
    Body of a claim submission.

    Only option_id is required. timestamp and caller_agent are advisory:
    they are logged and stored, never used in a decision.
    """

    model_config = ConfigDict(populate_by_name=True)

    option_id: str = Field(
        ...,
        alias="optionId",
        description="Identifier of the catalog entry being claimed",
    )

    timestamp: Optional[str] = Field(
        default=None,
        description="Client-side submission time (advisory)",
    )

    caller_agent: Optional[str] = Field(
        default=None,
        alias="callerAgent",
        description="Client user agent (advisory)",
    )


class AddressClaimRecord(BaseModel):
    """
    Last accepted claim for one network address.

    Unique by address: an accepted claim replaces the previous record
    and restarts the window from last_claimed_at.
    """
    address: str = Field(
        ...,
        description="Canonical IPv4/IPv6 literal of the caller",
    )

    claimed_option: str = Field(
        ...,
        description="Catalog entry claimed most recently",
    )

    last_claimed_at: datetime = Field(
        ...,
        description="Time of the most recent accepted claim (UTC)",
    )

    caller_agent: Optional[str] = Field(
        default=None,
        description="Advisory user agent string",
    )


class ClaimData(BaseModel):
    """Echo of an accepted claim."""

    model_config = ConfigDict(populate_by_name=True)

    address: str
    claimed_option: str = Field(..., alias="claimedOption")
    claimed_at: datetime = Field(..., alias="claimedAt")

    @classmethod
    def from_record(cls, record: AddressClaimRecord) -> "ClaimData":
        return cls(
            address=record.address,
            claimed_option=record.claimed_option,
            claimed_at=record.last_claimed_at,
        )


class ClaimResponse(BaseModel):
    """
    Structured response for every claim outcome.

    reason is a machine-readable rejection kind (e.g. "rate_limited");
    message is safe to show to a visitor.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: Optional[str] = None
    reason: Optional[str] = None
    data: Optional[ClaimData] = None

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
