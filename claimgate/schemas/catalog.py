"""
Catalog Entry Schema

One selectable textbook edition and the shared link it unlocks.
Entries are read-only; the catalog itself is a fixed lookup table.
"""

from pydantic import BaseModel, ConfigDict, Field


class CatalogEntry(BaseModel):
    """A claimable edition with its shareable link and extraction code."""

    model_config = ConfigDict(frozen=True)

    option_id: str = Field(
        ...,
        min_length=1,
        description="Stable identifier sent by clients (e.g. 'bnu')",
        examples=["bnu", "yilin"],
    )

    name: str = Field(
        ...,
        min_length=1,
        description="Display name of the edition",
    )

    linkage: str = Field(
        ...,
        description="Opaque shareable cloud-storage link",
    )

    extraction_code: str = Field(
        default="",
        description="Code required to open the shared link",
    )


class CatalogOption(BaseModel):
    """Public view of a catalog entry. Never carries the link."""
    option_id: str = Field(..., serialization_alias="optionId")
    name: str
