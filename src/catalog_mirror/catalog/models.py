"""
Catalog entity model.

CatalogEntity is the unit of record written to the sink. Only fields
that were explicitly set travel to the sink, so a pass that never
touches `rank` cannot clear it.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_CREATOR = "Unknown Creator"

PLACEHOLDERS = frozenset(
    {UNKNOWN_TITLE.lower(), UNKNOWN_ARTIST.lower(), UNKNOWN_CREATOR.lower()}
)


class Collection(str, Enum):
    """Sink collections populated by the pipeline."""

    TRACKS = "tracks"
    EXPERIENCES = "experiences"


class AvailabilityState(str, Enum):
    """
    Availability of an entity, re-evaluated every enrichment cycle.

    CHECKING only exists while lookups are in flight.
    """

    UNVERIFIED = "unverified"
    CHECKING = "checking"
    READY = "ready"
    NOT_READY = "not_ready"


class AvailabilityReason(str, Enum):
    """Why an entity is NOT_READY, in detection priority order."""

    SOURCE_METADATA_UNAVAILABLE = "source_metadata_unavailable"
    WRONG_TYPE = "wrong_type"
    DELIVERY_FORBIDDEN = "delivery_forbidden"
    DELIVERY_NOT_FOUND = "delivery_not_found"
    DELIVERY_UNAVAILABLE = "delivery_unavailable"
    ENRICHMENT_FAILED = "enrichment_failed"


class CatalogEntity(BaseModel):
    """A track or experience mirrored from the upstream catalog."""

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    external_id: int = Field(..., description="Upstream id, primary key for upsert")

    title: str | None = None
    creator: str | None = None

    # Optional attributes
    album: str | None = None
    genre: str | None = None
    duration_seconds: float | None = None
    media_asset_id: int | None = Field(default=None, description="Album art / preview image id")
    thumbnail_url: str | None = None

    rank: int | None = Field(default=None, description="Position in the last ranked refresh")
    source_tag: str | None = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)

    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None
    verified_at: datetime | None = None

    availability_state: AvailabilityState = AvailabilityState.UNVERIFIED
    availability_reason: str | None = None
    delivery_status: int | None = None
    popularity_score: float | None = None

    vote_count: int | None = None
    upvote_percent: float | None = None
    creator_verified: bool | None = None

    @classmethod
    def observed(cls, **fields: Any) -> "CatalogEntity":
        """
        Build an entity from a discovery observation.

        Attributes the source did not report stay unset, so a sparse
        listing never blanks out what enrichment already stored.
        """
        return cls(**{name: value for name, value in fields.items() if value is not None})

    def to_row(self) -> dict[str, Any]:
        """Serialize the explicitly set fields for an upsert."""
        row = self.model_dump(mode="json", exclude_unset=True)
        row["external_id"] = self.external_id
        return row


def is_placeholder(value: str | None) -> bool:
    """Empty strings and the literal fallbacks count as unknown."""
    if value is None or not value.strip():
        return True
    return value.strip().lower() in PLACEHOLDERS
