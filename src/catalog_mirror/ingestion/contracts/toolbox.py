"""
Data contracts for the toolbox (creator store) API.

Covers the paginated `assets:search` endpoint and the single-asset
detail endpoint, which returns the same CreatorStoreAsset envelope.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from catalog_mirror.catalog.models import UNKNOWN_ARTIST, UNKNOWN_TITLE, CatalogEntity
from catalog_mirror.ingestion.contracts.common import as_dict_list, clean_cursor, validate_items


class PreviewAssets(BaseModel):
    """Preview media attached to an asset."""

    image_preview_assets: list[int] | None = Field(default=None, alias="imagePreviewAssets")
    video_preview_assets: list[int] | None = Field(default=None, alias="videoPreviewAssets")

    model_config = ConfigDict(populate_by_name=True)


class ToolboxAsset(BaseModel):
    """Asset metadata block."""

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    name: str | None = None
    description: str | None = None
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    duration_seconds: float | None = Field(default=None, alias="durationSeconds")
    asset_type_id: int | None = Field(default=None, alias="assetTypeId")
    preview_assets: PreviewAssets | None = Field(default=None, alias="previewAssets")

    @property
    def preview_image_id(self) -> int | None:
        """First image preview, used as album art."""
        if self.preview_assets and self.preview_assets.image_preview_assets:
            return self.preview_assets.image_preview_assets[0]
        return None


class ToolboxCreator(BaseModel):
    """Creator block."""

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    name: str | None = None
    creator_type: str | None = Field(default=None, alias="creatorType")
    verified: bool | None = None
    has_verified_badge: bool | None = Field(default=None, alias="hasVerifiedBadge")

    @property
    def is_verified(self) -> bool | None:
        return self.verified if self.verified is not None else self.has_verified_badge


class VotingDetails(BaseModel):
    """Community voting block."""

    model_config = ConfigDict(populate_by_name=True)

    vote_count: int | None = Field(default=None, alias="voteCount")
    up_votes: int | None = Field(default=None, alias="upVotes")
    up_vote_percent: float | None = Field(default=None, alias="upVotePercent")

    @property
    def total_votes(self) -> int | None:
        return self.vote_count if self.vote_count is not None else self.up_votes


class CreatorStoreAsset(BaseModel):
    """One search hit, or the body of the single-asset endpoint."""

    asset: ToolboxAsset | None = None
    creator: ToolboxCreator | None = None
    voting: VotingDetails | None = None
    creator_store_product: dict[str, Any] | None = Field(
        default=None, alias="creatorStoreProduct"
    )

    model_config = ConfigDict(populate_by_name=True)


class ToolboxSearchResponse(BaseModel):
    """
    Response from the toolbox search endpoint.

    Endpoint: toolbox-service/v2/assets:search
    """

    model_config = ConfigDict(populate_by_name=True)

    creator_store_assets: list[dict[str, Any]] = Field(
        default_factory=list, alias="creatorStoreAssets"
    )
    next_page_token: str | None = Field(default=None, alias="nextPageToken")
    total_results: int | None = Field(default=None, alias="totalResults")

    @field_validator("creator_store_assets", mode="before")
    @classmethod
    def coerce_assets(cls, v: Any) -> list[dict[str, Any]]:
        """The API sends null instead of [] on empty pages."""
        return as_dict_list(v)

    @field_validator("next_page_token", mode="before")
    @classmethod
    def coerce_token(cls, v: Any) -> str | None:
        return clean_cursor(v)

    def entries(self) -> list[tuple[dict[str, Any], CreatorStoreAsset]]:
        """Valid entries with their raw JSON."""
        return validate_items(CreatorStoreAsset, self.creator_store_assets)


def normalize_toolbox_entry(
    raw: dict[str, Any],
    entry: CreatorStoreAsset,
    *,
    seen_at: datetime,
    source_tag: str,
) -> CatalogEntity | None:
    """
    Canonical record for one toolbox search hit.

    Returns:
        CatalogEntity, or None when the hit carries no asset id
    """
    asset = entry.asset
    if asset is None or asset.id is None:
        return None

    voting = entry.voting
    creator = entry.creator
    return CatalogEntity.observed(
        external_id=asset.id,
        title=(asset.title or asset.name or "").strip() or UNKNOWN_TITLE,
        creator=(asset.artist or "").strip() or UNKNOWN_ARTIST,
        album=(asset.album or "").strip() or None,
        genre=(asset.genre or "").strip() or None,
        duration_seconds=asset.duration_seconds,
        media_asset_id=asset.preview_image_id,
        source_tag=source_tag,
        vote_count=voting.total_votes if voting else None,
        upvote_percent=voting.up_vote_percent if voting else None,
        creator_verified=creator.is_verified if creator else None,
        raw_payload={source_tag: raw},
        last_seen_at=seen_at,
    )


def parse_toolbox_asset(data: Any) -> CreatorStoreAsset | None:
    """Parse the single-asset endpoint body; None for anything unusable."""
    if not isinstance(data, dict):
        return None
    try:
        return CreatorStoreAsset.model_validate(data)
    except PydanticValidationError:
        return None
