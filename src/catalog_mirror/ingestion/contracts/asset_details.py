"""
Data contracts for the per-asset lookups used during enrichment.

Product info and economy details share one shape (PascalCase keys,
though some deployments answer in camelCase). The toolbox asset
endpoint reuses CreatorStoreAsset from the toolbox contracts.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from catalog_mirror.ingestion.contracts.common import as_dict_list, validate_items

THUMBNAIL_READY_STATE = "Completed"


class AssetCreator(BaseModel):
    """Creator block of a marketplace asset."""

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = Field(default=None, validation_alias=AliasChoices("Id", "id", "CreatorTargetId"))
    name: str | None = Field(default=None, validation_alias=AliasChoices("Name", "name"))
    has_verified_badge: bool | None = Field(
        default=None, validation_alias=AliasChoices("HasVerifiedBadge", "hasVerifiedBadge")
    )


class MarketplaceAssetDetails(BaseModel):
    """
    Marketplace metadata for one asset.

    Endpoints:
        marketplace/productinfo?assetId={id}
        economy v2/assets/{id}/details
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str | None = Field(default=None, validation_alias=AliasChoices("Name", "name"))
    description: str | None = Field(
        default=None, validation_alias=AliasChoices("Description", "description")
    )
    asset_type_id: int | None = Field(
        default=None, validation_alias=AliasChoices("AssetTypeId", "assetTypeId")
    )
    creator: AssetCreator | None = Field(
        default=None, validation_alias=AliasChoices("Creator", "creator")
    )

    @field_validator("asset_type_id", mode="before")
    @classmethod
    def coerce_type_id(cls, v: Any) -> int | None:
        """Garbage type ids read as missing, not as a validation failure."""
        if isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return int(v)
        if isinstance(v, str) and v.strip().isdigit():
            return int(v.strip())
        return None

    @field_validator("creator", mode="before")
    @classmethod
    def coerce_creator(cls, v: Any) -> dict[str, Any] | None:
        return v if isinstance(v, dict) else None

    @property
    def creator_name(self) -> str | None:
        return self.creator.name if self.creator else None


class ThumbnailEntry(BaseModel):
    """One asset thumbnail."""

    model_config = ConfigDict(populate_by_name=True)

    target_id: int | None = Field(default=None, alias="targetId")
    state: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")

    @property
    def is_ready(self) -> bool:
        return bool(self.target_id and self.image_url) and (
            self.state is None or self.state == THUMBNAIL_READY_STATE
        )


class ThumbnailsResponse(BaseModel):
    """
    Response from the batch thumbnails endpoint.

    Endpoint: thumbnails v1/assets?assetIds=1,2,3
    """

    data: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("data", mode="before")
    @classmethod
    def coerce_data(cls, v: Any) -> list[dict[str, Any]]:
        return as_dict_list(v)

    def ready_urls(self) -> dict[int, str]:
        """Map of asset id to image url for completed thumbnails."""
        urls: dict[int, str] = {}
        for _, entry in validate_items(ThumbnailEntry, self.data):
            if entry.is_ready:
                urls[entry.target_id] = entry.image_url
        return urls


def parse_marketplace_details(data: Any) -> MarketplaceAssetDetails | None:
    """Parse a product info / economy body; None for anything unusable."""
    if not isinstance(data, dict):
        return None
    try:
        return MarketplaceAssetDetails.model_validate(data)
    except PydanticValidationError:
        return None
