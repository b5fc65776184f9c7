"""
Data contracts for upstream catalog API responses.

This module provides Pydantic models that define the expected
structure of each endpoint's payload, together with the single
normalization function that turns an entry into a CatalogEntity.
"""

from catalog_mirror.ingestion.contracts.asset_details import (
    MarketplaceAssetDetails,
    ThumbnailEntry,
    ThumbnailsResponse,
    parse_marketplace_details,
)
from catalog_mirror.ingestion.contracts.common import clean_cursor
from catalog_mirror.ingestion.contracts.experience_details import (
    GameDetail,
    GameDetailsResponse,
)
from catalog_mirror.ingestion.contracts.explore import (
    ExploreGame,
    ExploreSort,
    ExploreSortsResponse,
    SortContentResponse,
    normalize_explore_game,
)
from catalog_mirror.ingestion.contracts.toolbox import (
    CreatorStoreAsset,
    ToolboxAsset,
    ToolboxSearchResponse,
    normalize_toolbox_entry,
    parse_toolbox_asset,
)
from catalog_mirror.ingestion.contracts.top_songs import (
    TopSong,
    TopSongsResponse,
    normalize_top_song,
)

__all__ = [
    "CreatorStoreAsset",
    "ExploreGame",
    "ExploreSort",
    "ExploreSortsResponse",
    "GameDetail",
    "GameDetailsResponse",
    "MarketplaceAssetDetails",
    "SortContentResponse",
    "ThumbnailEntry",
    "ThumbnailsResponse",
    "ToolboxAsset",
    "ToolboxSearchResponse",
    "TopSong",
    "TopSongsResponse",
    "clean_cursor",
    "normalize_explore_game",
    "normalize_toolbox_entry",
    "normalize_top_song",
    "parse_marketplace_details",
    "parse_toolbox_asset",
]
