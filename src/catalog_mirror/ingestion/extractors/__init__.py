"""
Data extractors for the upstream catalog APIs.

This module provides the shared rate-limited client plus page
sources for the listing endpoints and lookups for per-asset
enrichment, all with retry logic, pacing and structured logging.
"""

from catalog_mirror.ingestion.extractors.asset_details import AssetDetailsClient, LookupResult
from catalog_mirror.ingestion.extractors.base import (
    FetchError,
    RateLimitedClient,
    TransientTransportError,
)
from catalog_mirror.ingestion.extractors.experience_details import ExperienceDetailsClient
from catalog_mirror.ingestion.extractors.explore import ExploreSortSource
from catalog_mirror.ingestion.extractors.page_source import Page, PageSource
from catalog_mirror.ingestion.extractors.toolbox_search import ToolboxSearchSource
from catalog_mirror.ingestion.extractors.top_songs import TopSongsSource

__all__ = [
    # Client and errors
    "FetchError",
    "RateLimitedClient",
    "TransientTransportError",
    # Listing sources
    "ExploreSortSource",
    "Page",
    "PageSource",
    "ToolboxSearchSource",
    "TopSongsSource",
    # Enrichment lookups
    "AssetDetailsClient",
    "ExperienceDetailsClient",
    "LookupResult",
]
