"""
Toolbox music search page source.

Walks the creator store search listing for audio assets, one
(query, sort, chart, duration) combination per pass.
"""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from catalog_mirror.config import UpstreamConfig, get_settings
from catalog_mirror.ingestion.contracts.toolbox import (
    ToolboxSearchResponse,
    normalize_toolbox_entry,
)
from catalog_mirror.ingestion.extractors.base import RateLimitedClient
from catalog_mirror.ingestion.extractors.page_source import Page, PageSource
from catalog_mirror.ingestion.planner import NO_CHART, DiscoveryPassConfig

MAX_TOOLBOX_PAGE_SIZE = 100


def build_search_params(
    config: DiscoveryPassConfig,
    cursor: str | None,
    *,
    search_view: str,
) -> list[tuple[str, Any]]:
    """Query string for one search page; optional filters only when set."""
    page_size = min(MAX_TOOLBOX_PAGE_SIZE, max(1, config.page_size))
    params: list[tuple[str, Any]] = [
        ("searchCategoryType", "Audio"),
        ("maxPageSize", page_size),
        ("searchView", search_view),
        ("sortCategory", config.sort_category or "Top"),
        ("sortDirection", config.sort_direction or "Descending"),
        ("includeOnlyVerifiedCreators", "false"),
        ("audioTypes", "Music"),
    ]
    if config.query:
        params.append(("query", config.query))
    if config.duration.min_seconds is not None:
        params.append(("audioMinDurationSeconds", config.duration.min_seconds))
    if config.duration.max_seconds is not None:
        params.append(("audioMaxDurationSeconds", config.duration.max_seconds))
    if config.chart_type and config.chart_type != NO_CHART:
        params.append(("includeTopCharts", "true"))
        params.append(("musicChartType", config.chart_type))
    if cursor:
        params.append(("pageToken", cursor))
    return params


class ToolboxSearchSource(PageSource):
    """
    Page source for toolbox-service/v2/assets:search.

    Example:
        >>> source = ToolboxSearchSource(client)
        >>> page = await source.fetch_page(pass_config, None)
    """

    def __init__(
        self,
        client: RateLimitedClient,
        *,
        upstream_config: UpstreamConfig | None = None,
        search_view: str = "Full",
    ) -> None:
        super().__init__(client)
        self._upstream = upstream_config or get_settings().upstream
        self._search_view = search_view

    @property
    def source_name(self) -> str:
        return "toolbox_search"

    async def fetch_page(
        self,
        config: DiscoveryPassConfig,
        cursor: str | None,
        *,
        offset: int = 0,
    ) -> Page:
        payload = await self._client.get_json(
            self._upstream.toolbox_search_url,
            params=build_search_params(config, cursor, search_view=self._search_view),
        )
        if not isinstance(payload, dict):
            return Page()

        try:
            response = ToolboxSearchResponse.model_validate(payload)
        except PydanticValidationError as e:
            self._logger.warning("Unexpected search payload", errors=e.error_count())
            return Page()

        entries = response.entries()
        seen_at = self.now()
        records = []
        for raw, entry in entries:
            entity = normalize_toolbox_entry(
                raw, entry, seen_at=seen_at, source_tag=config.source_tag
            )
            if entity is not None:
                records.append(entity)

        return Page(
            records=records,
            next_cursor=response.next_page_token,
            raw_count=len(response.creator_store_assets),
        )
