"""
Explore API page source.

Lists the named sorts once per run, then walks each sort's content
as its own pass. All requests of a run share one session id.
"""

import uuid

from pydantic import ValidationError as PydanticValidationError

from catalog_mirror.config import UpstreamConfig, get_settings
from catalog_mirror.ingestion.contracts.explore import (
    ExploreSort,
    ExploreSortsResponse,
    SortContentResponse,
    normalize_explore_game,
)
from catalog_mirror.ingestion.extractors.base import RateLimitedClient
from catalog_mirror.ingestion.extractors.page_source import Page, PageSource
from catalog_mirror.ingestion.planner import DiscoveryPassConfig


class ExploreSortSource(PageSource):
    """
    Page source for explore-api/v1/get-sort-content.

    Example:
        >>> source = ExploreSortSource(client)
        >>> sorts = await source.list_sorts()
        >>> page = await source.fetch_page(planner.plan_explore(sorts)[0], None)
    """

    def __init__(
        self,
        client: RateLimitedClient,
        *,
        upstream_config: UpstreamConfig | None = None,
        session_id: str | None = None,
    ) -> None:
        super().__init__(client)
        self._upstream = upstream_config or get_settings().upstream
        self.session_id = session_id or str(uuid.uuid4())

    @property
    def source_name(self) -> str:
        return "explore"

    def _base_params(self) -> dict[str, str]:
        return {
            "device": self._upstream.explore_device,
            "country": self._upstream.explore_country,
            "sessionId": self.session_id,
        }

    async def list_sorts(self) -> list[ExploreSort]:
        """
        Fetch the sorts currently offered.

        Raises:
            FetchError: Transport failure after retries
        """
        url = f"{self._upstream.explore_base_url.rstrip('/')}/get-sorts"
        payload = await self._client.get_json(url, params=self._base_params())
        if not isinstance(payload, dict):
            self._logger.warning("Unexpected explore sorts payload")
            return []
        sorts = ExploreSortsResponse.model_validate(payload).parsed_sorts()
        self._logger.info("Explore sorts listed", count=len(sorts))
        return sorts

    async def fetch_page(
        self,
        config: DiscoveryPassConfig,
        cursor: str | None,
        *,
        offset: int = 0,
    ) -> Page:
        params = self._base_params()
        params["sortId"] = config.sort_id or ""
        if config.sort_token:
            params["sortToken"] = config.sort_token
        if cursor:
            params["pageToken"] = cursor

        url = f"{self._upstream.explore_base_url.rstrip('/')}/get-sort-content"
        payload = await self._client.get_json(url, params=params)
        if not isinstance(payload, dict):
            return Page()

        try:
            response = SortContentResponse.from_payload(payload)
        except PydanticValidationError as e:
            self._logger.warning("Unexpected sort content payload", errors=e.error_count())
            return Page()

        seen_at = self.now()
        records = []
        for index, raw, game in response.entries():
            entity = normalize_explore_game(
                raw,
                game,
                position=offset + index + 1,
                sort_id=config.sort_id or "",
                seen_at=seen_at,
                source_tag=config.source_tag,
            )
            if entity is not None:
                records.append(entity)

        return Page(
            records=records,
            next_cursor=response.next_page_token,
            raw_count=len(response.games),
        )
