"""
Top songs page source.

The chart is the only ranked listing: rank is the entry's position
across the whole pass, starting at 1.
"""

from pydantic import ValidationError as PydanticValidationError

from catalog_mirror.config import UpstreamConfig, get_settings
from catalog_mirror.ingestion.contracts.top_songs import TopSongsResponse, normalize_top_song
from catalog_mirror.ingestion.extractors.base import RateLimitedClient
from catalog_mirror.ingestion.extractors.page_source import Page, PageSource
from catalog_mirror.ingestion.planner import TOP_SONGS_FIRST_CURSOR, DiscoveryPassConfig


class TopSongsSource(PageSource):
    """Page source for music-discovery/v1/top-songs."""

    def __init__(
        self,
        client: RateLimitedClient,
        *,
        upstream_config: UpstreamConfig | None = None,
    ) -> None:
        super().__init__(client)
        self._upstream = upstream_config or get_settings().upstream

    @property
    def source_name(self) -> str:
        return "top_songs"

    async def fetch_page(
        self,
        config: DiscoveryPassConfig,
        cursor: str | None,
        *,
        offset: int = 0,
    ) -> Page:
        payload = await self._client.get_json(
            self._upstream.top_songs_url,
            params={
                "pageToken": cursor or TOP_SONGS_FIRST_CURSOR,
                "limit": max(1, config.page_size),
            },
        )
        if not isinstance(payload, dict):
            return Page()

        try:
            response = TopSongsResponse.model_validate(payload)
        except PydanticValidationError as e:
            self._logger.warning("Unexpected top songs payload", errors=e.error_count())
            return Page()

        seen_at = self.now()
        records = []
        # Rank follows the raw position so dropped entries leave gaps
        for position, raw, song in response.entries():
            entity = normalize_top_song(
                raw,
                song,
                rank=offset + position + 1,
                seen_at=seen_at,
                source_tag=config.source_tag,
            )
            if entity is not None:
                records.append(entity)

        return Page(
            records=records,
            next_cursor=response.next_page_token,
            raw_count=len(response.songs),
        )
