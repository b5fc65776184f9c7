"""
Batched lookups used to enrich experiences.

Unlike tracks, experiences are looked up many at a time: one games
detail request and one icons request cover a whole chunk of universe
ids. Both raise FetchError; the enricher decides what a failure means.
"""

from typing import Any

from catalog_mirror.config import EnrichConfig, UpstreamConfig, get_settings
from catalog_mirror.ingestion.contracts.asset_details import ThumbnailsResponse
from catalog_mirror.ingestion.contracts.experience_details import (
    GameDetail,
    GameDetailsResponse,
)
from catalog_mirror.ingestion.extractors.base import RateLimitedClient
from catalog_mirror.logger import get_logger


def _id_list(ids: list[int]) -> str:
    return ",".join(str(universe_id) for universe_id in ids)


class ExperienceDetailsClient:
    """
    Lookups against the games detail and game icons endpoints.

    Example:
        >>> lookups = ExperienceDetailsClient(client)
        >>> details = await lookups.game_details([920587237, 383310974])
        >>> sorted(details)
        [383310974, 920587237]
    """

    def __init__(
        self,
        client: RateLimitedClient,
        *,
        upstream_config: UpstreamConfig | None = None,
        enrich_config: EnrichConfig | None = None,
    ) -> None:
        if upstream_config is None or enrich_config is None:
            settings = get_settings()
            upstream_config = upstream_config or settings.upstream
            enrich_config = enrich_config or settings.enrich
        self._client = client
        self._upstream = upstream_config
        self._enrich = enrich_config
        self._logger = get_logger(__name__, component="experience_details")

    async def game_details(
        self, universe_ids: list[int]
    ) -> dict[int, tuple[dict[str, Any], GameDetail]]:
        """
        Details for one chunk of universe ids; ids the API omits are absent.

        Raises:
            FetchError: The details request failed
        """
        if not universe_ids:
            return {}
        payload = await self._client.get_json(
            self._upstream.game_details_url,
            params={"universeIds": _id_list(universe_ids)},
        )
        if not isinstance(payload, dict):
            return {}
        details = GameDetailsResponse.model_validate(payload).by_id()
        self._logger.debug("Game details resolved", requested=len(universe_ids), found=len(details))
        return details

    async def icons(self, universe_ids: list[int]) -> dict[int, str]:
        """
        Completed icon urls for a batch of experiences.

        Raises:
            FetchError: An icons request failed
        """
        urls: dict[int, str] = {}
        size = self._enrich.thumbnail_batch_size
        for start in range(0, len(universe_ids), size):
            chunk = universe_ids[start : start + size]
            payload = await self._client.get_json(
                self._upstream.game_icons_url,
                params={
                    "universeIds": _id_list(chunk),
                    "size": self._enrich.game_icon_size,
                    "format": self._enrich.thumbnail_format,
                    "isCircular": "false",
                },
            )
            if isinstance(payload, dict):
                urls.update(ThumbnailsResponse.model_validate(payload).ready_urls())
        return urls
