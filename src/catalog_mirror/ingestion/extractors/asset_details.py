"""
Per-asset lookups used by the enricher.

Each lookup reports its outcome as a LookupResult instead of raising,
so one failing source never hides the others. Only the batch
thumbnails call raises; the enricher logs and ignores it.
"""

from dataclasses import dataclass
from typing import Any

from catalog_mirror.config import EnrichConfig, UpstreamConfig, get_settings
from catalog_mirror.ingestion.contracts.asset_details import ThumbnailsResponse
from catalog_mirror.ingestion.extractors.base import FetchError, RateLimitedClient
from catalog_mirror.logger import get_logger


@dataclass
class LookupResult:
    """Outcome of one lookup: status (None if no response), body and error text."""

    status: int | None = None
    data: Any | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 300 and self.data is not None


class AssetDetailsClient:
    """
    Lookups against the marketplace, economy, toolbox, delivery and
    thumbnails endpoints.

    Example:
        >>> lookups = AssetDetailsClient(client)
        >>> info = await lookups.product_info(1837849285)
        >>> info.ok
        True
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
        self._logger = get_logger(__name__, component="asset_details")

    async def _lookup_json(self, url: str, params: dict[str, Any] | None = None) -> LookupResult:
        try:
            response = await self._client.request(
                "GET", url, params=params, allow_error_status=True
            )
        except FetchError as e:
            return LookupResult(status=e.status_code, error=str(e))

        try:
            data = response.json()
        except ValueError:
            data = None
        return LookupResult(status=response.status_code, data=data)

    async def product_info(self, asset_id: int) -> LookupResult:
        """Primary metadata; its success gates availability."""
        return await self._lookup_json(self._upstream.product_info_url, {"assetId": asset_id})

    async def economy_details(self, asset_id: int) -> LookupResult:
        return await self._lookup_json(
            self._upstream.economy_details_url.format(asset_id=asset_id)
        )

    async def toolbox_asset(self, asset_id: int) -> LookupResult:
        """Creator store view of the asset, the only source of voting data."""
        return await self._lookup_json(self._upstream.toolbox_asset_url.format(asset_id=asset_id))

    async def delivery_status(self, asset_id: int) -> LookupResult:
        """
        Probe whether the binary can be fetched, without downloading it.

        HEAD first; endpoints that reject HEAD with 405 get a one-byte
        ranged GET. Redirects are not followed: a 3xx to the CDN already
        means the asset is deliverable.
        """
        url = self._upstream.asset_delivery_url
        params = {"id": asset_id}
        try:
            response = await self._client.request(
                "HEAD", url, params=params, follow_redirects=False, allow_error_status=True
            )
            if response.status_code == 405:
                response = await self._client.request(
                    "GET",
                    url,
                    params=params,
                    headers={"Range": "bytes=0-0"},
                    follow_redirects=False,
                    allow_error_status=True,
                )
        except FetchError as e:
            return LookupResult(status=e.status_code, error=str(e))
        return LookupResult(status=response.status_code)

    async def thumbnails(self, asset_ids: list[int]) -> dict[int, str]:
        """
        Completed thumbnail urls for a batch of assets.

        Raises:
            FetchError: A thumbnails request failed
        """
        urls: dict[int, str] = {}
        size = self._enrich.thumbnail_batch_size
        for start in range(0, len(asset_ids), size):
            chunk = asset_ids[start : start + size]
            payload = await self._client.get_json(
                self._upstream.thumbnails_url,
                params={
                    "assetIds": ",".join(str(asset_id) for asset_id in chunk),
                    "size": self._enrich.thumbnail_size,
                    "format": self._enrich.thumbnail_format,
                    "isCircular": "false",
                },
            )
            if isinstance(payload, dict):
                urls.update(ThumbnailsResponse.model_validate(payload).ready_urls())
        self._logger.debug("Thumbnails resolved", requested=len(asset_ids), found=len(urls))
        return urls
