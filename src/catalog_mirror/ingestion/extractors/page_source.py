"""
Page source interface.

A page source knows how to fetch and normalize one page of one
listing endpoint. Pagination control lives in the crawler.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone

from catalog_mirror.catalog.models import CatalogEntity
from catalog_mirror.ingestion.extractors.base import RateLimitedClient
from catalog_mirror.ingestion.planner import DiscoveryPassConfig
from catalog_mirror.logger import get_logger


@dataclass
class Page:
    """
    One normalized page.

    `raw_count` counts entries in the response before normalization;
    zero means the listing is exhausted even if a cursor came back.
    """

    records: list[CatalogEntity] = field(default_factory=list)
    next_cursor: str | None = None
    raw_count: int = 0


class PageSource(ABC):
    """
    Abstract base for listing endpoints.

    Subclasses implement `fetch_page`; transport errors surface as
    FetchError from the shared client. Unparseable bodies yield an
    empty page.
    """

    def __init__(self, client: RateLimitedClient) -> None:
        self._client = client
        self._logger = get_logger(__name__, component="page_source", source=self.source_name)

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Return source identifier for logging and metadata."""
        ...

    @abstractmethod
    async def fetch_page(
        self,
        config: DiscoveryPassConfig,
        cursor: str | None,
        *,
        offset: int = 0,
    ) -> Page:
        """
        Fetch one page.

        Args:
            config: Pass dimensions
            cursor: Continuation token (None for the first page)
            offset: Raw entries seen earlier in this pass (ranking)

        Raises:
            FetchError: Transport failure after retries
        """
        ...

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)
