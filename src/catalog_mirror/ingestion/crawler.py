"""
Paginated crawler.

Drives one discovery pass from its initial cursor to a terminal
condition, feeding each page through the collector and writer.
Pages within a pass are strictly sequential.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from catalog_mirror.config import CrawlConfig, get_settings
from catalog_mirror.ingestion.collector import DedupCollector
from catalog_mirror.ingestion.extractors.base import FetchError
from catalog_mirror.ingestion.extractors.page_source import PageSource
from catalog_mirror.ingestion.planner import DiscoveryPassConfig
from catalog_mirror.ingestion.sink.writer import UpsertWriter
from catalog_mirror.logger import get_logger


class StopReason(str, Enum):
    """Why a pass ended."""

    EXHAUSTED = "exhausted"
    PAGE_CAP = "page_cap"
    BUDGET_EXHAUSTED = "budget_exhausted"
    CURSOR_CYCLE = "cursor_cycle"
    DIMINISHING_RETURNS = "diminishing_returns"
    FETCH_FAILED = "fetch_failed"


@dataclass
class DiscoveryPass:
    """Mutable pagination state of one pass."""

    config: DiscoveryPassConfig
    cursor: str | None = None
    consumed: set[str | None] = field(default_factory=set)
    pages_fetched: int = 0
    records_seen: int = 0
    empty_streak: int = 0


@dataclass
class PassResult:
    """Outcome of one pass."""

    label: str
    source_tag: str
    stop_reason: StopReason
    pages: int = 0
    records_seen: int = 0
    accepted_ids: list[int] = field(default_factory=list)
    error: str | None = None

    @property
    def accepted(self) -> int:
        return len(self.accepted_ids)

    @property
    def failed(self) -> bool:
        return self.stop_reason == StopReason.FETCH_FAILED

    @property
    def completed(self) -> bool:
        """The listing was walked to its end or to the configured page cap."""
        return self.stop_reason in (StopReason.EXHAUSTED, StopReason.PAGE_CAP)


class PaginatedCrawler:
    """
    Runs discovery passes against page sources.

    Example:
        >>> crawler = PaginatedCrawler(collector, writer)
        >>> result = await crawler.run(pass_config, ToolboxSearchSource(client))
        >>> result.stop_reason
        <StopReason.EXHAUSTED: 'exhausted'>
    """

    def __init__(
        self,
        collector: DedupCollector,
        writer: UpsertWriter,
        crawl_config: CrawlConfig | None = None,
    ) -> None:
        self._collector = collector
        self._writer = writer
        self._config = crawl_config or get_settings().crawl
        self._logger = get_logger(__name__, component="crawler")

    async def run(self, config: DiscoveryPassConfig, source: PageSource) -> PassResult:
        """
        Walk one pass.

        A FetchError ends only this pass; a SinkWriteError propagates.

        Returns:
            PassResult: Accepted ids, page count and stop reason
        """
        state = DiscoveryPass(config=config, cursor=config.initial_cursor)
        accepted_ids: list[int] = []
        error: str | None = None
        log = self._logger.bind(pass_label=config.label, source=source.source_name)
        log.info("Pass started")

        while True:
            if state.pages_fetched >= config.max_pages:
                reason = StopReason.PAGE_CAP
                break
            if self._collector.exhausted:
                reason = StopReason.BUDGET_EXHAUSTED
                break
            if state.cursor in state.consumed:
                reason = StopReason.CURSOR_CYCLE
                break

            state.consumed.add(state.cursor)
            try:
                page = await source.fetch_page(config, state.cursor, offset=state.records_seen)
            except FetchError as e:
                log.warning("Page fetch failed", page=state.pages_fetched + 1, error=str(e))
                reason = StopReason.FETCH_FAILED
                error = str(e)
                break

            state.pages_fetched += 1
            if page.raw_count == 0:
                reason = StopReason.EXHAUSTED
                break
            state.records_seen += page.raw_count

            survivors = await self._collector.accept(page.records)
            if survivors:
                await self._writer.write(survivors)
                accepted_ids.extend(record.external_id for record in survivors)
                state.empty_streak = 0
            else:
                state.empty_streak += 1

            log.debug(
                "Page processed",
                page=state.pages_fetched,
                raw=page.raw_count,
                accepted=len(survivors),
            )

            if state.empty_streak >= self._config.empty_page_limit:
                reason = StopReason.DIMINISHING_RETURNS
                break
            if not page.next_cursor:
                reason = StopReason.EXHAUSTED
                break
            if page.next_cursor in state.consumed:
                reason = StopReason.CURSOR_CYCLE
                break
            state.cursor = page.next_cursor

            if self._collector.exhausted:
                reason = StopReason.BUDGET_EXHAUSTED
                break
            if self._config.page_delay_seconds > 0:
                await asyncio.sleep(self._config.page_delay_seconds)

        result = PassResult(
            label=config.label,
            source_tag=config.source_tag,
            stop_reason=reason,
            pages=state.pages_fetched,
            records_seen=state.records_seen,
            accepted_ids=accepted_ids,
            error=error,
        )
        log.info(
            "Pass finished",
            stop_reason=reason.value,
            pages=result.pages,
            accepted=result.accepted,
        )
        return result
