"""
Discovery orchestrator that coordinates all passes of a run.

Runs the ranked top songs pass, the toolbox search space and the
explore sorts, sharing one budget across them and one dedup set per
collection. Pass failures are recorded and the run continues; sink
failures abort the run.
"""

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from catalog_mirror.catalog.models import Collection
from catalog_mirror.config import Settings, get_settings
from catalog_mirror.ingestion.collector import CrawlBudget, DedupCollector
from catalog_mirror.ingestion.crawler import PaginatedCrawler, PassResult
from catalog_mirror.ingestion.extractors.base import FetchError, RateLimitedClient
from catalog_mirror.ingestion.extractors.explore import ExploreSortSource
from catalog_mirror.ingestion.extractors.page_source import PageSource
from catalog_mirror.ingestion.extractors.toolbox_search import ToolboxSearchSource
from catalog_mirror.ingestion.extractors.top_songs import TopSongsSource
from catalog_mirror.ingestion.planner import DiscoveryPassConfig, DiscoveryPlanner
from catalog_mirror.ingestion.sink.base import CatalogSink
from catalog_mirror.ingestion.sink.writer import UpsertWriter
from catalog_mirror.logger import bind_run_context, get_logger


class DiscoveryStage(str, Enum):
    """Stages of a discovery run, in execution order."""

    TOP_SONGS = "top-songs"
    TOOLBOX = "toolbox"
    EXPLORE = "explore"


@dataclass
class StageResult:
    """Result of one stage."""

    stage: DiscoveryStage
    passes: list[PassResult] = field(default_factory=list)
    ranks_cleared: int | None = None
    error: str | None = None

    @property
    def accepted(self) -> int:
        return sum(result.accepted for result in self.passes)

    @property
    def failed_passes(self) -> list[PassResult]:
        return [result for result in self.passes if result.failed]


@dataclass
class DiscoveryRunResult:
    """Result of a complete discovery run."""

    run_id: UUID
    started_at: datetime
    completed_at: datetime
    stages: list[StageResult]
    duplicates_dropped: int = 0
    budget_dropped: int = 0

    @property
    def total_accepted(self) -> int:
        return sum(stage.accepted for stage in self.stages)

    @property
    def total_passes(self) -> int:
        return sum(len(stage.passes) for stage in self.stages)

    @property
    def failed_passes(self) -> list[PassResult]:
        return [result for stage in self.stages for result in stage.failed_passes]

    @property
    def duration_seconds(self) -> float:
        """Get total duration in seconds."""
        return (self.completed_at - self.started_at).total_seconds()


class DiscoveryOrchestrator:
    """
    Orchestrates a discovery run.

    Example:
        >>> async with RateLimitedClient() as client:
        ...     orchestrator = DiscoveryOrchestrator(client, sink)
        ...     result = await orchestrator.run()
        ...     print(result.total_accepted)
    """

    def __init__(
        self,
        client: RateLimitedClient,
        sink: CatalogSink,
        *,
        settings: Settings | None = None,
        budget: CrawlBudget | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            client: Shared transport
            sink: Destination store
            settings: Configuration (defaults to the global settings)
            budget: Run budget; created from CRAWL_ITEM_BUDGET when omitted
        """
        self._settings = settings or get_settings()
        self._client = client
        self._sink = sink
        self._budget = budget or CrawlBudget(self._settings.crawl.item_budget)
        self._planner = DiscoveryPlanner(self._settings.discovery, self._settings.crawl)
        self._logger = get_logger(__name__, component="orchestrator")

        self._track_collector = DedupCollector(self._budget)
        self._experience_collector = DedupCollector(self._budget)
        self._track_crawler = PaginatedCrawler(
            self._track_collector,
            self._writer_for(Collection.TRACKS),
            self._settings.crawl,
        )
        self._experience_crawler = PaginatedCrawler(
            self._experience_collector,
            self._writer_for(Collection.EXPERIENCES),
            self._settings.crawl,
        )

    @property
    def budget(self) -> CrawlBudget:
        return self._budget

    def _writer_for(self, collection: Collection) -> UpsertWriter:
        return UpsertWriter(
            self._sink,
            collection.value,
            chunk_size=self._settings.sink.chunk_size,
            force=self._settings.crawl.force_overwrite,
        )

    async def run(self, stages: Iterable[DiscoveryStage] | None = None) -> DiscoveryRunResult:
        """
        Run the requested stages (all by default) in canonical order.

        Raises:
            SinkError: The store rejected a write
        """
        requested = set(stages) if stages is not None else set(DiscoveryStage)
        run_id = uuid4()
        started_at = datetime.now(timezone.utc)
        bind_run_context(run_id=str(run_id))

        self._logger.info(
            "Starting discovery",
            stages=[stage.value for stage in DiscoveryStage if stage in requested],
            budget=self._budget.limit,
        )

        results: list[StageResult] = []
        for stage in DiscoveryStage:
            if stage not in requested:
                continue
            bind_run_context(stage=stage.value)
            if stage == DiscoveryStage.TOP_SONGS:
                results.append(await self._run_top_songs())
            elif stage == DiscoveryStage.TOOLBOX:
                results.append(await self._run_toolbox())
            else:
                results.append(await self._run_explore())

        result = DiscoveryRunResult(
            run_id=run_id,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            stages=results,
            duplicates_dropped=(
                self._track_collector.duplicates_dropped
                + self._experience_collector.duplicates_dropped
            ),
            budget_dropped=(
                self._track_collector.budget_dropped + self._experience_collector.budget_dropped
            ),
        )

        self._logger.info(
            "Discovery complete",
            duration_seconds=round(result.duration_seconds, 2),
            accepted=result.total_accepted,
            passes=result.total_passes,
            failed_passes=len(result.failed_passes),
            duplicates_dropped=result.duplicates_dropped,
        )
        return result

    async def _run_passes(
        self,
        crawler: PaginatedCrawler,
        passes: Sequence[DiscoveryPassConfig],
        source: PageSource,
    ) -> list[PassResult]:
        """
        Run passes through a bounded pool.

        With one slot (the default) passes run in plan order. A fatal
        error cancels the passes still running or waiting.
        """
        semaphore = asyncio.Semaphore(self._settings.crawl.max_concurrent_passes)

        async def bounded(config: DiscoveryPassConfig) -> PassResult:
            async with semaphore:
                return await crawler.run(config, source)

        tasks = [asyncio.create_task(bounded(config)) for config in passes]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run_top_songs(self) -> StageResult:
        stage = StageResult(stage=DiscoveryStage.TOP_SONGS)
        source = TopSongsSource(self._client, upstream_config=self._settings.upstream)
        top_pass = self._planner.plan_top_chart()
        result = (await self._run_passes(self._track_crawler, [top_pass], source))[0]
        stage.passes.append(result)

        if not self._settings.crawl.full_rank_refresh:
            return stage
        if not result.completed or not result.accepted_ids:
            # A partial chart must not erase ranks it never saw
            self._logger.warning(
                "Skipping rank refresh",
                stop_reason=result.stop_reason.value,
                accepted=result.accepted,
            )
            return stage

        stage.ranks_cleared = await self._sink.clear_ranks(
            Collection.TRACKS.value, keep_ids=result.accepted_ids
        )
        self._logger.info("Ranks refreshed", ranked=result.accepted, cleared=stage.ranks_cleared)
        return stage

    async def _run_toolbox(self) -> StageResult:
        stage = StageResult(stage=DiscoveryStage.TOOLBOX)
        passes = self._planner.plan()
        self._logger.info("Toolbox plan ready", passes=len(passes))
        source = ToolboxSearchSource(
            self._client,
            upstream_config=self._settings.upstream,
            search_view=self._settings.discovery.search_view,
        )
        stage.passes = await self._run_passes(self._track_crawler, passes, source)
        return stage

    async def _run_explore(self) -> StageResult:
        stage = StageResult(stage=DiscoveryStage.EXPLORE)
        source = ExploreSortSource(self._client, upstream_config=self._settings.upstream)
        try:
            sorts = await source.list_sorts()
        except FetchError as e:
            self._logger.error("Could not list explore sorts", error=str(e))
            stage.error = str(e)
            return stage

        passes = self._planner.plan_explore(sorts)
        stage.passes = await self._run_passes(self._experience_crawler, passes, source)
        return stage
