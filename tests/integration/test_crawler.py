"""Integration tests for paginated discovery passes with mocked HTTP responses."""

from typing import Any

import httpx
import pytest
import respx

from catalog_mirror.catalog.models import CatalogEntity
from catalog_mirror.config import CrawlConfig, DiscoveryConfig, RetryConfig, UpstreamConfig
from catalog_mirror.ingestion.collector import CrawlBudget, DedupCollector
from catalog_mirror.ingestion.crawler import PaginatedCrawler, StopReason
from catalog_mirror.ingestion.extractors import (
    ExploreSortSource,
    RateLimitedClient,
    ToolboxSearchSource,
    TopSongsSource,
)
from catalog_mirror.ingestion.planner import DiscoveryPassConfig, DiscoveryPlanner
from catalog_mirror.ingestion.sink import InMemorySink, UpsertWriter


def toolbox_page(ids: list[int], token: str | None = None) -> dict[str, Any]:
    """Build a toolbox search payload."""
    return {
        "creatorStoreAssets": [
            {"asset": {"id": i, "title": f"Track {i}", "artist": "Artist"}} for i in ids
        ],
        "nextPageToken": token,
    }


@pytest.fixture
def client(upstream_config: UpstreamConfig, retry_config: RetryConfig) -> RateLimitedClient:
    return RateLimitedClient(upstream_config=upstream_config, retry_config=retry_config)


@pytest.fixture
def search_pass(discovery_config: DiscoveryConfig, crawl_config: CrawlConfig) -> DiscoveryPassConfig:
    return DiscoveryPlanner(discovery_config, crawl_config).plan()[0]


def make_crawler(
    sink: InMemorySink,
    crawl_config: CrawlConfig,
    collector: DedupCollector | None = None,
    collection: str = "tracks",
) -> PaginatedCrawler:
    return PaginatedCrawler(
        collector or DedupCollector(),
        UpsertWriter(sink, collection, chunk_size=50),
        crawl_config,
    )


class TestToolboxPass:
    """Tests for a toolbox search pass."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_stops_when_cursor_absent(
        self,
        client: RateLimitedClient,
        upstream_config: UpstreamConfig,
        crawl_config: CrawlConfig,
        search_pass: DiscoveryPassConfig,
        memory_sink: InMemorySink,
    ) -> None:
        """Test a pass ends when a page carries no continuation token."""
        route = respx.get(upstream_config.toolbox_search_url).mock(
            side_effect=[
                httpx.Response(200, json=toolbox_page([1, 2], token="p2")),
                httpx.Response(200, json=toolbox_page([3, 4])),
                httpx.Response(200, json=toolbox_page([5, 6])),
            ]
        )
        source = ToolboxSearchSource(client, upstream_config=upstream_config)

        async with client:
            result = await make_crawler(memory_sink, crawl_config).run(search_pass, source)

        assert route.call_count == 2
        assert result.stop_reason == StopReason.EXHAUSTED
        assert result.pages == 2
        assert result.accepted_ids == [1, 2, 3, 4]
        assert sorted(memory_sink.rows("tracks")) == [1, 2, 3, 4]

        first, second = route.calls
        assert "pageToken" not in first.request.url.params
        assert second.request.url.params["pageToken"] == "p2"
        assert first.request.url.params["query"] == "lofi"
        assert first.request.url.params["maxPageSize"] == "2"

    @pytest.mark.asyncio
    @respx.mock
    async def test_stops_on_empty_third_page(
        self,
        client: RateLimitedClient,
        upstream_config: UpstreamConfig,
        crawl_config: CrawlConfig,
        search_pass: DiscoveryPassConfig,
        memory_sink: InMemorySink,
    ) -> None:
        """Test two full pages with tokens then an empty page write four records."""
        route = respx.get(upstream_config.toolbox_search_url).mock(
            side_effect=[
                httpx.Response(200, json=toolbox_page([1, 2], token="p2")),
                httpx.Response(200, json=toolbox_page([3, 4], token="p3")),
                httpx.Response(200, json=toolbox_page([])),
            ]
        )
        source = ToolboxSearchSource(client, upstream_config=upstream_config)

        async with client:
            result = await make_crawler(memory_sink, crawl_config).run(search_pass, source)

        assert route.call_count == 3
        assert result.stop_reason == StopReason.EXHAUSTED
        assert result.pages == 3
        assert result.accepted_ids == [1, 2, 3, 4]
        assert sorted(memory_sink.rows("tracks")) == [1, 2, 3, 4]
        assert route.calls[2].request.url.params["pageToken"] == "p3"

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_page_exhausts(
        self,
        client: RateLimitedClient,
        upstream_config: UpstreamConfig,
        crawl_config: CrawlConfig,
        search_pass: DiscoveryPassConfig,
        memory_sink: InMemorySink,
    ) -> None:
        """Test an empty page ends the pass even when a token came back."""
        respx.get(upstream_config.toolbox_search_url).mock(
            return_value=httpx.Response(200, json=toolbox_page([], token="again"))
        )
        source = ToolboxSearchSource(client, upstream_config=upstream_config)

        async with client:
            result = await make_crawler(memory_sink, crawl_config).run(search_pass, source)

        assert result.stop_reason == StopReason.EXHAUSTED
        assert result.pages == 1
        assert result.accepted == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_cursor_cycle(
        self,
        client: RateLimitedClient,
        upstream_config: UpstreamConfig,
        crawl_config: CrawlConfig,
        search_pass: DiscoveryPassConfig,
        memory_sink: InMemorySink,
    ) -> None:
        """Test a repeated continuation token ends the pass."""
        route = respx.get(upstream_config.toolbox_search_url).mock(
            side_effect=[
                httpx.Response(200, json=toolbox_page([1, 2], token="a")),
                httpx.Response(200, json=toolbox_page([3, 4], token="b")),
                httpx.Response(200, json=toolbox_page([5, 6], token="a")),
            ]
        )
        source = ToolboxSearchSource(client, upstream_config=upstream_config)

        async with client:
            result = await make_crawler(memory_sink, crawl_config).run(search_pass, source)

        assert route.call_count == 3
        assert result.stop_reason == StopReason.CURSOR_CYCLE
        assert result.accepted_ids == [1, 2, 3, 4, 5, 6]

    @pytest.mark.asyncio
    @respx.mock
    async def test_diminishing_returns(
        self,
        client: RateLimitedClient,
        upstream_config: UpstreamConfig,
        crawl_config: CrawlConfig,
        search_pass: DiscoveryPassConfig,
        memory_sink: InMemorySink,
    ) -> None:
        """Test consecutive pages without new ids end the pass."""
        collector = DedupCollector()
        await collector.accept([CatalogEntity(external_id=i) for i in (1, 2, 3, 4)])
        route = respx.get(upstream_config.toolbox_search_url).mock(
            side_effect=[
                httpx.Response(200, json=toolbox_page([1, 2], token="a")),
                httpx.Response(200, json=toolbox_page([3, 4], token="b")),
                httpx.Response(200, json=toolbox_page([5, 6], token="c")),
            ]
        )
        source = ToolboxSearchSource(client, upstream_config=upstream_config)

        async with client:
            result = await make_crawler(memory_sink, crawl_config, collector).run(
                search_pass, source
            )

        assert route.call_count == 2
        assert result.stop_reason == StopReason.DIMINISHING_RETURNS
        assert result.accepted == 0
        assert memory_sink.upsert_calls == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_page_cap(
        self,
        client: RateLimitedClient,
        upstream_config: UpstreamConfig,
        discovery_config: DiscoveryConfig,
        memory_sink: InMemorySink,
    ) -> None:
        """Test the per-pass page cap."""
        crawl = CrawlConfig(page_size=2, max_pages_per_pass=2, page_delay_seconds=0)
        search_pass = DiscoveryPlanner(discovery_config, crawl).plan()[0]
        respx.get(upstream_config.toolbox_search_url).mock(
            side_effect=[
                httpx.Response(200, json=toolbox_page([1, 2], token="a")),
                httpx.Response(200, json=toolbox_page([3, 4], token="b")),
                httpx.Response(200, json=toolbox_page([5, 6], token="c")),
            ]
        )
        source = ToolboxSearchSource(client, upstream_config=upstream_config)

        async with client:
            result = await make_crawler(memory_sink, crawl).run(search_pass, source)

        assert result.stop_reason == StopReason.PAGE_CAP
        assert result.pages == 2
        assert result.completed is True

    @pytest.mark.asyncio
    @respx.mock
    async def test_budget(
        self,
        client: RateLimitedClient,
        upstream_config: UpstreamConfig,
        crawl_config: CrawlConfig,
        search_pass: DiscoveryPassConfig,
        memory_sink: InMemorySink,
    ) -> None:
        """Test the run budget truncates the page and ends the pass."""
        route = respx.get(upstream_config.toolbox_search_url).mock(
            side_effect=[
                httpx.Response(200, json=toolbox_page([1, 2], token="a")),
                httpx.Response(200, json=toolbox_page([3, 4], token="b")),
                httpx.Response(200, json=toolbox_page([5, 6], token="c")),
            ]
        )
        collector = DedupCollector(CrawlBudget(3))
        source = ToolboxSearchSource(client, upstream_config=upstream_config)

        async with client:
            result = await make_crawler(memory_sink, crawl_config, collector).run(
                search_pass, source
            )

        assert route.call_count == 2
        assert result.stop_reason == StopReason.BUDGET_EXHAUSTED
        assert result.accepted_ids == [1, 2, 3]
        assert sorted(memory_sink.rows("tracks")) == [1, 2, 3]

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_failure_keeps_earlier_pages(
        self,
        client: RateLimitedClient,
        upstream_config: UpstreamConfig,
        crawl_config: CrawlConfig,
        search_pass: DiscoveryPassConfig,
        memory_sink: InMemorySink,
    ) -> None:
        """Test a failed page ends the pass without losing written pages."""
        respx.get(upstream_config.toolbox_search_url).mock(
            side_effect=[
                httpx.Response(200, json=toolbox_page([1, 2], token="a")),
                httpx.Response(400, text="bad request"),
            ]
        )
        source = ToolboxSearchSource(client, upstream_config=upstream_config)

        async with client:
            result = await make_crawler(memory_sink, crawl_config).run(search_pass, source)

        assert result.stop_reason == StopReason.FETCH_FAILED
        assert result.failed is True
        assert result.completed is False
        assert "400" in result.error
        assert sorted(memory_sink.rows("tracks")) == [1, 2]

    @pytest.mark.asyncio
    @respx.mock
    async def test_dedup_across_passes(
        self,
        client: RateLimitedClient,
        upstream_config: UpstreamConfig,
        crawl_config: CrawlConfig,
        memory_sink: InMemorySink,
    ) -> None:
        """Test an id accepted by one pass is dropped by the next."""
        discovery = DiscoveryConfig(
            query_seeds=["lofi", "jazz"],
            seed_suffixes=[],
            sort_categories=["Top"],
            chart_types=["None"],
            duration_buckets=["any"],
        )
        lofi_pass, jazz_pass = DiscoveryPlanner(discovery, crawl_config).plan()
        respx.get(upstream_config.toolbox_search_url, params={"query": "lofi"}).mock(
            return_value=httpx.Response(200, json=toolbox_page([1, 2]))
        )
        respx.get(upstream_config.toolbox_search_url, params={"query": "jazz"}).mock(
            return_value=httpx.Response(200, json=toolbox_page([2, 3]))
        )
        collector = DedupCollector()
        crawler = make_crawler(memory_sink, crawl_config, collector)
        source = ToolboxSearchSource(client, upstream_config=upstream_config)

        async with client:
            first = await crawler.run(lofi_pass, source)
            second = await crawler.run(jazz_pass, source)

        assert first.accepted_ids == [1, 2]
        assert second.accepted_ids == [3]
        assert collector.duplicates_dropped == 1


class TestTopSongsPass:
    """Tests for the ranked chart pass."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_ranks_continue_across_pages(
        self,
        client: RateLimitedClient,
        upstream_config: UpstreamConfig,
        crawl_config: CrawlConfig,
        discovery_config: DiscoveryConfig,
        memory_sink: InMemorySink,
    ) -> None:
        """Test rank counts from 1 across the whole pass."""
        route = respx.get(upstream_config.top_songs_url).mock(
            side_effect=[
                httpx.Response(
                    200,
                    json={
                        "songs": [{"assetId": 11, "title": "A"}, {"assetId": 12, "title": "B"}],
                        "nextPageToken": "2",
                    },
                ),
                httpx.Response(200, json={"songs": [{"assetId": 13, "title": "C"}]}),
            ]
        )
        top_pass = DiscoveryPlanner(discovery_config, crawl_config).plan_top_chart()
        source = TopSongsSource(client, upstream_config=upstream_config)

        async with client:
            result = await make_crawler(memory_sink, crawl_config).run(top_pass, source)

        assert result.stop_reason == StopReason.EXHAUSTED
        assert [memory_sink.get("tracks", i).rank for i in (11, 12, 13)] == [1, 2, 3]
        assert route.calls[0].request.url.params["pageToken"] == "0"
        assert route.calls[1].request.url.params["pageToken"] == "2"


class TestExplorePass:
    """Tests for explore sort passes."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_sort_content(
        self,
        client: RateLimitedClient,
        upstream_config: UpstreamConfig,
        crawl_config: CrawlConfig,
        discovery_config: DiscoveryConfig,
        memory_sink: InMemorySink,
    ) -> None:
        """Test listing sorts and walking one sort into the experiences collection."""
        base = upstream_config.explore_base_url
        respx.get(f"{base}/get-sorts").mock(
            return_value=httpx.Response(
                200, json={"sorts": [{"sortId": "top-trending", "token": "tok"}]}
            )
        )
        content = respx.get(f"{base}/get-sort-content").mock(
            return_value=httpx.Response(
                200,
                json={
                    "games": [
                        {"universeId": 100, "rootPlaceId": 1000, "name": "Obby"},
                        {"universeId": 101, "name": "No place"},
                    ]
                },
            )
        )
        source = ExploreSortSource(client, upstream_config=upstream_config, session_id="sess")

        async with client:
            sorts = await source.list_sorts()
            explore_pass = DiscoveryPlanner(discovery_config, crawl_config).plan_explore(sorts)[0]
            result = await make_crawler(
                memory_sink, crawl_config, collection="experiences"
            ).run(explore_pass, source)

        assert result.accepted_ids == [100]
        stored = memory_sink.get("experiences", 100)
        assert stored.title == "Obby"
        assert stored.rank is None
        params = content.calls.last.request.url.params
        assert params["sortId"] == "top-trending"
        assert params["sortToken"] == "tok"
        assert params["sessionId"] == "sess"

