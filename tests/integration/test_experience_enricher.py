"""Integration tests for experience enrichment with mocked HTTP responses."""

from typing import Any

import httpx
import pytest
import respx

from catalog_mirror.catalog.models import UNKNOWN_TITLE
from catalog_mirror.config import EnrichConfig, RetryConfig, ScoringConfig, UpstreamConfig
from catalog_mirror.ingestion.enricher import (
    ExperienceEnricher,
    StalenessEnricher,
    create_enricher,
)
from catalog_mirror.ingestion.extractors import RateLimitedClient
from catalog_mirror.ingestion.sink import InMemorySink


def game_body(universe_id: int, name: str = "Adopt Me!", **extra: Any) -> dict[str, Any]:
    return {
        "id": universe_id,
        "rootPlaceId": universe_id * 10,
        "name": name,
        "creator": {"id": 1, "name": "Uplift Games", "type": "Group", "hasVerifiedBadge": True},
        "genre": "Town and City",
        "playing": 1000,
        "visits": 500000,
        "totalUpVotes": 90,
        "totalDownVotes": 10,
        **extra,
    }


def mock_details(upstream: UpstreamConfig, *games: dict[str, Any]) -> respx.Route:
    return respx.get(upstream.game_details_url).mock(
        return_value=httpx.Response(200, json={"data": list(games)})
    )


def mock_icons(upstream: UpstreamConfig, *universe_ids: int) -> respx.Route:
    return respx.get(upstream.game_icons_url).mock(
        return_value=httpx.Response(
            200,
            json={
                "data": [
                    {"targetId": i, "state": "Completed", "imageUrl": f"https://t.test/g{i}.png"}
                    for i in universe_ids
                ]
            },
        )
    )


@pytest.fixture
def client(upstream_config: UpstreamConfig, retry_config: RetryConfig) -> RateLimitedClient:
    return RateLimitedClient(upstream_config=upstream_config, retry_config=retry_config)


def make_enricher(
    sink: InMemorySink,
    client: RateLimitedClient,
    upstream: UpstreamConfig,
    enrich: EnrichConfig,
    scoring: ScoringConfig,
) -> StalenessEnricher:
    return create_enricher(
        "experiences",
        sink,
        client,
        enrich_config=enrich,
        scoring_config=scoring,
        upstream_config=upstream,
    )


async def seed(sink: InMemorySink, *rows: dict[str, Any]) -> None:
    await sink.upsert("experiences", list(rows))


class TestExperienceEnrichment:
    """Tests for one experience enrichment run."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_ready_experience(
        self,
        client: RateLimitedClient,
        memory_sink: InMemorySink,
        upstream_config: UpstreamConfig,
        enrich_config: EnrichConfig,
        scoring_config: ScoringConfig,
    ) -> None:
        """Test a returned universe becomes ready and gains its details."""
        await seed(
            memory_sink,
            {
                "external_id": 7,
                "title": UNKNOWN_TITLE,
                "rank": 3,
                "raw_payload": {"explore": {"universeId": 7}},
            },
        )
        details = mock_details(upstream_config, game_body(7))
        mock_icons(upstream_config, 7)

        async with client:
            result = await make_enricher(
                memory_sink, client, upstream_config, enrich_config, scoring_config
            ).run()

        assert result.collection == "experiences"
        assert result.processed == 1
        assert result.ready == 1
        assert result.failed == 0
        assert details.calls.last.request.url.params["universeIds"] == "7"

        stored = memory_sink.get("experiences", 7)
        assert stored.availability_state == "ready"
        assert stored.availability_reason is None
        assert stored.title == "Adopt Me!"
        assert stored.creator == "Uplift Games"
        assert stored.genre == "Town and City"
        assert stored.creator_verified is True
        assert stored.vote_count == 100
        assert stored.upvote_percent == 90
        assert stored.thumbnail_url == "https://t.test/g7.png"
        assert stored.rank == 3
        assert stored.popularity_score > 0
        assert set(stored.raw_payload) == {"explore", "enrichment"}
        assert stored.raw_payload["enrichment"]["gameDetails"]["visits"] == 500000
        assert stored.raw_payload["enrichment"]["errors"] == {}

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_universe(
        self,
        client: RateLimitedClient,
        memory_sink: InMemorySink,
        upstream_config: UpstreamConfig,
        enrich_config: EnrichConfig,
        scoring_config: ScoringConfig,
    ) -> None:
        """Test a universe the details endpoint omits is not ready and keeps its name."""
        await seed(
            memory_sink,
            {"external_id": 1, "title": "Found"},
            {"external_id": 2, "title": "Deleted Game"},
        )
        mock_details(upstream_config, game_body(1, name="Found"))
        mock_icons(upstream_config, 1)

        async with client:
            result = await make_enricher(
                memory_sink, client, upstream_config, enrich_config, scoring_config
            ).run()

        assert result.ready == 1
        assert result.not_ready == 1
        missing = memory_sink.get("experiences", 2)
        assert missing.availability_state == "not_ready"
        assert missing.availability_reason == "source_metadata_unavailable"
        assert missing.title == "Deleted Game"
        assert missing.raw_payload["enrichment"]["errors"] == {
            "gameDetails": "universe not returned"
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_root_place(
        self,
        client: RateLimitedClient,
        memory_sink: InMemorySink,
        upstream_config: UpstreamConfig,
        enrich_config: EnrichConfig,
        scoring_config: ScoringConfig,
    ) -> None:
        """Test an experience without a start place is not ready."""
        await seed(memory_sink, {"external_id": 4, "title": "Unpublished"})
        mock_details(upstream_config, game_body(4, rootPlaceId=None))
        mock_icons(upstream_config)

        async with client:
            await make_enricher(
                memory_sink, client, upstream_config, enrich_config, scoring_config
            ).run()

        stored = memory_sink.get("experiences", 4)
        assert stored.availability_state == "not_ready"
        assert stored.availability_reason == "source_metadata_unavailable"

    @pytest.mark.asyncio
    @respx.mock
    async def test_details_failure_marked(
        self,
        client: RateLimitedClient,
        memory_sink: InMemorySink,
        upstream_config: UpstreamConfig,
        enrich_config: EnrichConfig,
        scoring_config: ScoringConfig,
    ) -> None:
        """Test a rejected details request marks every universe of the chunk failed."""
        await seed(
            memory_sink,
            {"external_id": 1, "title": "A"},
            {"external_id": 2, "title": "B"},
        )
        respx.get(upstream_config.game_details_url).mock(
            return_value=httpx.Response(400, json={"errors": [{"message": "bad ids"}]})
        )
        mock_icons(upstream_config, 1, 2)

        async with client:
            result = await make_enricher(
                memory_sink, client, upstream_config, enrich_config, scoring_config
            ).run()

        assert result.processed == 2
        assert result.failed == 2
        assert {failure["external_id"] for failure in result.failures} == {1, 2}
        failed = memory_sink.get("experiences", 1)
        assert failed.availability_state == "not_ready"
        assert failed.availability_reason == "enrichment_failed"
        assert failed.verified_at is not None
        assert "400" in failed.raw_payload["enrichment"]["error"]
        assert failed.title == "A"

    @pytest.mark.asyncio
    @respx.mock
    async def test_one_failed_chunk(
        self,
        client: RateLimitedClient,
        memory_sink: InMemorySink,
        upstream_config: UpstreamConfig,
        enrich_config: EnrichConfig,
        scoring_config: ScoringConfig,
    ) -> None:
        """Test a failed chunk does not take the other chunks down with it."""
        await seed(
            memory_sink,
            {"external_id": 1, "title": "A"},
            {"external_id": 2, "title": "B"},
            {"external_id": 3, "title": "C"},
        )
        respx.get(upstream_config.game_details_url, params={"universeIds": "1,2"}).mock(
            return_value=httpx.Response(200, json={"data": [game_body(1), game_body(2)]})
        )
        respx.get(upstream_config.game_details_url, params={"universeIds": "3"}).mock(
            return_value=httpx.Response(404, json={"errors": []})
        )
        mock_icons(upstream_config)
        chunked = enrich_config.model_copy(update={"game_details_batch_size": 2})

        async with client:
            result = await make_enricher(
                memory_sink, client, upstream_config, chunked, scoring_config
            ).run()

        assert result.ready == 2
        assert result.failed == 1
        assert result.failures[0]["external_id"] == 3
        assert memory_sink.get("experiences", 3).availability_reason == "enrichment_failed"

    @pytest.mark.asyncio
    @respx.mock
    async def test_icon_failure_tolerated(
        self,
        client: RateLimitedClient,
        memory_sink: InMemorySink,
        upstream_config: UpstreamConfig,
        enrich_config: EnrichConfig,
        scoring_config: ScoringConfig,
    ) -> None:
        """Test a failing icons call does not block the batch."""
        await seed(memory_sink, {"external_id": 7, "title": "Adopt Me!"})
        mock_details(upstream_config, game_body(7))
        respx.get(upstream_config.game_icons_url).mock(return_value=httpx.Response(500))

        async with client:
            result = await make_enricher(
                memory_sink, client, upstream_config, enrich_config, scoring_config
            ).run()

        stored = memory_sink.get("experiences", 7)
        assert result.ready == 1
        assert stored.thumbnail_url is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_known_values_kept(
        self,
        client: RateLimitedClient,
        memory_sink: InMemorySink,
        upstream_config: UpstreamConfig,
        enrich_config: EnrichConfig,
        scoring_config: ScoringConfig,
    ) -> None:
        """Test stored names and icons survive outside force mode."""
        await seed(
            memory_sink,
            {
                "external_id": 7,
                "title": "Adopt Me",
                "creator": "Known Studio",
                "thumbnail_url": "https://t.test/old.png",
            },
        )
        mock_details(upstream_config, game_body(7, name="Adopt Me! [UPDATE]"))
        mock_icons(upstream_config, 7)

        async with client:
            await make_enricher(
                memory_sink, client, upstream_config, enrich_config, scoring_config
            ).run()

        stored = memory_sink.get("experiences", 7)
        assert stored.title == "Adopt Me"
        assert stored.creator == "Known Studio"
        assert stored.thumbnail_url == "https://t.test/old.png"
        assert stored.genre == "Town and City"


class TestEnricherFactory:
    """Tests for picking the enricher by collection."""

    def test_collections(
        self, memory_sink: InMemorySink, upstream_config: UpstreamConfig
    ) -> None:
        """Test each collection maps onto its enricher."""
        client = RateLimitedClient(upstream_config=upstream_config)

        tracks = create_enricher("tracks", memory_sink, client, upstream_config=upstream_config)
        experiences = create_enricher(
            "experiences", memory_sink, client, upstream_config=upstream_config
        )

        assert type(tracks) is StalenessEnricher
        assert isinstance(experiences, ExperienceEnricher)

    def test_unknown_collection(
        self, memory_sink: InMemorySink, upstream_config: UpstreamConfig
    ) -> None:
        """Test an unknown collection name is rejected."""
        client = RateLimitedClient(upstream_config=upstream_config)

        with pytest.raises(ValueError):
            create_enricher("badges", memory_sink, client, upstream_config=upstream_config)
