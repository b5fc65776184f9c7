"""Shared fixtures: zero-delay configs and an in-memory sink."""

import pytest

from catalog_mirror.config import (
    CrawlConfig,
    DiscoveryConfig,
    EnrichConfig,
    RetryConfig,
    ScoringConfig,
    Settings,
    SinkConfig,
    UpstreamConfig,
)
from catalog_mirror.ingestion.sink import InMemorySink


@pytest.fixture
def upstream_config() -> UpstreamConfig:
    return UpstreamConfig(request_delay_seconds=0.0, max_in_flight=8, timeout_seconds=5.0)


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        base_delay_seconds=0.0,
        max_delay_seconds=0.0,
        jitter_seconds=0.0,
    )


@pytest.fixture
def crawl_config() -> CrawlConfig:
    return CrawlConfig(
        page_size=2,
        max_pages_per_pass=10,
        page_delay_seconds=0.0,
        item_budget=0,
        empty_page_limit=2,
        max_concurrent_passes=1,
        top_songs_page_size=2,
        top_songs_max_pages=5,
    )


@pytest.fixture
def discovery_config() -> DiscoveryConfig:
    return DiscoveryConfig(
        query_seeds=["lofi"],
        seed_suffixes=[],
        sort_categories=["Top"],
        chart_types=["None"],
        duration_buckets=["any"],
    )


@pytest.fixture
def enrich_config() -> EnrichConfig:
    return EnrichConfig(
        batch_size=10,
        max_total=0,
        concurrency=4,
        refresh_hours=168,
        batch_delay_seconds=0.0,
    )


@pytest.fixture
def scoring_config() -> ScoringConfig:
    return ScoringConfig()


@pytest.fixture
def settings(
    upstream_config: UpstreamConfig,
    retry_config: RetryConfig,
    crawl_config: CrawlConfig,
    discovery_config: DiscoveryConfig,
    enrich_config: EnrichConfig,
    scoring_config: ScoringConfig,
) -> Settings:
    return Settings(
        upstream=upstream_config,
        retry=retry_config,
        crawl=crawl_config,
        discovery=discovery_config,
        enrich=enrich_config,
        scoring=scoring_config,
        sink=SinkConfig(backend="memory", chunk_size=200),
    )


@pytest.fixture
def memory_sink() -> InMemorySink:
    return InMemorySink()
