"""Tests for configuration module."""

import os
from unittest.mock import patch

import pytest

from catalog_mirror.config import (
    CrawlConfig,
    DiscoveryConfig,
    EnrichConfig,
    LoggingConfig,
    RetryConfig,
    ScoringConfig,
    Settings,
    SinkConfig,
    UpstreamConfig,
)


class TestUpstreamConfig:
    """Tests for upstream API configuration."""

    def test_default_values(self) -> None:
        """Test default configuration values."""
        with patch.dict(os.environ, {}, clear=True):
            config = UpstreamConfig()

        assert config.toolbox_search_url.endswith("/toolbox-service/v2/assets:search")
        assert config.request_delay_seconds == 0.15
        assert config.max_in_flight == 8
        assert "{asset_id}" in config.economy_details_url
        assert config.game_details_url == "https://games.roblox.com/v1/games"
        assert config.game_icons_url.endswith("/v1/games/icons")

    def test_env_prefix(self) -> None:
        """Test that ROBLOX_ variables override defaults."""
        with patch.dict(os.environ, {"ROBLOX_REQUEST_DELAY_SECONDS": "0.5"}, clear=True):
            config = UpstreamConfig()

        assert config.request_delay_seconds == 0.5

    def test_delay_bounds(self) -> None:
        """Test that negative pacing is rejected."""
        with pytest.raises(ValueError):
            UpstreamConfig(request_delay_seconds=-1)


class TestRetryConfig:
    """Tests for retry configuration."""

    def test_default_values(self) -> None:
        """Test default retry values."""
        with patch.dict(os.environ, {}, clear=True):
            config = RetryConfig()

        assert config.max_attempts == 4
        assert config.base_delay_seconds == 0.4
        assert config.max_delay_seconds == 30.0

    def test_attempts_bounds(self) -> None:
        """Test max_attempts validation."""
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=12)


class TestCrawlConfig:
    """Tests for crawl configuration."""

    @pytest.mark.parametrize(("raw", "expected"), [(250, 100), (0, 100), (-5, 100), (40, 40)])
    def test_page_size_clamped(self, raw: int, expected: int) -> None:
        """Test page size is clamped into 1-100."""
        assert CrawlConfig(page_size=raw).page_size == expected

    def test_defaults(self) -> None:
        """Test crawl defaults."""
        with patch.dict(os.environ, {}, clear=True):
            config = CrawlConfig()

        assert config.empty_page_limit == 2
        assert config.item_budget == 0
        assert config.full_rank_refresh is True
        assert config.force_overwrite is False


class TestDiscoveryConfig:
    """Tests for discovery dimensions."""

    def test_csv_from_env(self) -> None:
        """Test comma-separated lists are split and trimmed."""
        with patch.dict(
            os.environ,
            {
                "DISCOVERY_QUERY_SEEDS": "lofi, jazz ,,phonk",
                "DISCOVERY_CHART_TYPES": "None,Week",
            },
            clear=True,
        ):
            config = DiscoveryConfig()

        assert config.query_seeds == ["lofi", "jazz", "phonk"]
        assert config.chart_types == ["None", "Week"]

    def test_default_dimensions(self) -> None:
        """Test default search space."""
        with patch.dict(os.environ, {}, clear=True):
            config = DiscoveryConfig()

        assert "Top" in config.sort_categories
        assert config.duration_buckets[0] == "any"
        assert config.seed_suffixes == ["music"]


class TestEnrichConfig:
    """Tests for enrichment configuration."""

    def test_concurrency_bounds(self) -> None:
        """Test concurrency is limited to 1-25."""
        with pytest.raises(ValueError):
            EnrichConfig(concurrency=0)
        with pytest.raises(ValueError):
            EnrichConfig(concurrency=26)

    def test_defaults(self) -> None:
        """Test enrichment defaults."""
        with patch.dict(os.environ, {}, clear=True):
            config = EnrichConfig()

        assert config.batch_size == 50
        assert config.refresh_hours == 168
        assert config.force is False
        assert config.expected_asset_type_id == 3
        assert config.game_details_batch_size == 50
        assert config.game_icon_size == "512x512"

    def test_game_details_batch_bounds(self) -> None:
        """Test the details endpoint cap of 100 ids per request."""
        with pytest.raises(ValueError):
            EnrichConfig(game_details_batch_size=101)


class TestScoringConfig:
    """Tests for score weights."""

    def test_defaults(self) -> None:
        """Test default weights."""
        with patch.dict(os.environ, {}, clear=True):
            config = ScoringConfig()

        assert config.vote_weight == 0.7
        assert config.upvote_weight == 10
        assert config.verified_bonus == 50
        assert config.rank_max == 1000
        assert config.recency_max_days == 90


class TestSinkConfig:
    """Tests for sink configuration."""

    def test_table_for(self) -> None:
        """Test collection to table mapping."""
        config = SinkConfig(track_table="tracks_t", experience_table="games_t")

        assert config.table_for("tracks") == "tracks_t"
        assert config.table_for("experiences") == "games_t"

    def test_unknown_collection(self) -> None:
        """Test unknown collections are rejected."""
        with pytest.raises(ValueError, match="Unknown collection"):
            SinkConfig().table_for("badges")

    def test_service_key_secret(self) -> None:
        """Test that the service key is stored as secret."""
        with patch.dict(os.environ, {"SINK_SERVICE_KEY": "secret_key_123"}, clear=True):
            config = SinkConfig()

        assert config.service_key is not None
        assert "secret_key_123" not in repr(config.service_key)
        assert config.service_key.get_secret_value() == "secret_key_123"


class TestLoggingConfig:
    """Tests for logging configuration."""

    def test_invalid_level(self) -> None:
        """Test that unknown levels are rejected."""
        with pytest.raises(ValueError):
            LoggingConfig(level="VERBOSE")


class TestSettings:
    """Tests for the aggregated settings."""

    def test_no_required_values(self) -> None:
        """Test settings load with an empty environment."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.environment == "development"
        assert settings.shared_budget is False
        assert settings.is_production is False
        assert settings.sink.backend == "postgrest"
