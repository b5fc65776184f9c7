"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables with validation,
type coercion, and sensible defaults.
"""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

CsvList = Annotated[list[str], NoDecode]


def _split_csv(value: object) -> object:
    """Accept comma-separated strings for list settings."""
    if isinstance(value, str):
        return [entry.strip() for entry in value.split(",") if entry.strip()]
    return value


class UpstreamConfig(BaseSettings):
    """Upstream catalog API configuration."""

    model_config = SettingsConfigDict(env_prefix="ROBLOX_")

    toolbox_search_url: str = Field(
        default="https://apis.roblox.com/toolbox-service/v2/assets:search",
        description="Paginated creator store search endpoint",
    )
    top_songs_url: str = Field(
        default="https://apis.roblox.com/music-discovery/v1/top-songs",
        description="Ranked top songs endpoint",
    )
    explore_base_url: str = Field(
        default="https://apis.roblox.com/explore-api/v1",
        description="Explore API base URL (sorts and sort content)",
    )
    product_info_url: str = Field(
        default="https://api.roblox.com/marketplace/productinfo",
        description="Primary per-asset metadata endpoint",
    )
    economy_details_url: str = Field(
        default="https://economy.roblox.com/v2/assets/{asset_id}/details",
        description="Economy details endpoint template",
    )
    toolbox_asset_url: str = Field(
        default="https://apis.roblox.com/toolbox-service/v2/assets/{asset_id}",
        description="Toolbox asset detail/voting endpoint template",
    )
    asset_delivery_url: str = Field(
        default="https://assetdelivery.roblox.com/v1/asset/",
        description="Binary asset delivery endpoint probed for availability",
    )
    thumbnails_url: str = Field(
        default="https://thumbnails.roblox.com/v1/assets",
        description="Batch asset thumbnails endpoint",
    )
    game_details_url: str = Field(
        default="https://games.roblox.com/v1/games",
        description="Batch experience details endpoint (universeIds=...)",
    )
    game_icons_url: str = Field(
        default="https://thumbnails.roblox.com/v1/games/icons",
        description="Batch experience icons endpoint",
    )
    user_agent: str = Field(
        default="CatalogMirror/1.0",
        description="User-Agent header sent upstream",
    )
    timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=120.0,
        description="HTTP request timeout in seconds",
    )
    request_delay_seconds: float = Field(
        default=0.15,
        ge=0.0,
        le=10.0,
        description="Minimum spacing between request starts per upstream host",
    )
    max_in_flight: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Maximum concurrent requests per upstream host",
    )
    explore_device: str = Field(default="computer", description="Explore API device filter")
    explore_country: str = Field(default="all", description="Explore API country filter")


class RetryConfig(BaseSettings):
    """Retry behavior configuration."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_attempts: int = Field(
        default=4,
        ge=1,
        le=11,
        description="Total attempts per request (first try plus retries)",
    )
    base_delay_seconds: float = Field(
        default=0.4,
        ge=0.0,
        le=30.0,
        description="Base delay between retries (exponential backoff)",
    )
    max_delay_seconds: float = Field(
        default=30.0,
        ge=0.0,
        le=300.0,
        description="Maximum delay between retries",
    )
    jitter_seconds: float = Field(
        default=0.2,
        ge=0.0,
        le=5.0,
        description="Upper bound of random jitter added to each backoff",
    )


class CrawlConfig(BaseSettings):
    """Discovery crawl limits and pacing."""

    model_config = SettingsConfigDict(env_prefix="CRAWL_")

    page_size: int = Field(default=100, description="Search page size (clamped to 1-100)")
    max_pages_per_pass: int = Field(default=200, ge=1, description="Page cap per pass")
    page_delay_seconds: float = Field(
        default=0.2,
        ge=0.0,
        le=60.0,
        description="Pause between pages of one pass",
    )
    item_budget: int = Field(
        default=0,
        ge=0,
        description="Run-wide cap on newly accepted entities (0 = unlimited)",
    )
    empty_page_limit: int = Field(
        default=2,
        ge=1,
        description="Consecutive pages without new entities before a pass stops",
    )
    max_concurrent_passes: int = Field(default=1, ge=1, le=16)
    top_songs_page_size: int = Field(default=100, ge=1)
    top_songs_max_pages: int = Field(default=25, ge=1)
    full_rank_refresh: bool = Field(
        default=True,
        description="Clear ranks of tracks that fell out of the top chart",
    )
    force_overwrite: bool = Field(
        default=False,
        description="Overwrite stored payloads instead of merging them",
    )

    @field_validator("page_size")
    @classmethod
    def clamp_page_size(cls, v: int) -> int:
        """The search endpoint rejects pages larger than 100."""
        if v <= 0:
            return 100
        return min(100, v)


class DiscoveryConfig(BaseSettings):
    """Dimensions of the discovery search space."""

    model_config = SettingsConfigDict(env_prefix="DISCOVERY_")

    query_seeds: CsvList = Field(
        default=[
            "electronic",
            "ambient",
            "pop",
            "hip hop",
            "indie",
            "funk",
            "rock",
            "lofi",
            "jazz",
            "acoustic",
            "country",
            "metal",
            "r&b",
            "rap",
            "folk",
            "holiday",
            "classical",
            "world",
        ]
    )
    seed_suffixes: CsvList = Field(default=["music"])
    sort_categories: CsvList = Field(
        default=["Top", "Trending", "Ratings", "UpdatedTime", "CreateTime"]
    )
    sort_direction: str = Field(default="Descending")
    chart_types: CsvList = Field(default=["None", "Current", "Week", "Month", "Year"])
    duration_buckets: CsvList = Field(
        default=["any", "0-60", "61-180", "181-600", "601-1800", "1801-"]
    )
    include_empty_query: bool = Field(default=False)
    search_view: str = Field(default="Full")

    @field_validator(
        "query_seeds",
        "seed_suffixes",
        "sort_categories",
        "chart_types",
        "duration_buckets",
        mode="before",
    )
    @classmethod
    def parse_csv(cls, v: object) -> object:
        return _split_csv(v)


class EnrichConfig(BaseSettings):
    """Staleness-driven enrichment configuration."""

    model_config = SettingsConfigDict(env_prefix="ENRICH_")

    batch_size: int = Field(default=50, ge=1, le=200)
    max_total: int = Field(default=0, ge=0, description="Entities per run (0 = unlimited)")
    concurrency: int = Field(default=4, ge=1, le=25)
    refresh_hours: float = Field(
        default=168.0,
        ge=0.0,
        le=365 * 24,
        description="Re-verify entities older than this (0 = no staleness filter)",
    )
    force: bool = Field(
        default=False,
        description="Let fresh non-empty values overwrite stored ones",
    )
    source_tag: str | None = Field(default=None, description="Only enrich rows with this tag")
    batch_delay_seconds: float = Field(default=0.3, ge=0.0, le=60.0)
    expected_asset_type_id: int = Field(default=3, description="Audio asset type id")
    thumbnail_batch_size: int = Field(default=50, ge=1, le=100)
    thumbnail_size: str = Field(default="420x420")
    thumbnail_format: str = Field(default="Png")
    game_details_batch_size: int = Field(
        default=50,
        ge=1,
        le=100,
        description="Universe ids per experience details request",
    )
    game_icon_size: str = Field(default="512x512")


class ScoringConfig(BaseSettings):
    """Popularity score weights and caps."""

    model_config = SettingsConfigDict(env_prefix="SCORE_")

    vote_weight: float = Field(default=0.7, ge=0.0, le=100.0)
    upvote_weight: float = Field(default=10.0, ge=0.0, le=1000.0)
    rank_weight: float = Field(default=1.0, ge=0.0, le=100.0)
    recency_weight: float = Field(default=1.0, ge=0.0, le=100.0)
    verified_bonus: float = Field(default=50.0, ge=0.0, le=1000.0)
    rank_max: float = Field(default=1000.0, ge=0.0, le=100000.0)
    recency_max_days: float = Field(default=90.0, ge=0.0, le=365.0)


class SinkConfig(BaseSettings):
    """Persistent store configuration."""

    model_config = SettingsConfigDict(env_prefix="SINK_")

    backend: Literal["postgrest", "memory"] = Field(default="postgrest")
    url: str | None = Field(default=None, description="Supabase/PostgREST project URL")
    service_key: SecretStr | None = Field(default=None, description="Service role key")
    track_table: str = Field(default="roblox_music_ids")
    experience_table: str = Field(default="roblox_games")
    upsert_function: str = Field(
        default="upsert_catalog_entities",
        description="RPC performing merge upserts",
    )
    chunk_size: int = Field(default=200, ge=1, le=1000)
    timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)

    def table_for(self, collection: str) -> str:
        """Map a collection name onto its table."""
        tables = {"tracks": self.track_table, "experiences": self.experience_table}
        try:
            return tables[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    format: Literal["json", "console"] = Field(
        default="json",
        description="Log output format",
    )
    include_timestamp: bool = Field(
        default=True,
        description="Include timestamp in log entries",
    )


class Settings(BaseSettings):
    """
    Main application settings.

    Aggregates all configuration sections and provides
    a single entry point for configuration access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    shared_budget: bool = Field(
        default=False,
        description="Discovery and enrichment draw from one budget in `run`",
    )

    # Sub-configurations
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    crawl: CrawlConfig = Field(default_factory=CrawlConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    enrich: EnrichConfig = Field(default_factory=EnrichConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once
    and reused across the application.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
