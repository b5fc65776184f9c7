"""
Discovery planner.

Expands the configured search dimensions into an ordered list of
independent discovery passes. Pure: no I/O, same input, same plan.
"""

import re
from dataclasses import dataclass
from enum import Enum
from itertools import product

from catalog_mirror.config import CrawlConfig, DiscoveryConfig, get_settings
from catalog_mirror.ingestion.contracts.explore import ExploreSort

NO_CHART = "None"

TOOLBOX_SOURCE_TAG = "toolbox_music_search"
TOP_SONGS_SOURCE_TAG = "music_discovery_top_songs"
EXPLORE_SOURCE_TAG = "explore_sorts"
TOP_SONGS_FIRST_CURSOR = "0"

_WHITESPACE = re.compile(r"\s+")


class SourceKind(str, Enum):
    """Which upstream listing a pass walks."""

    TOOLBOX = "toolbox"
    TOP_SONGS = "top_songs"
    EXPLORE = "explore"


@dataclass(frozen=True)
class DurationBucket:
    """Inclusive duration filter in seconds; None bounds are open."""

    label: str
    min_seconds: int | None = None
    max_seconds: int | None = None

    @classmethod
    def parse(cls, token: str) -> "DurationBucket | None":
        """
        Parse "any", "0-60" or "1801-" style tokens.

        Returns:
            DurationBucket, or None if the token is not a valid range
        """
        value = token.strip().lower()
        if value in ("any", "all"):
            return ANY_DURATION
        raw_min, sep, raw_max = value.partition("-")
        if not sep and not raw_min:
            return None
        try:
            min_seconds = int(raw_min) if raw_min else None
            max_seconds = int(raw_max) if raw_max else None
        except ValueError:
            return None
        if min_seconds is None and max_seconds is None:
            return ANY_DURATION
        label = f"{'' if min_seconds is None else min_seconds}-{'' if max_seconds is None else max_seconds}"
        return cls(label=label, min_seconds=min_seconds, max_seconds=max_seconds)


ANY_DURATION = DurationBucket(label="any")


@dataclass(frozen=True)
class DiscoveryPassConfig:
    """One point of the search space. Immutable for the life of a pass."""

    kind: SourceKind
    source_tag: str
    page_size: int
    max_pages: int
    query: str = ""
    sort_category: str | None = None
    sort_direction: str | None = None
    chart_type: str = NO_CHART
    duration: DurationBucket = ANY_DURATION
    sort_id: str | None = None
    sort_token: str | None = None
    initial_cursor: str | None = None

    @property
    def label(self) -> str:
        """Human readable pass description for logs and reports."""
        if self.kind == SourceKind.TOP_SONGS:
            return "top-songs"
        if self.kind == SourceKind.EXPLORE:
            return f"explore sort={self.sort_id}"
        query = self.query or "(empty)"
        return (
            f'query="{query}" sort={self.sort_category}/{self.sort_direction} '
            f"chart={self.chart_type} duration={self.duration.label}"
        )


def normalize_seed(seed: str) -> str:
    """Trim and collapse inner whitespace."""
    return _WHITESPACE.sub(" ", seed.strip())


def expand_seeds(seeds: list[str], suffixes: list[str]) -> list[str]:
    """
    Seeds followed by each seed with every suffix appended.

    Duplicates are dropped case-insensitively; the first spelling wins.
    """
    unique: dict[str, str] = {}

    def add(value: str) -> None:
        cleaned = normalize_seed(value)
        if cleaned and cleaned.lower() not in unique:
            unique[cleaned.lower()] = cleaned

    for seed in seeds:
        add(seed)
    for suffix in suffixes:
        for seed in seeds:
            if normalize_seed(seed):
                add(f"{seed} {suffix}")
    return list(unique.values())


def parse_duration_buckets(tokens: list[str]) -> list[DurationBucket]:
    """Valid buckets in order; `any` when nothing parses."""
    buckets = [bucket for bucket in (DurationBucket.parse(t) for t in tokens) if bucket]
    return buckets or [ANY_DURATION]


class DiscoveryPlanner:
    """
    Builds the pass list for a discovery run.

    Example:
        >>> planner = DiscoveryPlanner()
        >>> passes = planner.plan()
        >>> passes[0].label
        'query="electronic" sort=Top/Descending chart=None duration=any'
    """

    def __init__(
        self,
        discovery_config: DiscoveryConfig | None = None,
        crawl_config: CrawlConfig | None = None,
    ) -> None:
        if discovery_config is None or crawl_config is None:
            settings = get_settings()
            discovery_config = discovery_config or settings.discovery
            crawl_config = crawl_config or settings.crawl
        self._discovery = discovery_config
        self._crawl = crawl_config

    def queries(self) -> list[str]:
        """Expanded query seeds, with the empty query first when enabled."""
        seeds = expand_seeds(self._discovery.query_seeds, self._discovery.seed_suffixes)
        if self._discovery.include_empty_query:
            seeds.insert(0, "")
        return seeds

    def plan(self) -> list[DiscoveryPassConfig]:
        """
        Cartesian product chart x sort x duration x query.

        A query-less pass without a chart filter would just list the
        whole catalog by the sort order, so it is never emitted.
        """
        chart_types = self._discovery.chart_types or [NO_CHART]
        sort_categories = self._discovery.sort_categories
        durations = parse_duration_buckets(self._discovery.duration_buckets)
        queries = self.queries()

        passes = []
        for chart_type, sort_category, duration, query in product(
            chart_types, sort_categories, durations, queries
        ):
            if not query and chart_type == NO_CHART:
                continue
            passes.append(
                DiscoveryPassConfig(
                    kind=SourceKind.TOOLBOX,
                    source_tag=TOOLBOX_SOURCE_TAG,
                    page_size=self._crawl.page_size,
                    max_pages=self._crawl.max_pages_per_pass,
                    query=query,
                    sort_category=sort_category,
                    sort_direction=self._discovery.sort_direction,
                    chart_type=chart_type,
                    duration=duration,
                )
            )
        return passes

    def plan_top_chart(self) -> DiscoveryPassConfig:
        """The single ranked pass over the top songs chart."""
        return DiscoveryPassConfig(
            kind=SourceKind.TOP_SONGS,
            source_tag=TOP_SONGS_SOURCE_TAG,
            page_size=self._crawl.top_songs_page_size,
            max_pages=self._crawl.top_songs_max_pages,
            initial_cursor=TOP_SONGS_FIRST_CURSOR,
        )

    def plan_explore(self, sorts: list[ExploreSort]) -> list[DiscoveryPassConfig]:
        """One pass per explore sort, duplicates by sort id removed."""
        passes = []
        seen: set[str] = set()
        for sort in sorts:
            if sort.sort_id in seen:
                continue
            seen.add(sort.sort_id)
            passes.append(
                DiscoveryPassConfig(
                    kind=SourceKind.EXPLORE,
                    source_tag=EXPLORE_SOURCE_TAG,
                    page_size=self._crawl.page_size,
                    max_pages=self._crawl.max_pages_per_pass,
                    sort_id=sort.sort_id,
                    sort_token=sort.effective_token,
                )
            )
        return passes
