"""
Staleness-driven enricher.

Selects the stalest rows of a collection from the sink, fans out the
upstream lookups under a concurrency bound, re-evaluates availability
and the popularity score, merges the fresh fields and writes the batch
back. Tracks are looked up one asset at a time, experiences in batches.
A failing entity is written back with an error marker; the batch goes on.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from catalog_mirror.catalog.availability import (
    evaluate_availability,
    evaluate_experience_availability,
)
from catalog_mirror.catalog.manager import RefreshScheduler
from catalog_mirror.catalog.merge import (
    first_present,
    merge_raw_payload,
    pick_number,
    pick_text,
)
from catalog_mirror.catalog.models import (
    UNKNOWN_ARTIST,
    UNKNOWN_CREATOR,
    UNKNOWN_TITLE,
    AvailabilityReason,
    AvailabilityState,
    CatalogEntity,
    Collection,
)
from catalog_mirror.catalog.scoring import compute_popularity_score
from catalog_mirror.config import EnrichConfig, ScoringConfig, UpstreamConfig, get_settings
from catalog_mirror.ingestion.collector import CrawlBudget
from catalog_mirror.ingestion.contracts.asset_details import parse_marketplace_details
from catalog_mirror.ingestion.contracts.experience_details import GameDetail
from catalog_mirror.ingestion.contracts.toolbox import parse_toolbox_asset
from catalog_mirror.ingestion.extractors.asset_details import AssetDetailsClient, LookupResult
from catalog_mirror.ingestion.extractors.base import FetchError, RateLimitedClient
from catalog_mirror.ingestion.extractors.experience_details import ExperienceDetailsClient
from catalog_mirror.ingestion.sink.base import CatalogSink
from catalog_mirror.ingestion.sink.writer import UpsertWriter
from catalog_mirror.logger import bind_run_context, get_logger


@dataclass
class EnrichmentRunResult:
    """Result of an enrichment run."""

    run_id: UUID
    started_at: datetime
    collection: str = Collection.TRACKS.value
    completed_at: datetime | None = None
    batches: int = 0
    processed: int = 0
    updated: int = 0
    ready: int = 0
    not_ready: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()


class StalenessEnricher:
    """
    Refreshes stored tracks, stalest first.

    Subclasses refresh other collections by swapping the lookups and
    the per-batch work; selection and write-back stay here.

    Example:
        >>> async with RateLimitedClient() as client:
        ...     enricher = StalenessEnricher(sink, client)
        ...     result = await enricher.run()
        ...     print(result.updated, result.failed)
    """

    collection = Collection.TRACKS

    def __init__(
        self,
        sink: CatalogSink,
        client: RateLimitedClient,
        *,
        enrich_config: EnrichConfig | None = None,
        scoring_config: ScoringConfig | None = None,
        upstream_config: UpstreamConfig | None = None,
        budget: CrawlBudget | None = None,
        chunk_size: int = 200,
    ) -> None:
        """
        Initialize the enricher.

        Args:
            sink: Store to select from and write back to
            client: Shared transport
            enrich_config: Batch, concurrency and staleness settings
            scoring_config: Popularity score weights
            upstream_config: Endpoint URLs
            budget: Optional budget shared with discovery (one unit per entity)
            chunk_size: Rows per write-back upsert
        """
        settings = None
        if enrich_config is None or scoring_config is None or upstream_config is None:
            settings = get_settings()
        self._config = enrich_config or settings.enrich
        self._scoring = scoring_config or settings.scoring
        self._sink = sink
        self._budget = budget
        self._collection = self.collection.value
        self._scheduler = RefreshScheduler(self._config)
        self._lookups = self._make_lookups(client, upstream_config or settings.upstream)
        self._writer = UpsertWriter(sink, self._collection, chunk_size=chunk_size)
        self._logger = get_logger(__name__, component="enricher", collection=self._collection)

    def _make_lookups(self, client: RateLimitedClient, upstream_config: UpstreamConfig) -> Any:
        return AssetDetailsClient(
            client, upstream_config=upstream_config, enrich_config=self._config
        )

    async def run(self) -> EnrichmentRunResult:
        """
        Enrich batches until the cap, the budget or the backlog runs out.

        Raises:
            SinkError: Selection or write-back failed
        """
        result = EnrichmentRunResult(
            run_id=uuid4(),
            started_at=datetime.now(timezone.utc),
            collection=self._collection,
        )
        bind_run_context(run_id=str(result.run_id), stage=f"enrich-{self._collection}")
        cutoff = self._scheduler.staleness_cutoff(result.started_at)
        processed_ids: set[int] = set()

        self._logger.info(
            "Starting enrichment",
            batch_size=self._config.batch_size,
            max_total=self._config.max_total,
            cutoff=cutoff.isoformat() if cutoff else None,
            force=self._config.force,
        )

        while True:
            limit = self._scheduler.next_batch_size(result.processed)
            if self._budget is not None and self._budget.remaining is not None:
                limit = min(limit, self._budget.remaining)
            if limit <= 0:
                break

            selected = await self._sink.query(
                self._collection, self._scheduler.build_query(limit, cutoff)
            )
            batch = [row for row in selected if row.external_id not in processed_ids]
            if not batch:
                self._logger.info("No more entities due", selected=len(selected))
                break

            if self._budget is not None:
                granted = await self._budget.take(len(batch))
                batch = batch[:granted]
                if not batch:
                    break

            updates = await self._enrich_batch(batch, result)
            result.updated += await self._writer.write(updates)
            result.batches += 1
            result.processed += len(batch)
            processed_ids.update(row.external_id for row in batch)

            self._logger.info(
                "Batch enriched",
                batch=result.batches,
                size=len(batch),
                processed=result.processed,
                failed=result.failed,
            )
            if self._config.batch_delay_seconds > 0:
                await asyncio.sleep(self._config.batch_delay_seconds)

        result.completed_at = datetime.now(timezone.utc)
        self._logger.info(
            "Enrichment complete",
            duration_seconds=round(result.duration_seconds, 2),
            processed=result.processed,
            updated=result.updated,
            ready=result.ready,
            not_ready=result.not_ready,
            failed=result.failed,
        )
        return result

    async def _enrich_batch(
        self,
        batch: list[CatalogEntity],
        result: EnrichmentRunResult,
    ) -> list[CatalogEntity]:
        thumbnails = await self._fetch_thumbnails([row.external_id for row in batch])
        semaphore = asyncio.Semaphore(self._config.concurrency)

        async def bounded(row: CatalogEntity) -> CatalogEntity:
            async with semaphore:
                return await self.enrich_one(row, thumbnails)

        outcomes = await asyncio.gather(*(bounded(row) for row in batch), return_exceptions=True)

        updates = []
        for row, outcome in zip(batch, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                updates.append(self._record_failure(row, outcome, result))
                continue
            updates.append(self._record_outcome(outcome, result))
        return updates

    def _record_outcome(
        self, update: CatalogEntity, result: EnrichmentRunResult
    ) -> CatalogEntity:
        if update.availability_state == AvailabilityState.READY.value:
            result.ready += 1
        else:
            result.not_ready += 1
        return update

    def _record_failure(
        self, row: CatalogEntity, error: Exception, result: EnrichmentRunResult
    ) -> CatalogEntity:
        self._logger.error(
            "Enrichment failed",
            external_id=row.external_id,
            error=f"{error.__class__.__name__}: {error}",
        )
        result.failures.append({"external_id": row.external_id, "error": str(error)})
        return self._failure_update(row, error)

    async def _fetch_thumbnails(self, asset_ids: list[int]) -> dict[int, str]:
        try:
            return await self._lookups.thumbnails(asset_ids)
        except FetchError as e:
            self._logger.warning("Thumbnail fetch failed", error=str(e), assets=len(asset_ids))
            return {}

    async def probe(self, external_id: int) -> CatalogEntity:
        """Enrich one id without touching the sink."""
        thumbnails = await self._fetch_thumbnails([external_id])
        return await self.enrich_one(CatalogEntity(external_id=external_id), thumbnails)

    async def enrich_one(
        self,
        row: CatalogEntity,
        thumbnails: dict[int, str],
        *,
        now: datetime | None = None,
    ) -> CatalogEntity:
        """
        Build the update for one entity.

        Only fields that should change are set on the returned entity,
        so the sink leaves every other column alone.
        """
        now = now or datetime.now(timezone.utc)
        asset_id = row.external_id
        product, economy, toolbox, delivery = await asyncio.gather(
            self._lookups.product_info(asset_id),
            self._lookups.economy_details(asset_id),
            self._lookups.toolbox_asset(asset_id),
            self._lookups.delivery_status(asset_id),
        )

        product_details = parse_marketplace_details(product.data)
        economy_details = parse_marketplace_details(economy.data)
        store_asset = parse_toolbox_asset(toolbox.data)
        asset = store_asset.asset if store_asset else None
        voting = store_asset.voting if store_asset else None
        creator = store_asset.creator if store_asset else None

        asset_type_id = first_present(
            product_details.asset_type_id if product_details else None,
            economy_details.asset_type_id if economy_details else None,
            asset.asset_type_id if asset else None,
        )
        verdict = evaluate_availability(
            primary_ok=product.ok,
            asset_type_id=asset_type_id,
            expected_type_id=self._config.expected_asset_type_id,
            delivery_status=delivery.status,
        )

        force = self._config.force
        title = pick_text(
            force,
            row.title,
            [
                asset.title if asset else None,
                asset.name if asset else None,
                product_details.name if product_details else None,
                economy_details.name if economy_details else None,
            ],
        )
        artist = pick_text(
            force,
            row.creator,
            [
                asset.artist if asset else None,
                product_details.creator_name if product_details else None,
                economy_details.creator_name if economy_details else None,
            ],
        )

        vote_count = first_present(voting.total_votes if voting else None, row.vote_count)
        upvote_percent = first_present(
            voting.up_vote_percent if voting else None, row.upvote_percent
        )
        creator_verified = first_present(
            creator.is_verified if creator else None, row.creator_verified
        )
        thumbnail_url = thumbnails.get(asset_id)

        enrichment = {
            "productInfo": product.data,
            "economyDetails": economy.data,
            "toolboxAsset": toolbox.data,
            "thumbnailUrl": thumbnail_url,
            "deliveryStatus": delivery.status,
            "errors": _lookup_errors(
                productInfo=product, economyDetails=economy, toolboxAsset=toolbox, delivery=delivery
            ),
            "enrichedAt": now.isoformat(),
        }

        update: dict[str, Any] = {
            "external_id": asset_id,
            "verified_at": now,
            "availability_state": verdict.state,
            "availability_reason": verdict.reason.value if verdict.reason else None,
            "delivery_status": delivery.status,
            "vote_count": vote_count,
            "upvote_percent": upvote_percent,
            "creator_verified": creator_verified,
            "popularity_score": compute_popularity_score(
                vote_count=vote_count,
                upvote_percent=upvote_percent,
                rank=row.rank,
                last_seen_at=row.last_seen_at or row.verified_at,
                creator_verified=creator_verified,
                config=self._scoring,
                now=now,
            ),
            "raw_payload": merge_raw_payload(row.raw_payload, enrichment),
        }

        if title is not None:
            update["title"] = title
        elif row.title is None:
            update["title"] = UNKNOWN_TITLE
        if artist is not None:
            update["creator"] = artist
        elif row.creator is None:
            update["creator"] = UNKNOWN_ARTIST

        album = pick_text(force, row.album, [asset.album if asset else None])
        if album is not None:
            update["album"] = album
        genre = pick_text(force, row.genre, [asset.genre if asset else None])
        if genre is not None:
            update["genre"] = genre
        duration = pick_number(
            force, row.duration_seconds, asset.duration_seconds if asset else None
        )
        if duration is not None:
            update["duration_seconds"] = duration

        preview_id = asset.preview_image_id if asset else None
        if preview_id is not None and (force or row.media_asset_id is None):
            update["media_asset_id"] = preview_id
        if thumbnail_url and (force or not row.thumbnail_url):
            update["thumbnail_url"] = thumbnail_url

        return CatalogEntity(**update)

    def _failure_update(self, row: CatalogEntity, error: Exception) -> CatalogEntity:
        now = datetime.now(timezone.utc)
        return CatalogEntity(
            external_id=row.external_id,
            verified_at=now,
            availability_state=AvailabilityState.NOT_READY,
            availability_reason=AvailabilityReason.ENRICHMENT_FAILED.value,
            raw_payload=merge_raw_payload(
                row.raw_payload,
                {"error": f"{error.__class__.__name__}: {error}", "enrichedAt": now.isoformat()},
            ),
        )


class ExperienceEnricher(StalenessEnricher):
    """
    Refreshes stored experiences, stalest first.

    One games detail request covers a chunk of universe ids and chunks
    run under the enrichment concurrency bound. A failed chunk marks its
    entities failed; the rest of the batch goes on. Icons are best effort.
    """

    collection = Collection.EXPERIENCES

    def _make_lookups(
        self, client: RateLimitedClient, upstream_config: UpstreamConfig
    ) -> ExperienceDetailsClient:
        return ExperienceDetailsClient(
            client, upstream_config=upstream_config, enrich_config=self._config
        )

    async def probe(self, external_id: int) -> CatalogEntity:
        """Enrich one universe id without touching the sink."""
        scratch = EnrichmentRunResult(
            run_id=uuid4(), started_at=datetime.now(timezone.utc), collection=self._collection
        )
        return (await self._enrich_batch([CatalogEntity(external_id=external_id)], scratch))[0]

    async def _enrich_batch(
        self,
        batch: list[CatalogEntity],
        result: EnrichmentRunResult,
    ) -> list[CatalogEntity]:
        universe_ids = [row.external_id for row in batch]
        details, errors = await self._fetch_details(universe_ids)
        icons = await self._fetch_icons(universe_ids)
        now = datetime.now(timezone.utc)

        updates = []
        for row in batch:
            error = errors.get(row.external_id)
            if error is not None:
                updates.append(self._record_failure(row, error, result))
                continue
            raw, detail = details.get(row.external_id, (None, None))
            update = self.build_update(row, detail, raw, icons.get(row.external_id), now=now)
            updates.append(self._record_outcome(update, result))
        return updates

    async def _fetch_details(
        self, universe_ids: list[int]
    ) -> tuple[dict[int, tuple[dict[str, Any], GameDetail]], dict[int, Exception]]:
        size = self._config.game_details_batch_size
        chunks = [universe_ids[start : start + size] for start in range(0, len(universe_ids), size)]
        semaphore = asyncio.Semaphore(self._config.concurrency)

        async def bounded(chunk: list[int]) -> dict[int, tuple[dict[str, Any], GameDetail]]:
            async with semaphore:
                return await self._lookups.game_details(chunk)

        outcomes = await asyncio.gather(
            *(bounded(chunk) for chunk in chunks), return_exceptions=True
        )

        details: dict[int, tuple[dict[str, Any], GameDetail]] = {}
        errors: dict[int, Exception] = {}
        for chunk, outcome in zip(chunks, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                errors.update((universe_id, outcome) for universe_id in chunk)
                continue
            details.update(outcome)
        return details, errors

    async def _fetch_icons(self, universe_ids: list[int]) -> dict[int, str]:
        try:
            return await self._lookups.icons(universe_ids)
        except FetchError as e:
            self._logger.warning("Icon fetch failed", error=str(e), experiences=len(universe_ids))
            return {}

    def build_update(
        self,
        row: CatalogEntity,
        detail: GameDetail | None,
        raw: dict[str, Any] | None,
        icon_url: str | None,
        *,
        now: datetime | None = None,
    ) -> CatalogEntity:
        """
        Build the update for one experience.

        A universe the details endpoint did not return is NOT_READY;
        its stored attributes are left alone.
        """
        now = now or datetime.now(timezone.utc)
        force = self._config.force
        creator_block = detail.creator if detail else None

        verdict = evaluate_experience_availability(
            found=detail is not None,
            root_place_id=detail.root_place_id if detail else None,
        )
        title = pick_text(
            force,
            row.title,
            [detail.name if detail else None, detail.source_name if detail else None],
        )
        creator = pick_text(force, row.creator, [creator_block.name if creator_block else None])
        genre = pick_text(force, row.genre, [detail.genre if detail else None])

        total, percent = detail.vote_totals if detail else (None, None)
        vote_count = first_present(total, row.vote_count)
        upvote_percent = first_present(percent, row.upvote_percent)
        creator_verified = first_present(
            creator_block.has_verified_badge if creator_block else None, row.creator_verified
        )

        enrichment = {
            "gameDetails": raw,
            "iconUrl": icon_url,
            "errors": {} if detail else {"gameDetails": "universe not returned"},
            "enrichedAt": now.isoformat(),
        }

        update: dict[str, Any] = {
            "external_id": row.external_id,
            "verified_at": now,
            "availability_state": verdict.state,
            "availability_reason": verdict.reason.value if verdict.reason else None,
            "vote_count": vote_count,
            "upvote_percent": upvote_percent,
            "creator_verified": creator_verified,
            "popularity_score": compute_popularity_score(
                vote_count=vote_count,
                upvote_percent=upvote_percent,
                rank=row.rank,
                last_seen_at=row.last_seen_at or row.verified_at,
                creator_verified=creator_verified,
                config=self._scoring,
                now=now,
            ),
            "raw_payload": merge_raw_payload(row.raw_payload, enrichment),
        }

        if title is not None:
            update["title"] = title
        elif row.title is None:
            update["title"] = UNKNOWN_TITLE
        if creator is not None:
            update["creator"] = creator
        elif row.creator is None:
            update["creator"] = UNKNOWN_CREATOR
        if genre is not None:
            update["genre"] = genre
        if icon_url and (force or not row.thumbnail_url):
            update["thumbnail_url"] = icon_url

        return CatalogEntity(**update)


ENRICHERS: dict[Collection, type[StalenessEnricher]] = {
    Collection.TRACKS: StalenessEnricher,
    Collection.EXPERIENCES: ExperienceEnricher,
}


def create_enricher(
    collection: str | Collection,
    sink: CatalogSink,
    client: RateLimitedClient,
    **kwargs: Any,
) -> StalenessEnricher:
    """
    Build the enricher for a collection.

    Raises:
        ValueError: Unknown collection name
    """
    return ENRICHERS[Collection(collection)](sink, client, **kwargs)


def _lookup_errors(**lookups: LookupResult) -> dict[str, str]:
    return {name: lookup.error for name, lookup in lookups.items() if lookup.error}
