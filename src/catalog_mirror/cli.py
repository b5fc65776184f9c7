"""
Command-line interface for the catalog mirror.

Provides commands to run discovery and enrichment jobs and to enrich
single tracks or experiences by hand.
"""

import asyncio
import json
import sys
from datetime import datetime, timezone
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from catalog_mirror.catalog.models import Collection
from catalog_mirror.config import Settings, get_settings
from catalog_mirror.ingestion.sink.base import SinkError
from catalog_mirror.logger import get_logger, setup_logging

# Nested settings sections read os.environ only, so .env goes there first
load_dotenv()

# Initialize logging
setup_logging()
logger = get_logger(__name__, component="cli")

EXIT_OK = 0
EXIT_NO_PROGRESS = 1
EXIT_SINK_ERROR = 2


class CLIOutput(BaseModel):
    """Structured output for CLI commands."""

    success: bool
    command: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] | list[Any] | None = None
    error: str | None = None


def print_json(output: CLIOutput) -> None:
    """Print output as formatted JSON."""
    print(json.dumps(output.model_dump(), indent=2, default=str))


def _option(name: str, default: str | None = None) -> str | None:
    if name in sys.argv:
        idx = sys.argv.index(name)
        if idx + 1 < len(sys.argv):
            return sys.argv[idx + 1]
    return default


def _flag(name: str) -> bool:
    return name in sys.argv


def _open_sink(settings: Settings, dry_run: bool):
    from catalog_mirror.ingestion.sink import InMemorySink, create_sink

    if dry_run:
        logger.info("Dry run: writes go to an in-memory sink")
        return InMemorySink()
    return create_sink(settings.sink)


def _discovery_summary(result) -> dict[str, Any]:
    return {
        "run_id": str(result.run_id),
        "duration_seconds": round(result.duration_seconds, 2),
        "accepted": result.total_accepted,
        "duplicates_dropped": result.duplicates_dropped,
        "budget_dropped": result.budget_dropped,
        "stages": [
            {
                "stage": stage.stage.value,
                "passes": len(stage.passes),
                "accepted": stage.accepted,
                "ranks_cleared": stage.ranks_cleared,
                "error": stage.error,
                "failed_passes": [
                    {"pass": failed.label, "error": failed.error}
                    for failed in stage.failed_passes
                ],
            }
            for stage in result.stages
        ],
    }


def _enrichment_summary(result) -> dict[str, Any]:
    return {
        "run_id": str(result.run_id),
        "collection": result.collection,
        "duration_seconds": round(result.duration_seconds, 2),
        "batches": result.batches,
        "processed": result.processed,
        "updated": result.updated,
        "ready": result.ready,
        "not_ready": result.not_ready,
        "failed": result.failed,
        "failures": result.failures,
    }


def _enrichment_progressed(result) -> bool:
    """Nothing due is fine; everything selected failing is not."""
    return result.processed == 0 or result.failed < result.processed


def _collection_from(value: str | None) -> str:
    """Validate --collection; tracks by default."""
    return Collection(value or Collection.TRACKS.value).value


def _stages_from(value: str | None):
    from catalog_mirror.ingestion.orchestrator import DiscoveryStage

    if value is None or value == "all":
        return list(DiscoveryStage)
    return [DiscoveryStage(part.strip()) for part in value.split(",") if part.strip()]


async def cmd_test_config() -> int:
    """Test configuration loading."""
    settings = get_settings()

    output = CLIOutput(
        success=True,
        command="test-config",
        data={
            "environment": settings.environment,
            "sink_backend": settings.sink.backend,
            "sink_url": settings.sink.url,
            "sink_key_configured": settings.sink.service_key is not None,
            "request_delay_seconds": settings.upstream.request_delay_seconds,
            "max_attempts": settings.retry.max_attempts,
            "page_size": settings.crawl.page_size,
            "item_budget": settings.crawl.item_budget,
            "query_seeds": len(settings.discovery.query_seeds),
            "enrich_batch_size": settings.enrich.batch_size,
            "enrich_concurrency": settings.enrich.concurrency,
            "shared_budget": settings.shared_budget,
        },
    )
    print_json(output)
    return EXIT_OK


async def cmd_discover(stages: str | None, budget: int | None, dry_run: bool) -> int:
    """Run discovery stages."""
    from catalog_mirror.ingestion.collector import CrawlBudget
    from catalog_mirror.ingestion.extractors import RateLimitedClient
    from catalog_mirror.ingestion.orchestrator import DiscoveryOrchestrator

    settings = get_settings()
    limit = budget if budget is not None else settings.crawl.item_budget

    async with RateLimitedClient(
        upstream_config=settings.upstream, retry_config=settings.retry
    ) as client, _open_sink(settings, dry_run) as sink:
        orchestrator = DiscoveryOrchestrator(
            client, sink, settings=settings, budget=CrawlBudget(limit)
        )
        result = await orchestrator.run(_stages_from(stages))

    success = result.total_accepted > 0
    print_json(CLIOutput(success=success, command="discover", data=_discovery_summary(result)))
    return EXIT_OK if success else EXIT_NO_PROGRESS


async def cmd_enrich(
    collection: str, force: bool, max_total: int | None, dry_run: bool
) -> int:
    """Run one enrichment job over one collection."""
    from catalog_mirror.ingestion.enricher import create_enricher
    from catalog_mirror.ingestion.extractors import RateLimitedClient

    settings = get_settings()
    overrides: dict[str, Any] = {}
    if force:
        overrides["force"] = True
    if max_total is not None:
        overrides["max_total"] = max_total
    enrich_config = settings.enrich.model_copy(update=overrides)

    async with RateLimitedClient(
        upstream_config=settings.upstream, retry_config=settings.retry
    ) as client, _open_sink(settings, dry_run) as sink:
        enricher = create_enricher(
            collection,
            sink,
            client,
            enrich_config=enrich_config,
            scoring_config=settings.scoring,
            upstream_config=settings.upstream,
            chunk_size=settings.sink.chunk_size,
        )
        result = await enricher.run()

    success = _enrichment_progressed(result)
    print_json(CLIOutput(success=success, command="enrich", data=_enrichment_summary(result)))
    return EXIT_OK if success else EXIT_NO_PROGRESS


async def cmd_run(dry_run: bool) -> int:
    """Discovery followed by enrichment of every collection, sharing the sink and client."""
    from catalog_mirror.ingestion.collector import CrawlBudget
    from catalog_mirror.ingestion.enricher import create_enricher
    from catalog_mirror.ingestion.extractors import RateLimitedClient
    from catalog_mirror.ingestion.orchestrator import DiscoveryOrchestrator

    settings = get_settings()
    discovery_budget = CrawlBudget(settings.crawl.item_budget)
    enrich_budget = discovery_budget if settings.shared_budget else None

    async with RateLimitedClient(
        upstream_config=settings.upstream, retry_config=settings.retry
    ) as client, _open_sink(settings, dry_run) as sink:
        discovery = await DiscoveryOrchestrator(
            client, sink, settings=settings, budget=discovery_budget
        ).run()
        enrichment = []
        for collection in Collection:
            enricher = create_enricher(
                collection,
                sink,
                client,
                enrich_config=settings.enrich,
                scoring_config=settings.scoring,
                upstream_config=settings.upstream,
                budget=enrich_budget,
                chunk_size=settings.sink.chunk_size,
            )
            enrichment.append(await enricher.run())

    success = discovery.total_accepted > 0 or any(
        result.processed > 0 and _enrichment_progressed(result) for result in enrichment
    )
    print_json(
        CLIOutput(
            success=success,
            command="run",
            data={
                "discovery": _discovery_summary(discovery),
                "enrichment": [_enrichment_summary(result) for result in enrichment],
            },
        )
    )
    return EXIT_OK if success else EXIT_NO_PROGRESS


async def cmd_probe(external_id: int, collection: str) -> int:
    """Enrich a single id and print the update without writing it."""
    from catalog_mirror.ingestion.enricher import create_enricher
    from catalog_mirror.ingestion.extractors import RateLimitedClient
    from catalog_mirror.ingestion.sink import InMemorySink

    settings = get_settings()
    async with RateLimitedClient(
        upstream_config=settings.upstream, retry_config=settings.retry
    ) as client:
        enricher = create_enricher(
            collection,
            InMemorySink(),
            client,
            enrich_config=settings.enrich,
            scoring_config=settings.scoring,
            upstream_config=settings.upstream,
        )
        entity = await enricher.probe(external_id)

    output = CLIOutput(success=True, command="probe", data=entity.to_row())
    print_json(output)
    return EXIT_OK


def print_usage() -> None:
    """Print CLI usage information."""
    usage = """
Catalog Mirror CLI
==================

Usage: catalog-mirror <command> [arguments]

Commands:
  test-config                 Show the effective configuration
  discover                    Crawl the catalog and upsert new entities
  enrich                      Refresh the stalest stored entities of one collection
  run                         discover, then enrich every collection
  probe <id>                  Enrich one track or experience and print the result
                              (no writes)

Options:
  --stage <stages>            discover: all (default), top-songs, toolbox, explore
                              (comma-separated)
  --budget <n>                discover: cap on accepted entities (0 = unlimited)
  --force                     enrich: let fresh values overwrite stored ones
  --max-total <n>             enrich: cap on entities processed this run
  --collection <name>         enrich, probe: tracks (default) or experiences
  --dry-run                   write to an in-memory sink instead of the store

Examples:
  catalog-mirror discover --stage top-songs
  catalog-mirror enrich --max-total 200
  catalog-mirror enrich --collection experiences
"""
    print(usage)


def main() -> None:
    """Main CLI entry point."""
    if len(sys.argv) < 2:
        print_usage()
        sys.exit(1)

    command = sys.argv[1]
    dry_run = _flag("--dry-run")

    try:
        if command == "test-config":
            code = asyncio.run(cmd_test_config())

        elif command == "discover":
            budget = _option("--budget")
            code = asyncio.run(
                cmd_discover(
                    _option("--stage"),
                    int(budget) if budget is not None else None,
                    dry_run,
                )
            )

        elif command == "enrich":
            max_total = _option("--max-total")
            code = asyncio.run(
                cmd_enrich(
                    _collection_from(_option("--collection")),
                    _flag("--force"),
                    int(max_total) if max_total is not None else None,
                    dry_run,
                )
            )

        elif command == "run":
            code = asyncio.run(cmd_run(dry_run))

        elif command == "probe":
            if len(sys.argv) < 3:
                print("Error: id required")
                sys.exit(1)
            code = asyncio.run(
                cmd_probe(int(sys.argv[2]), _collection_from(_option("--collection")))
            )

        elif command in ("help", "--help", "-h"):
            print_usage()
            code = EXIT_OK

        else:
            print(f"Unknown command: {command}")
            print_usage()
            sys.exit(1)

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except SinkError as e:
        logger.error("Sink failure", error=str(e), collection=e.collection)
        print_json(CLIOutput(success=False, command=command, error=str(e)))
        sys.exit(EXIT_SINK_ERROR)
    except Exception as e:
        logger.exception("CLI error", error=str(e))
        print_json(CLIOutput(success=False, command=command, error=str(e)))
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
