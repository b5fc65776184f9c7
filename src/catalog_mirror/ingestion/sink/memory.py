"""
In-memory sink.

Implements the full sink contract in process memory. Used by tests and
by `--dry-run` crawls that should not touch the real store.
"""

from collections.abc import Collection as CollectionABC
from datetime import datetime, timezone
from typing import Any

from catalog_mirror.catalog.models import CatalogEntity, is_placeholder
from catalog_mirror.ingestion.sink.base import (
    PROTECTED_TEXT_COLUMNS,
    CatalogSink,
    RangeQuery,
    SinkWriteError,
)
from catalog_mirror.logger import get_logger


def _as_utc(value: datetime) -> datetime:
    """Naive timestamps are stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _sort_key(value: Any) -> Any:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, datetime):
        return _as_utc(value)
    return value


class InMemorySink(CatalogSink):
    """
    Dict-backed sink keyed by (collection, external_id).

    Rows are stored as JSON-mode dicts, the same shape a database
    would hand back.
    """

    def __init__(self) -> None:
        self._rows: dict[str, dict[int, dict[str, Any]]] = {}
        self.upsert_calls = 0
        self._logger = get_logger(__name__, component="memory_sink")

    def rows(self, collection: str) -> dict[int, dict[str, Any]]:
        """Stored rows of a collection (live view)."""
        return self._rows.setdefault(collection, {})

    def get(self, collection: str, external_id: int) -> CatalogEntity | None:
        row = self.rows(collection).get(external_id)
        return CatalogEntity.model_validate(row) if row is not None else None

    async def upsert(
        self,
        collection: str,
        rows: list[dict[str, Any]],
        *,
        force: bool = False,
    ) -> None:
        self.upsert_calls += 1
        store = self.rows(collection)
        now = datetime.now(timezone.utc).isoformat()

        for row in rows:
            external_id = row.get("external_id")
            if not isinstance(external_id, int):
                raise SinkWriteError(
                    f"Row without integer external_id: {row!r}",
                    collection=collection,
                )

            existing = store.get(external_id)
            if existing is None:
                stored = CatalogEntity.model_validate(row).model_dump(mode="json")
                stored["first_seen_at"] = stored.get("first_seen_at") or now
                store[external_id] = stored
                continue

            update = dict(row)
            if not force:
                for column in PROTECTED_TEXT_COLUMNS:
                    if (
                        column in update
                        and is_placeholder(update[column])
                        and not is_placeholder(existing.get(column))
                    ):
                        del update[column]
                if "raw_payload" in update:
                    update["raw_payload"] = {
                        **(existing.get("raw_payload") or {}),
                        **(update["raw_payload"] or {}),
                    }
            existing.update(update)

        self._logger.debug("Upserted rows", collection=collection, rows=len(rows), force=force)

    async def query(self, collection: str, query: RangeQuery) -> list[CatalogEntity]:
        selected = []
        for row in self.rows(collection).values():
            if any(row.get(column) != value for column, value in query.equals.items()):
                continue
            if any(
                not str(row.get(column) or "").startswith(prefix)
                for column, prefix in query.prefix.items()
            ):
                continue
            if query.null_or_before is not None:
                column, before = query.null_or_before
                value = row.get(column)
                if value is not None and _sort_key(value) >= _as_utc(before):
                    continue
            selected.append(row)

        nulls = [row for row in selected if row.get(query.order_by) is None]
        values = sorted(
            (row for row in selected if row.get(query.order_by) is not None),
            key=lambda row: _sort_key(row[query.order_by]),
            reverse=query.descending,
        )
        ordered = nulls + values if query.nulls_first else values + nulls
        return [CatalogEntity.model_validate(row) for row in ordered[: query.limit]]

    async def clear_ranks(self, collection: str, *, keep_ids: CollectionABC[int]) -> int:
        keep = set(keep_ids)
        cleared = 0
        for external_id, row in self.rows(collection).items():
            if row.get("rank") is not None and external_id not in keep:
                row["rank"] = None
                cleared += 1
        return cleared
