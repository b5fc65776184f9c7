"""
PostgREST (Supabase) sink.

Talks to the project's REST endpoint over httpx. Merge upserts go
through an RPC function (see sql/catalog_upsert.sql) because PostgREST's
native upsert replaces JSON columns wholesale; forced upserts use the
native `on_conflict` path for exactly that reason.
"""

from collections.abc import Collection as CollectionABC
from typing import Any

import httpx

from catalog_mirror.catalog.models import CatalogEntity
from catalog_mirror.config import SinkConfig, get_settings
from catalog_mirror.ingestion.sink.base import (
    CatalogSink,
    RangeQuery,
    SinkReadError,
    SinkWriteError,
)
from catalog_mirror.logger import get_logger


def _postgrest_value(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_query_params(query: RangeQuery) -> list[tuple[str, str]]:
    """
    Translate a RangeQuery into PostgREST query-string parameters.

    Example:
        >>> build_query_params(RangeQuery(order_by="verified_at", limit=50))
        [('select', '*'), ('order', 'verified_at.asc.nullsfirst'), ('limit', '50')]
    """
    direction = "desc" if query.descending else "asc"
    nulls = "nullsfirst" if query.nulls_first else "nullslast"
    params = [
        ("select", "*"),
        ("order", f"{query.order_by}.{direction}.{nulls}"),
        ("limit", str(query.limit)),
    ]
    if query.null_or_before is not None:
        column, before = query.null_or_before
        params.append(("or", f"({column}.is.null,{column}.lt.{before.isoformat()})"))
    for column, value in query.equals.items():
        params.append((column, f"eq.{_postgrest_value(value)}"))
    for column, prefix in query.prefix.items():
        params.append((column, f"like.{prefix}*"))
    return params


def group_by_columns(rows: list[dict[str, Any]]) -> list[list[dict[str, Any]]]:
    """
    Split rows into groups that share the same keys, in first-seen order.

    PostgREST rejects a bulk insert whose objects differ in keys.
    """
    groups: dict[frozenset[str], list[dict[str, Any]]] = {}
    for row in rows:
        groups.setdefault(frozenset(row), []).append(row)
    return list(groups.values())


class PostgrestSink(CatalogSink):
    """
    Sink backed by a Supabase/PostgREST table per collection.

    Example:
        >>> async with PostgrestSink() as sink:
        ...     await sink.upsert("tracks", [{"external_id": 1, "title": "Song"}])
    """

    def __init__(
        self,
        config: SinkConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or get_settings().sink
        if not self._config.url or self._config.service_key is None:
            raise ValueError("SINK_URL and SINK_SERVICE_KEY must be set for the postgrest sink")
        key = self._config.service_key.get_secret_value()
        self._client = httpx.AsyncClient(
            base_url=f"{self._config.url.rstrip('/')}/rest/v1",
            timeout=httpx.Timeout(self._config.timeout_seconds),
            transport=transport,
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
        )
        self._logger = get_logger(__name__, component="postgrest_sink")

    async def close(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        collection: str,
        error_type: type[SinkReadError] | type[SinkWriteError],
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise error_type(
                f"{method} {path} failed: {e}",
                collection=collection,
                original_error=e,
            ) from e
        if response.status_code >= 400:
            raise error_type(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                collection=collection,
            )
        return response

    async def upsert(
        self,
        collection: str,
        rows: list[dict[str, Any]],
        *,
        force: bool = False,
    ) -> None:
        if not rows:
            return
        table = self._config.table_for(collection)

        if force:
            # One bulk insert per column set; columns a row omits stay untouched
            for group in group_by_columns(rows):
                await self._send(
                    "POST",
                    f"/{table}",
                    collection=collection,
                    error_type=SinkWriteError,
                    params={"on_conflict": "external_id"},
                    headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
                    json=group,
                )
        else:
            await self._send(
                "POST",
                f"/rpc/{self._config.upsert_function}",
                collection=collection,
                error_type=SinkWriteError,
                json={"p_table": table, "p_rows": rows},
            )

        self._logger.debug("Upserted rows", table=table, rows=len(rows), force=force)

    async def query(self, collection: str, query: RangeQuery) -> list[CatalogEntity]:
        table = self._config.table_for(collection)
        response = await self._send(
            "GET",
            f"/{table}",
            collection=collection,
            error_type=SinkReadError,
            params=build_query_params(query),
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise SinkReadError(
                f"Query on {table} returned a non-JSON body",
                collection=collection,
                original_error=e,
            ) from e
        return [CatalogEntity.model_validate(row) for row in payload or []]

    async def clear_ranks(self, collection: str, *, keep_ids: CollectionABC[int]) -> int:
        table = self._config.table_for(collection)
        params: list[tuple[str, str]] = [("rank", "not.is.null")]
        if keep_ids:
            ids = ",".join(str(i) for i in sorted(keep_ids))
            params.append(("external_id", f"not.in.({ids})"))

        response = await self._send(
            "PATCH",
            f"/{table}",
            collection=collection,
            error_type=SinkWriteError,
            params=params,
            headers={"Prefer": "return=representation"},
            json={"rank": None},
        )
        cleared = len(response.json() or [])
        self._logger.info("Cleared stale ranks", table=table, cleared=cleared)
        return cleared
