"""
Sink interface for the catalog mirror.

The persistent store is an external collaborator; the pipeline only
relies on keyed upserts, one ordered range query and rank clearing.
"""

from abc import ABC, abstractmethod
from collections.abc import Collection as CollectionABC
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from catalog_mirror.catalog.models import CatalogEntity


PROTECTED_TEXT_COLUMNS = ("title", "creator")


class SinkError(Exception):
    """Base exception for sink failures."""

    def __init__(
        self,
        message: str,
        *,
        collection: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.collection = collection
        self.original_error = original_error


class SinkWriteError(SinkError):
    """An upsert or update was rejected; fatal to the run."""

    pass


class SinkReadError(SinkError):
    """A selection query failed."""

    pass


@dataclass
class RangeQuery:
    """
    Ordered, filtered, limited selection.

    Attributes:
        order_by: Column to sort on
        descending: Sort direction
        nulls_first: Place NULLs of order_by before other values
        limit: Maximum rows returned
        null_or_before: (column, instant) keeping rows where the column is
            NULL or strictly earlier than the instant
        equals: Column equality filters
        prefix: Column prefix filters
    """

    order_by: str
    descending: bool = False
    nulls_first: bool = True
    limit: int = 100
    null_or_before: tuple[str, datetime] | None = None
    equals: dict[str, Any] = field(default_factory=dict)
    prefix: dict[str, str] = field(default_factory=dict)


class CatalogSink(ABC):
    """
    Keyed store of CatalogEntity rows, one namespace per collection.

    Upsert semantics: rows are keyed by external_id. Without force, the
    provided fields are updated, other columns are left untouched and
    raw_payload is merged key by key. A placeholder title or creator
    never replaces a known one. With force, provided fields
    overwrite, raw_payload included.
    """

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        rows: list[dict[str, Any]],
        *,
        force: bool = False,
    ) -> None:
        """
        Insert or update rows by external_id.

        Raises:
            SinkWriteError: The store rejected the batch
        """
        ...

    @abstractmethod
    async def query(self, collection: str, query: RangeQuery) -> list["CatalogEntity"]:
        """
        Run a range query.

        Raises:
            SinkReadError: The store could not answer
        """
        ...

    @abstractmethod
    async def clear_ranks(self, collection: str, *, keep_ids: CollectionABC[int]) -> int:
        """
        Set rank to NULL on every ranked row not in keep_ids.

        Returns:
            Number of rows whose rank was cleared

        Raises:
            SinkWriteError: The update was rejected
        """
        ...

    async def close(self) -> None:
        """Release resources held by the sink."""
        return None

    async def __aenter__(self) -> "CatalogSink":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
