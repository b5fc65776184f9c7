"""
Dedup & budget collector.

Shared by every pass of a run. Drops ids already accepted in the run
and anything past the run-wide budget. All mutation happens under one
asyncio.Lock, so concurrent passes see a consistent view.
"""

import asyncio
from collections.abc import Iterable

from catalog_mirror.catalog.models import CatalogEntity
from catalog_mirror.logger import get_logger


class CrawlBudget:
    """
    Run-wide cap on accepted entities.

    Passed by reference to every consumer that should draw from it
    (all passes, and optionally the enricher).

    Example:
        >>> budget = CrawlBudget(500)
        >>> granted = await budget.take(120)
    """

    def __init__(self, limit: int | None = None) -> None:
        """
        Args:
            limit: Maximum units; None or 0 means unlimited
        """
        self.limit = limit if limit else None
        self.used = 0
        self._lock = asyncio.Lock()

    @property
    def remaining(self) -> int | None:
        if self.limit is None:
            return None
        return max(0, self.limit - self.used)

    @property
    def exhausted(self) -> bool:
        return self.limit is not None and self.used >= self.limit

    async def take(self, requested: int) -> int:
        """Reserve up to `requested` units; returns how many were granted."""
        if requested <= 0:
            return 0
        async with self._lock:
            granted = requested if self.limit is None else min(requested, self.limit - self.used)
            granted = max(0, granted)
            self.used += granted
            return granted


class DedupCollector:
    """
    Global seen-set plus budget accounting.

    Example:
        >>> collector = DedupCollector(CrawlBudget(100))
        >>> survivors = await collector.accept(page.records)
    """

    def __init__(self, budget: CrawlBudget | None = None) -> None:
        self.budget = budget or CrawlBudget()
        self._seen: set[int] = set()
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__, component="collector")
        self.duplicates_dropped = 0
        self.budget_dropped = 0

    @property
    def accepted_count(self) -> int:
        return len(self._seen)

    @property
    def exhausted(self) -> bool:
        return self.budget.exhausted

    def has_seen(self, external_id: int) -> bool:
        return external_id in self._seen

    async def accept(self, records: Iterable[CatalogEntity]) -> list[CatalogEntity]:
        """
        Filter a page down to entities this run has not accepted yet.

        Order is preserved. Duplicates inside the same page are dropped
        as well.
        """
        async with self._lock:
            fresh: list[CatalogEntity] = []
            fresh_ids: set[int] = set()
            for record in records:
                if record.external_id in self._seen or record.external_id in fresh_ids:
                    self.duplicates_dropped += 1
                    continue
                fresh_ids.add(record.external_id)
                fresh.append(record)

            # Reserved under the collector lock: seen-set and counter move together
            granted = await self.budget.take(len(fresh))
            survivors = fresh[:granted]
            dropped = len(fresh) - granted
            if dropped:
                self.budget_dropped += dropped
                self._logger.info("Budget reached, dropping records", dropped=dropped)

            self._seen.update(record.external_id for record in survivors)
            return survivors
