"""
Refresh scheduling for the enricher.

Decides which stored entities are stale and how large the next batch
may be, expressed as a RangeQuery against the sink.
"""

from datetime import datetime, timedelta, timezone

import structlog

from catalog_mirror.config import EnrichConfig
from catalog_mirror.ingestion.sink.base import RangeQuery

logger = structlog.get_logger(__name__)


class RefreshScheduler:
    """
    Staleness-ordered batch selection.

    Entities never verified come first, then the ones verified longest
    ago. With refresh_hours = 0 every entity qualifies and ordering alone
    decides.
    """

    ORDER_COLUMN = "verified_at"

    def __init__(self, config: EnrichConfig) -> None:
        self._config = config

    def staleness_cutoff(self, now: datetime | None = None) -> datetime | None:
        """
        Entities verified before this instant are due for a refresh.

        Returns:
            Cutoff timestamp, or None when no staleness filter applies
        """
        if self._config.refresh_hours <= 0:
            return None
        now = now or datetime.now(timezone.utc)
        return now - timedelta(hours=self._config.refresh_hours)

    def next_batch_size(self, processed: int) -> int:
        """
        Batch size respecting the per-run cap.

        Args:
            processed: Entities already handled this run

        Returns:
            Rows to request (0 when the cap is reached)
        """
        if self._config.max_total <= 0:
            return self._config.batch_size
        remaining = max(0, self._config.max_total - processed)
        return min(self._config.batch_size, remaining)

    def build_query(self, limit: int, cutoff: datetime | None) -> RangeQuery:
        """Selection query for the next batch."""
        equals = {}
        if self._config.source_tag and self._config.source_tag.strip():
            equals["source_tag"] = self._config.source_tag.strip()

        query = RangeQuery(
            order_by=self.ORDER_COLUMN,
            descending=False,
            nulls_first=True,
            limit=limit,
            null_or_before=(self.ORDER_COLUMN, cutoff) if cutoff else None,
            equals=equals,
        )
        logger.debug(
            "Built refresh query",
            limit=limit,
            cutoff=cutoff.isoformat() if cutoff else None,
            source_tag=equals.get("source_tag"),
        )
        return query
