"""
Upsert writer.

Splits entity batches into fixed-size chunks and issues one keyed
upsert per chunk. The first failing chunk raises; callers never see a
partially acknowledged batch reported as success.
"""

from collections.abc import Sequence

from catalog_mirror.catalog.models import CatalogEntity
from catalog_mirror.ingestion.sink.base import CatalogSink, SinkError, SinkWriteError
from catalog_mirror.logger import get_logger


class UpsertWriter:
    """
    Chunked, idempotent writer bound to one sink collection.

    Example:
        >>> writer = UpsertWriter(sink, "tracks", chunk_size=200)
        >>> await writer.write(entities)
    """

    def __init__(
        self,
        sink: CatalogSink,
        collection: str,
        *,
        chunk_size: int = 200,
        force: bool = False,
    ) -> None:
        """
        Initialize the writer.

        Args:
            sink: Destination store
            collection: Collection every write goes to
            chunk_size: Rows per upsert call
            force: Overwrite instead of merge (see CatalogSink)
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self._sink = sink
        self._collection = collection
        self._chunk_size = chunk_size
        self._force = force
        self._logger = get_logger(__name__, component="writer", collection=collection)
        self.rows_written = 0
        self.chunks_written = 0

    @property
    def collection(self) -> str:
        return self._collection

    async def write(self, records: Sequence[CatalogEntity]) -> int:
        """
        Upsert records chunk by chunk.

        Args:
            records: Entities to persist

        Returns:
            int: Number of rows written

        Raises:
            SinkWriteError: A chunk was rejected
        """
        if not records:
            return 0

        rows = [record.to_row() for record in records]
        written = 0
        for start in range(0, len(rows), self._chunk_size):
            chunk = rows[start : start + self._chunk_size]
            try:
                await self._sink.upsert(self._collection, chunk, force=self._force)
            except SinkWriteError:
                self._logger.error("Upsert chunk rejected", chunk_start=start, rows=len(chunk))
                raise
            except SinkError as e:
                raise SinkWriteError(
                    str(e), collection=self._collection, original_error=e
                ) from e
            written += len(chunk)
            self.chunks_written += 1

        self.rows_written += written
        self._logger.debug("Wrote records", rows=written)
        return written
