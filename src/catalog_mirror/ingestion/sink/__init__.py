"""
Sink layer: where mirrored entities are persisted.

The store itself is external; this package holds the interface, an
in-memory implementation, the PostgREST client and the chunked writer.
"""

from catalog_mirror.config import SinkConfig, get_settings
from catalog_mirror.ingestion.sink.base import (
    CatalogSink,
    RangeQuery,
    SinkError,
    SinkReadError,
    SinkWriteError,
)
from catalog_mirror.ingestion.sink.memory import InMemorySink
from catalog_mirror.ingestion.sink.postgrest import PostgrestSink
from catalog_mirror.ingestion.sink.writer import UpsertWriter

__all__ = [
    "CatalogSink",
    "InMemorySink",
    "PostgrestSink",
    "RangeQuery",
    "SinkError",
    "SinkReadError",
    "SinkWriteError",
    "UpsertWriter",
    "create_sink",
]


def create_sink(config: SinkConfig | None = None) -> CatalogSink:
    """Build the sink selected by SINK_BACKEND."""
    config = config or get_settings().sink
    if config.backend == "memory":
        return InMemorySink()
    return PostgrestSink(config)
