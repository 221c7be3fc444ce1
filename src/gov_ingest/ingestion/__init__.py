"""
Ingestion — paginated fetch, embedding and idempotent upsert.

Public surface
--------------
- :class:`IngestionPipeline` — orchestrates one sync run.
- :class:`GovInfoSource`, :class:`PostgresAggregateSource` — record sources.
- :class:`EmbeddingClient` — batch embeddings with retry.
- :class:`UpsertSink` — retrying, replace-on-identifier writes.
"""

from gov_ingest.ingestion.embedder import EmbeddingClient, get_embedding_function
from gov_ingest.ingestion.pipeline import IngestionPipeline
from gov_ingest.ingestion.sink import UpsertSink
from gov_ingest.ingestion.sources import (
    GovInfoSource,
    PostgresAggregateSource,
    RecordSource,
    get_source,
)

__all__ = [
    "EmbeddingClient",
    "GovInfoSource",
    "IngestionPipeline",
    "PostgresAggregateSource",
    "RecordSource",
    "UpsertSink",
    "get_embedding_function",
    "get_source",
]
