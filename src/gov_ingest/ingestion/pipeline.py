"""Ingestion pipeline — fetch → describe → embed → upsert, page by page.

Pages and batches are processed strictly in order, one at a time.  A
failing batch is counted and skipped; a failing fetch ends the run.
Either way the run summary is logged before :meth:`IngestionPipeline.run`
returns or raises.

Usage::

    pipeline = IngestionPipeline(source, BILLS, embedder, sink)
    stats = pipeline.run(start_cursor="AoJ4qd3B948DMUJJTExTLTExNGhyNDg4N3Jz")
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Sequence
from datetime import datetime, timezone

from gov_ingest.ingestion.embedder import EmbeddingClient
from gov_ingest.ingestion.sink import UpsertSink
from gov_ingest.ingestion.sources import RecordSource
from gov_ingest.kinds import RecordKind
from gov_ingest.models import START_CURSOR, EnrichedRecord, SourceRecord, SyncStats

logger = logging.getLogger(__name__)


def partition(records: Sequence[SourceRecord], size: int) -> Iterator[list[SourceRecord]]:
    """Yield consecutive slices of at most *size* records, order preserved."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    for start in range(0, len(records), size):
        yield list(records[start : start + size])


class IngestionPipeline:
    """Drives one sync run for a single record kind.

    Parameters
    ----------
    source:
        Where pages of source records come from.
    kind:
        Record kind providing the description template.
    embedder:
        Embedding client (retries internally).
    sink:
        Upsert sink (retries internally).
    batch_size:
        Records per embedding/upsert call; defaults to ``kind.batch_size``.
    clock:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        source: RecordSource,
        kind: RecordKind,
        embedder: EmbeddingClient,
        sink: UpsertSink,
        *,
        batch_size: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.kind = kind
        self.embedder = embedder
        self.sink = sink
        self.batch_size = kind.batch_size if batch_size is None else batch_size
        if self.batch_size < 1:
            raise ValueError("batch size must be at least 1")
        self._clock = clock

    def run(self, start_cursor: str | None = None) -> SyncStats:
        """Sync every page from *start_cursor* (or the beginning) to the end.

        Raises
        ------
        FetchError
            If a page cannot be fetched.  The summary is still logged.
        """
        stats = SyncStats()
        t0 = self._clock()
        cursor = start_cursor or START_CURSOR
        stats.last_cursor = cursor

        logger.info("Starting %s sync", self.kind.name)
        if start_cursor:
            logger.info("Continuing from cursor: %s", start_cursor)

        try:
            while True:
                page = self.source.fetch_page(cursor)
                stats.fetch_calls += 1
                stats.total_records += len(page.records)
                logger.info(
                    "Processing %d %s (total: %d), next cursor: %s",
                    len(page.records), self.kind.name, stats.total_records,
                    page.next_cursor or "none",
                )

                for batch in partition(page.records, self.batch_size):
                    if self._process_batch(batch):
                        stats.successful_records += len(batch)
                    else:
                        stats.failed_batches += 1

                stats.elapsed_seconds = self._clock() - t0
                logger.info(
                    "Progress: %d/%d %s (%.1f/min)",
                    stats.successful_records, stats.total_records, self.kind.name,
                    stats.rate_per_minute,
                )

                if page.is_last:
                    break
                cursor = page.next_cursor
                stats.last_cursor = cursor
        except Exception:
            logger.exception("Sync failed at cursor %s", stats.last_cursor)
            raise
        finally:
            stats.elapsed_seconds = self._clock() - t0
            logger.info(
                "Sync complete: %s %d/%d, failed batches %d, time %.2f min, rate %.1f/min",
                self.kind.name, stats.successful_records, stats.total_records,
                stats.failed_batches, stats.elapsed_minutes, stats.rate_per_minute,
            )
        return stats

    def _process_batch(self, batch: list[SourceRecord]) -> bool:
        """Describe, embed and upsert one batch.  ``False`` means skipped."""
        try:
            descriptions = [self.kind.describe(record) for record in batch]
            embeddings = self.embedder.embed(descriptions)
            now = datetime.now(timezone.utc)
            enriched = [
                EnrichedRecord.enrich(record, embedding, now)
                for record, embedding in zip(batch, embeddings)
            ]
            self.sink.upsert(enriched)
        except Exception as exc:
            logger.error(
                "Batch of %d %s failed after all retries, continuing with next batch: %s",
                len(batch), self.kind.name, exc,
            )
            return False
        return True
