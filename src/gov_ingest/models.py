"""Domain models flowing through ingestion and search."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

#: Cursor value that starts a walk from the beginning of a collection.
START_CURSOR = "*"


class SourceRecord(BaseModel):
    """A raw item read from the source collection.

    Attributes
    ----------
    id:
        Natural identifier; the upsert conflict key.
    attributes:
        Domain attributes (dates, classification codes, metrics) that
        become columns / metadata in the store.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class EnrichedRecord(SourceRecord):
    """A source record with its embedding, ready for the store."""

    embedding: list[float]
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def enrich(cls, record: SourceRecord, embedding: list[float], now: datetime) -> EnrichedRecord:
        return cls(id=record.id, attributes=record.attributes, embedding=embedding, last_updated=now)

    def to_row(self, key: str, columns: tuple[str, ...] | None = None) -> dict[str, Any]:
        """Flatten into a store row keyed by *key*, keeping only *columns* if given."""
        attributes = self.attributes
        if columns is not None:
            attributes = {name: attributes.get(name) for name in columns}
        return {
            key: self.id,
            **attributes,
            "embedding": self.embedding,
            "last_updated": self.last_updated,
        }


class Page(BaseModel):
    """One page of source records plus the cursor of the next page."""

    records: list[SourceRecord] = Field(default_factory=list)
    next_cursor: str | None = None

    @property
    def is_last(self) -> bool:
        return not self.next_cursor


class Match(BaseModel):
    """A single similarity-search hit."""

    id: str
    similarity: float
    attributes: dict[str, Any] = Field(default_factory=dict)


class SyncStats(BaseModel):
    """Running counters for one ingestion run."""

    total_records: int = 0
    successful_records: int = 0
    failed_batches: int = 0
    fetch_calls: int = 0
    last_cursor: str | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    elapsed_seconds: float = 0.0

    @property
    def elapsed_minutes(self) -> float:
        return self.elapsed_seconds / 60

    @property
    def rate_per_minute(self) -> float:
        """Successful records per elapsed minute (0 before any time passes)."""
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.successful_records / self.elapsed_minutes
