"""Unit tests for the upsert sink."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fakes import FakeVectorStore, make_bills
from gov_ingest.errors import StoreError, UpsertError
from gov_ingest.ingestion.sink import UpsertSink
from gov_ingest.kinds import BILLS
from gov_ingest.models import EnrichedRecord
from gov_ingest.retry import BackoffPolicy


def _enriched(count: int, embedding: list[float] | None = None, when: datetime | None = None) -> list[EnrichedRecord]:
    when = when or datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [EnrichedRecord.enrich(r, embedding or [0.1, 0.2], when) for r in make_bills(count)]


def _sink(store: FakeVectorStore, sleeps: list[float]) -> UpsertSink:
    return UpsertSink(store, BILLS, policy=BackoffPolicy(max_retries=3), sleep=sleeps.append)


class TestUpsertSink:
    def test_writes_rows_keyed_by_natural_id(self) -> None:
        store = FakeVectorStore()
        _sink(store, []).upsert(_enriched(3))
        rows = store.rows["bills"]
        assert set(rows) == {"BILLS-118hr0ih", "BILLS-118hr1ih", "BILLS-118hr2ih"}
        row = rows["BILLS-118hr0ih"]
        assert row["package_id"] == "BILLS-118hr0ih"
        assert row["title"] == "Bill number 0"
        assert row["embedding"] == [0.1, 0.2]

    def test_idempotent_upsert_keeps_latest(self) -> None:
        store = FakeVectorStore()
        sink = _sink(store, [])
        later = datetime(2024, 6, 1, tzinfo=timezone.utc)
        sink.upsert(_enriched(1))
        sink.upsert(_enriched(1, embedding=[0.9, 0.8], when=later))
        rows = store.rows["bills"]
        assert len(rows) == 1
        assert rows["BILLS-118hr0ih"]["embedding"] == [0.9, 0.8]
        assert rows["BILLS-118hr0ih"]["last_updated"] == later

    def test_empty_batch_rejected(self) -> None:
        with pytest.raises(ValueError):
            _sink(FakeVectorStore(), []).upsert([])

    @pytest.mark.parametrize("code", ["57014", "40001", "40P01", "connection"])
    def test_transient_errors_retried(self, code: str) -> None:
        sleeps: list[float] = []
        store = FakeVectorStore(errors=[StoreError("transient", code=code)])
        _sink(store, sleeps).upsert(_enriched(2))
        assert len(store.upsert_calls) == 2
        assert sleeps == [1.0]
        assert len(store.rows["bills"]) == 2

    def test_exhausted_transient_escalates(self) -> None:
        sleeps: list[float] = []
        store = FakeVectorStore(errors=[StoreError("timeout", code="57014")] * 5)
        with pytest.raises(UpsertError) as info:
            _sink(store, sleeps).upsert(_enriched(4))
        assert len(store.upsert_calls) == 3
        assert sleeps == [1.0, 2.0]
        assert info.value.batch_size == 4
        assert info.value.code == "57014"

    def test_non_transient_not_retried(self) -> None:
        sleeps: list[float] = []
        store = FakeVectorStore(errors=[StoreError("violates not-null constraint", code="23502")])
        with pytest.raises(UpsertError) as info:
            _sink(store, sleeps).upsert(_enriched(2))
        assert len(store.upsert_calls) == 1
        assert sleeps == []
        assert info.value.batch_size == 2
        assert isinstance(info.value.__cause__, StoreError)
