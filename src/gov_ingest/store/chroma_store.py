"""Chroma implementation of the vector-store abstraction.

Each record kind maps to one collection (named after ``kind.table``) in
cosine space.  Chroma has no stored procedures, so the similarity
threshold and the inclusive date range are applied here: the date field
is mirrored into an integer ``<field>__ord`` metadata key that Chroma's
``$gte`` / ``$lte`` operators can compare.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import chromadb
import httpx

from gov_ingest.errors import StoreError
from gov_ingest.kinds import RecordKind
from gov_ingest.models import EnrichedRecord
from gov_ingest.store.base import VectorStoreBase

logger = logging.getLogger(__name__)

_ORD_SUFFIX = "__ord"


def _date_ordinal(value: Any) -> int | None:
    """Day ordinal of a ``date`` / ISO date string, ``None`` if unparseable."""
    if isinstance(value, datetime):
        return value.date().toordinal()
    if isinstance(value, date):
        return value.toordinal()
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10]).toordinal()
        except ValueError:
            return None
    return None


def _to_metadata(row: dict[str, Any], kind: RecordKind) -> dict[str, Any]:
    """Chroma metadata values must be flat str/int/float/bool."""
    meta: dict[str, Any] = {}
    for key, value in row.items():
        if key in ("embedding", kind.conflict_key) or value is None:
            continue
        if isinstance(value, Decimal):
            value = float(value)
        elif isinstance(value, (date, datetime)):
            value = value.isoformat()
        if isinstance(value, (str, int, float, bool)):
            meta[key] = value
    if kind.date_field:
        ordinal = _date_ordinal(row.get(kind.date_field))
        if ordinal is not None:
            meta[kind.date_field + _ORD_SUFFIX] = ordinal
    return meta


def build_date_where(
    kind: RecordKind, start_date: date | None, end_date: date | None
) -> dict[str, Any] | None:
    """Inclusive date-range filter in Chroma ``where`` syntax."""
    if not kind.date_field:
        return None
    field = kind.date_field + _ORD_SUFFIX
    clauses: list[dict[str, Any]] = []
    if start_date is not None:
        clauses.append({field: {"$gte": start_date.toordinal()}})
    if end_date is not None:
        clauses.append({field: {"$lte": end_date.toordinal()}})
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _store_error(exc: Exception, action: str) -> StoreError:
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        code = "timeout"
    elif isinstance(exc, (httpx.TransportError, ConnectionError)):
        code = "connection"
    else:
        code = type(exc).__name__
    return StoreError(f"{action} failed: {exc}", code=code)


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed store.

    Parameters
    ----------
    host / port:
        Chroma server address.
    client:
        Optional pre-built Chroma client (injected in tests).
    """

    def __init__(self, host: str = "localhost", port: int = 8000, *, client: Any = None) -> None:
        self._client = client or chromadb.HttpClient(host=host, port=port)
        self._collections: dict[str, Any] = {}

    def _collection(self, kind: RecordKind) -> Any:
        if kind.table not in self._collections:
            self._collections[kind.table] = self._client.get_or_create_collection(
                name=kind.table,
                metadata={"hnsw:space": "cosine"},
            )
        return self._collections[kind.table]

    # -- VectorStoreBase overrides --------------------------------------------

    def upsert(self, kind: RecordKind, records: Sequence[EnrichedRecord]) -> None:
        rows = [kind.to_row(record) for record in records]
        try:
            self._collection(kind).upsert(
                ids=[str(row[kind.conflict_key]) for row in rows],
                embeddings=[row["embedding"] for row in rows],
                metadatas=[_to_metadata(row, kind) for row in rows],
                documents=[kind.describe(record) for record in records],
            )
        except Exception as exc:
            raise _store_error(exc, f"upsert into {kind.table}") from exc

    def match(
        self,
        kind: RecordKind,
        query_embedding: list[float],
        *,
        threshold: float,
        count: int,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[dict[str, Any]]:
        try:
            results = self._collection(kind).query(
                query_embeddings=[query_embedding],
                n_results=count,
                where=build_date_where(kind, start_date, end_date),
                include=["metadatas", "distances"],
            )
        except Exception as exc:
            raise _store_error(exc, f"query on {kind.table}") from exc

        ids = (results.get("ids") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        rows: list[dict[str, Any]] = []
        for doc_id, meta, dist in zip(ids, metas, distances):
            # Cosine distance → cosine similarity.
            similarity = 1.0 - dist
            if similarity < threshold:
                continue
            attrs = {k: v for k, v in (meta or {}).items() if not k.endswith(_ORD_SUFFIX)}
            rows.append({kind.conflict_key: doc_id, **attrs, "similarity": similarity})
        rows.sort(key=lambda row: row["similarity"], reverse=True)
        return rows

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
