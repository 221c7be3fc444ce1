"""FastAPI application exposing similarity search as a REST API."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from gov_ingest.config import settings
from gov_ingest.errors import SearchError
from gov_ingest.ingestion.embedder import EmbeddingClient, get_embedding_function
from gov_ingest.kinds import get_kind
from gov_ingest.models import Match
from gov_ingest.retrieval.search import SimilaritySearch
from gov_ingest.retry import BackoffPolicy
from gov_ingest.store import VectorStoreBase, get_store

app = FastAPI(
    title="gov-ingest search API",
    version="1.0.0",
    description="Semantic search over synced bills, lenders and flip entities.",
)


# ── Request / Response schemas ────────────────────────────────────────
class SearchRequest(BaseModel):
    """Incoming search query."""

    query: str = Field(min_length=1)
    limit: int | None = Field(default=None, ge=1, le=100)
    start_date: date | None = None
    end_date: date | None = None


class SearchResponse(BaseModel):
    """Ranked matches for one query."""

    kind: str
    matches: list[Match] = []


# ── Dependencies ──────────────────────────────────────────────────────
def get_vector_store() -> Iterator[VectorStoreBase]:
    """One store (and database connection) per request, closed afterwards."""
    store = get_store(settings)
    try:
        yield store
    finally:
        store.close()


@lru_cache
def get_embedder() -> EmbeddingClient:
    return EmbeddingClient(
        get_embedding_function(settings),
        policy=BackoffPolicy.from_settings(settings),
    )


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.post("/search/{kind}", response_model=SearchResponse)
def search(
    kind: str,
    request: SearchRequest,
    store: VectorStoreBase = Depends(get_vector_store),
    embedder: EmbeddingClient = Depends(get_embedder),
) -> SearchResponse:
    """Embed the query and return the closest stored records."""
    try:
        record_kind = get_kind(kind)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    searcher = SimilaritySearch(
        store,
        embedder,
        record_kind,
        threshold=settings.match_threshold,
        default_limit=settings.search_default_limit,
        policy=BackoffPolicy.from_settings(settings),
    )
    try:
        matches = searcher.search(
            request.query,
            limit=request.limit,
            start_date=request.start_date,
            end_date=request.end_date,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except SearchError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return SearchResponse(kind=record_kind.name, matches=matches)
