"""Similarity search — embed a query and rank stored records against it.

The ranking itself (cosine distance over indexed vectors) lives in the
store; this module owns the request/response shape and the retry wrapper.

Usage::

    search = SimilaritySearch(store, embedder, BILLS)
    for match in search.search("health care", limit=10, start_date=date(2020, 1, 1)):
        print(match.id, match.similarity)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import date

from gov_ingest.errors import SearchError, classify_store_error
from gov_ingest.ingestion.embedder import EmbeddingClient
from gov_ingest.kinds import RecordKind
from gov_ingest.models import Match
from gov_ingest.retry import BackoffPolicy
from gov_ingest.store.base import VectorStoreBase

logger = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.7


class SimilaritySearch:
    """Query-side counterpart of the ingestion pipeline for one kind.

    Parameters
    ----------
    store:
        Backend exposing the kind's similarity procedure.
    embedder:
        Embeds the query text.
    kind:
        Record kind to search.
    threshold:
        Minimum similarity; weaker matches are dropped.
    default_limit:
        Result cap when :meth:`search` is called without ``limit``.
    policy:
        Retry policy for the store call.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingClient,
        kind: RecordKind,
        *,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
        default_limit: int = 5,
        policy: BackoffPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.kind = kind
        self.threshold = threshold
        self.default_limit = default_limit
        self._policy = policy or BackoffPolicy()
        self._sleep = sleep

    def search(
        self,
        query: str,
        *,
        limit: int | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Match]:
        """Return up to *limit* matches ordered by descending similarity.

        Parameters
        ----------
        query:
            Natural-language query text.
        limit:
            Result cap (defaults to ``self.default_limit``).
        start_date / end_date:
            Inclusive bounds on the kind's date field.  Ignored for kinds
            without one.

        Raises
        ------
        ValueError
            On an empty query, a non-positive limit or an inverted range.
        SearchError
            When embedding the query or querying the store fails.
        """
        if not query or not query.strip():
            raise ValueError("query must not be empty")
        if limit is None:
            limit = self.default_limit
        if limit < 1:
            raise ValueError("limit must be positive")
        if start_date and end_date and start_date > end_date:
            raise ValueError("start_date must not be after end_date")
        if not self.kind.date_field and (start_date or end_date):
            logger.warning("%s has no date field; ignoring date range", self.kind.name)
            start_date = end_date = None

        try:
            embedding = self._embedder.embed_query(query)
            rows = self._policy.run(
                lambda: self._store.match(
                    self.kind,
                    embedding,
                    threshold=self.threshold,
                    count=limit,
                    start_date=start_date,
                    end_date=end_date,
                ),
                classify=classify_store_error,
                sleep=self._sleep,
                describe=f"{self.kind.match_procedure} search",
            )
        except Exception as exc:
            logger.error("Search failed for %r: %s", query, exc)
            raise SearchError(f"Search over {self.kind.name} failed: {exc}") from exc

        matches = [self._to_match(row) for row in rows]
        matches = [m for m in matches if m.similarity >= self.threshold]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:limit]

    def _to_match(self, row: dict) -> Match:
        key = self.kind.conflict_key
        attributes = {k: v for k, v in row.items() if k not in (key, "similarity", "embedding")}
        return Match(id=str(row[key]), similarity=float(row["similarity"]), attributes=attributes)
