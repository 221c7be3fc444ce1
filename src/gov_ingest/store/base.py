"""Abstract base class for vector-store backends.

Adding a new backend only requires subclassing :class:`VectorStoreBase`
and implementing the abstract methods.  Backends must translate their
native exceptions into :class:`~gov_ingest.errors.StoreError` so that the
retry classification stays backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import date
from typing import Any

from gov_ingest.kinds import RecordKind
from gov_ingest.models import EnrichedRecord


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface."""

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def upsert(self, kind: RecordKind, records: Sequence[EnrichedRecord]) -> None:
        """Insert *records*, replacing rows whose ``kind.conflict_key`` exists.

        The whole batch is written atomically: either every row lands or
        the call raises.
        """
        ...

    @abstractmethod
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
        """Run the kind's similarity ranking for *query_embedding*.

        Each returned row **must** contain ``kind.conflict_key`` and
        ``"similarity"`` (higher = more similar); any other keys are the
        record's domain attributes.  Rows come back ordered by descending
        similarity, at most *count* of them.
        """
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- optional overrides ---------------------------------------------------

    def close(self) -> None:
        """Release connections held by the backend."""

    def __enter__(self) -> VectorStoreBase:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
