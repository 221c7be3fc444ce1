"""Upsert sink — idempotent, retrying batch writes into the vector store."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from gov_ingest.errors import UpsertError, classify_store_error
from gov_ingest.kinds import RecordKind
from gov_ingest.models import EnrichedRecord
from gov_ingest.retry import BackoffPolicy
from gov_ingest.store.base import VectorStoreBase

logger = logging.getLogger(__name__)


class UpsertSink:
    """Writes enriched records keyed by the kind's natural identifier.

    Transient store failures (connection loss, timeouts, statement
    timeout, serialization failure, deadlock) are retried through
    *policy*.  Anything else fails the batch on the first attempt.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        kind: RecordKind,
        *,
        policy: BackoffPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self.kind = kind
        self._policy = policy or BackoffPolicy()
        self._sleep = sleep

    def upsert(self, records: Sequence[EnrichedRecord]) -> None:
        """Insert or replace *records* in one multi-row write.

        Raises
        ------
        ValueError
            If *records* is empty.
        UpsertError
            On a non-transient failure, or once transient retries run out.
        """
        if not records:
            raise ValueError("upsert requires at least one record")

        batch = list(records)
        first = batch[0]
        logger.debug(
            "Upserting %d %s (first id=%s, embedding_dim=%d)",
            len(batch), self.kind.name, first.id, len(first.embedding),
        )
        try:
            self._policy.run(
                lambda: self._store.upsert(self.kind, batch),
                classify=classify_store_error,
                sleep=self._sleep,
                describe=f"upsert of {len(batch)} {self.kind.name}",
            )
        except Exception as exc:
            logger.error(
                "Upsert error: batch_size=%d table=%s error=%s",
                len(batch), self.kind.table, exc,
            )
            raise UpsertError(
                f"Failed to upsert {len(batch)} {self.kind.name}: {exc}",
                batch_size=len(batch),
                code=getattr(exc, "code", None),
            ) from exc
