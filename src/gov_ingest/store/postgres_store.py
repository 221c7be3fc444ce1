"""Postgres (pgvector) implementation of the vector-store abstraction.

Works against any Postgres with the ``vector`` extension, including a
Supabase project.  Upserts are a single ``INSERT ... ON CONFLICT DO
UPDATE`` per batch; similarity ranking is delegated to a stored
function per record kind, e.g.::

    match_bills_by_date(query_embedding vector, match_threshold float,
                        match_count int, start_date date, end_date date)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date
from typing import Any

import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor, execute_values

from gov_ingest.errors import StoreError
from gov_ingest.kinds import RecordKind
from gov_ingest.models import EnrichedRecord
from gov_ingest.store.base import VectorStoreBase

logger = logging.getLogger(__name__)


def _vector_literal(embedding: Sequence[float]) -> str:
    """Render *embedding* in pgvector's text input format."""
    return "[" + ",".join(repr(float(x)) for x in embedding) + "]"


def _store_error(exc: psycopg2.Error, action: str) -> StoreError:
    code = exc.pgcode
    if code is None and isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)):
        code = "connection"
    return StoreError(f"{action} failed: {exc}".strip(), code=code)


def build_upsert_sql(kind: RecordKind, columns: Sequence[str]) -> sql.Composed:
    """``INSERT ... VALUES %s ON CONFLICT (key) DO UPDATE`` for *columns*."""
    updates = [
        sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(col))
        for col in columns
        if col != kind.conflict_key
    ]
    return sql.SQL(
        "INSERT INTO {table} ({cols}) VALUES %s ON CONFLICT ({key}) DO UPDATE SET {updates}"
    ).format(
        table=sql.Identifier(kind.table),
        cols=sql.SQL(", ").join(sql.Identifier(col) for col in columns),
        key=sql.Identifier(kind.conflict_key),
        updates=sql.SQL(", ").join(updates),
    )


def build_match_sql(kind: RecordKind, arg_names: Sequence[str]) -> sql.Composed:
    """``SELECT * FROM procedure(name => %(name)s, ...)`` with named arguments."""
    args = []
    for name in arg_names:
        placeholder = sql.Placeholder(name)
        if name == "query_embedding":
            placeholder = sql.SQL("{}::vector").format(placeholder)
        args.append(sql.SQL("{} => {}").format(sql.Identifier(name), placeholder))
    return sql.SQL("SELECT * FROM {proc}({args})").format(
        proc=sql.Identifier(kind.match_procedure),
        args=sql.SQL(", ").join(args),
    )


class PostgresVectorStore(VectorStoreBase):
    """pgvector-backed store.

    Parameters
    ----------
    dsn:
        libpq connection string.  Used to (re)connect lazily, so a dropped
        connection is replaced on the next retry.
    connection:
        An already-open psycopg2 connection (takes precedence over *dsn*).
    """

    def __init__(self, dsn: str | None = None, *, connection: Any = None) -> None:
        if dsn is None and connection is None:
            raise ValueError("PostgresVectorStore needs a dsn or a connection")
        self._dsn = dsn
        self._conn = connection

    @property
    def connection(self) -> Any:
        if self._conn is None or self._conn.closed:
            if self._dsn is None:
                raise StoreError("connection closed and no dsn to reconnect", code="connection")
            try:
                self._conn = psycopg2.connect(self._dsn, connect_timeout=10)
            except psycopg2.Error as exc:
                raise _store_error(exc, "connect") from exc
        return self._conn

    def _rollback(self) -> None:
        if self._conn is not None and not self._conn.closed:
            try:
                self._conn.rollback()
            except psycopg2.Error:
                logger.warning("Rollback failed; dropping connection", exc_info=True)
                self._conn.close()

    # -- VectorStoreBase overrides --------------------------------------------

    def upsert(self, kind: RecordKind, records: Sequence[EnrichedRecord]) -> None:
        rows = [kind.to_row(record) for record in records]
        columns = list(rows[0])
        values = [
            tuple(_vector_literal(row[col]) if col == "embedding" else row[col] for col in columns)
            for row in rows
        ]
        conn = self.connection
        try:
            with conn.cursor() as cur:
                execute_values(cur, build_upsert_sql(kind, columns), values, page_size=len(values))
            conn.commit()
        except psycopg2.Error as exc:
            self._rollback()
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
        params: dict[str, Any] = {
            "query_embedding": _vector_literal(query_embedding),
            "match_threshold": threshold,
            "match_count": count,
        }
        if start_date is not None:
            params["start_date"] = start_date
        if end_date is not None:
            params["end_date"] = end_date

        conn = self.connection
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(build_match_sql(kind, list(params)), params)
                rows = cur.fetchall()
            conn.commit()
        except psycopg2.Error as exc:
            self._rollback()
            raise _store_error(exc, f"{kind.match_procedure}()") from exc
        return [dict(row) for row in rows]

    def health_check(self) -> bool:
        try:
            with self.connection.cursor() as cur:
                cur.execute("SELECT 1")
            return True
        except (psycopg2.Error, StoreError):
            logger.warning("Postgres health-check failed", exc_info=True)
            return False

    def close(self) -> None:
        if self._conn is not None and not self._conn.closed:
            self._conn.close()
