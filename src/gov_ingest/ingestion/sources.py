"""Record sources — cursor-paginated walks over a remote collection.

A source only reads; it never retries.  Any failure surfaces as
:class:`~gov_ingest.errors.FetchError` and ends the run.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import unquote, urlparse

import requests

from gov_ingest.errors import FetchError
from gov_ingest.kinds import RecordKind
from gov_ingest.models import START_CURSOR, Page

logger = logging.getLogger(__name__)


class RecordSource(ABC):
    """Backend-agnostic source interface.

    Parameters
    ----------
    kind:
        Record kind used to turn raw items into source records.
    """

    def __init__(self, kind: RecordKind) -> None:
        self.kind = kind

    @abstractmethod
    def fetch_page(self, cursor: str = START_CURSOR) -> Page:
        """Return the page at *cursor*.

        *cursor* must be :data:`~gov_ingest.models.START_CURSOR` or a
        ``next_cursor`` previously returned by this source.  The returned
        page's ``next_cursor`` is ``None`` once the collection is exhausted.
        """
        ...

    def close(self) -> None:
        """Release any held connection.  Optional."""

    def __enter__(self) -> RecordSource:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class GovInfoSource(RecordSource):
    """GovInfo ``published`` endpoint, paginated by ``offsetMark``.

    Parameters
    ----------
    kind:
        Record kind of the collection (``BILLS`` for bills).
    api_key:
        GovInfo API key, sent on every request.
    start_date / end_date:
        ISO dates bounding the ``published`` query.  A cursor is only
        valid for the date range that produced it.
    collection:
        GovInfo collection code.
    page_size:
        Packages per page.
    base_url:
        API root.
    timeout:
        Per-request timeout in seconds.
    session:
        Optional ``requests.Session`` (injected in tests).
    """

    def __init__(
        self,
        kind: RecordKind,
        *,
        api_key: str,
        start_date: str,
        end_date: str,
        collection: str = "BILLS",
        page_size: int = 1000,
        base_url: str = "https://api.govinfo.gov",
        timeout: int = 60,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(kind)
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/published/{start_date}/{end_date}"
        self._collection = collection
        self._page_size = page_size
        self._timeout = timeout
        self._session = session or requests.Session()

    def fetch_page(self, cursor: str = START_CURSOR) -> Page:
        params = {
            "pageSize": self._page_size,
            "collection": self._collection,
            "offsetMark": cursor or START_CURSOR,
            "api_key": self._api_key,
        }
        try:
            resp = self._session.get(
                self._url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise FetchError(f"GovInfo request failed: {exc}") from exc

        if not resp.ok:
            raise FetchError(f"HTTP error! status: {resp.status_code}", status_code=resp.status_code)

        data = resp.json()
        packages = data.get("packages")
        if packages is None:
            logger.warning("GovInfo response has no 'packages'; treating as end of stream")
            return Page(records=[], next_cursor=None)

        return Page(
            records=[self.kind.from_source(pkg) for pkg in packages],
            next_cursor=_offset_mark(data.get("nextPage")),
        )

    def close(self) -> None:
        self._session.close()


def _offset_mark(next_page: str | None) -> str | None:
    """Extract the ``offsetMark`` cursor embedded in a ``nextPage`` URL.

    Only percent-escapes are decoded; a literal ``+`` stays part of the
    cursor.
    """
    if not next_page:
        return None
    for pair in urlparse(next_page).query.split("&"):
        name, sep, value = pair.partition("=")
        if name == "offsetMark" and sep:
            return unquote(value) or None
    return None


class PostgresAggregateSource(RecordSource):
    """Offset-paginated walk over a kind's aggregate query.

    The cursor is the decimal row offset.  The total row count is read
    once, on the first page, and the walk ends when the offset reaches it
    (or the database returns an empty page first).

    Parameters
    ----------
    kind:
        A ``source="postgres"`` record kind carrying ``count_sql`` and
        ``page_sql``.
    connection:
        An open psycopg2 connection (owned by this source once passed in).
    page_size:
        Rows per page; defaults to the kind's batch size.
    """

    def __init__(self, kind: RecordKind, connection: Any, *, page_size: int | None = None) -> None:
        if not (kind.count_sql and kind.page_sql):
            raise ValueError(f"Record kind {kind.name!r} has no source queries")
        super().__init__(kind)
        self._conn = connection
        self._page_size = kind.batch_size if page_size is None else page_size
        if self._page_size < 1:
            raise ValueError("page size must be at least 1")
        self.total_count: int | None = None

    @classmethod
    def connect(cls, kind: RecordKind, dsn: str, **kwargs: Any) -> PostgresAggregateSource:
        import psycopg2

        try:
            conn = psycopg2.connect(dsn, connect_timeout=10, options="-c statement_timeout=30000")
        except psycopg2.Error as exc:
            raise FetchError(f"Could not connect to source database: {exc}") from exc
        return cls(kind, conn, **kwargs)

    def fetch_page(self, cursor: str = START_CURSOR) -> Page:
        import psycopg2
        from psycopg2.extras import RealDictCursor

        offset = 0 if cursor in (None, "", START_CURSOR) else int(cursor)
        try:
            with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
                if self.total_count is None:
                    cur.execute(self.kind.count_sql)
                    self.total_count = int(cur.fetchone()["count"])
                    logger.info("Found %d %s to process", self.total_count, self.kind.name)
                if offset >= self.total_count:
                    return Page(records=[], next_cursor=None)
                cur.execute(self.kind.page_sql, {"limit": self._page_size, "offset": offset})
                rows = cur.fetchall()
            self._conn.rollback()  # end the read-only transaction
        except psycopg2.Error as exc:
            raise FetchError(f"Source query failed at offset {offset}: {exc}") from exc

        next_offset = offset + len(rows)
        next_cursor = str(next_offset) if rows and next_offset < self.total_count else None
        return Page(records=[self.kind.from_source(dict(row)) for row in rows], next_cursor=next_cursor)

    def close(self) -> None:
        self._conn.close()


def get_source(kind: RecordKind, settings) -> RecordSource:  # noqa: ANN001
    """Return the source configured for *kind*.

    Required settings are checked before any connection is opened.
    """
    if kind.source == "gov_info":
        settings.require("gov_info_api_key")
        return GovInfoSource(
            kind,
            api_key=settings.gov_info_api_key,
            start_date=settings.sync_start_date,
            end_date=settings.sync_end_date,
            collection=settings.gov_info_collection,
            page_size=settings.gov_info_page_size,
            base_url=settings.gov_info_base_url,
            timeout=settings.request_timeout,
        )
    if kind.source == "postgres":
        settings.require("source_database_url")
        return PostgresAggregateSource.connect(kind, settings.source_database_url)
    raise ValueError(f"Unsupported source {kind.source!r} for kind {kind.name!r}")
