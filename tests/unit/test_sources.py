"""Unit tests for the record sources."""

from __future__ import annotations

from unittest.mock import MagicMock

import psycopg2
import pytest
import requests

from gov_ingest.config import Settings
from gov_ingest.errors import ConfigurationError, FetchError
from gov_ingest.ingestion.sources import GovInfoSource, PostgresAggregateSource, get_source
from gov_ingest.kinds import BILLS, LENDERS
from gov_ingest.models import START_CURSOR


def _response(status: int = 200, payload: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.json.return_value = payload or {}
    return resp


def _package(n: int) -> dict:
    return {
        "packageId": f"BILLS-118hr{n}ih",
        "title": f"To amend title {n}",
        "dateIssued": "2023-05-01",
        "lastModified": "2023-05-02T00:00:00Z",
        "congress": "118",
        "docClass": "hr",
    }


def _source(session: MagicMock) -> GovInfoSource:
    return GovInfoSource(
        BILLS,
        api_key="secret",
        start_date="2014-01-01",
        end_date="2024-03-19",
        page_size=2,
        session=session,
    )


class TestGovInfoSource:
    def test_first_page_uses_start_cursor(self) -> None:
        session = MagicMock()
        session.get.return_value = _response(
            payload={
                "packages": [_package(1), _package(2)],
                "nextPage": "https://api.govinfo.gov/published/2014-01-01/2024-03-19"
                "?offsetMark=AoJ4qd3B%2F948&pageSize=2&collection=BILLS",
            }
        )

        page = _source(session).fetch_page(START_CURSOR)

        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs["params"]
        assert url == "https://api.govinfo.gov/published/2014-01-01/2024-03-19"
        assert params["offsetMark"] == "*"
        assert params["pageSize"] == 2
        assert params["collection"] == "BILLS"
        assert params["api_key"] == "secret"
        assert [r.id for r in page.records] == ["BILLS-118hr1ih", "BILLS-118hr2ih"]
        assert page.records[0].attributes["date_issued"] == "2023-05-01"
        assert page.next_cursor == "AoJ4qd3B/948"
        assert not page.is_last

    def test_literal_plus_kept_in_cursor(self) -> None:
        session = MagicMock()
        session.get.return_value = _response(
            payload={
                "packages": [_package(1)],
                "nextPage": "https://api.govinfo.gov/published/2014-01-01/2024-03-19"
                "?offsetMark=Ao+J/4=&pageSize=2",
            }
        )
        assert _source(session).fetch_page().next_cursor == "Ao+J/4="

    def test_cursor_forwarded(self) -> None:
        session = MagicMock()
        session.get.return_value = _response(payload={"packages": []})
        _source(session).fetch_page("AoJ4qd3B948")
        assert session.get.call_args.kwargs["params"]["offsetMark"] == "AoJ4qd3B948"

    def test_missing_next_page_ends_stream(self) -> None:
        session = MagicMock()
        session.get.return_value = _response(payload={"packages": [_package(1)]})
        page = _source(session).fetch_page()
        assert page.next_cursor is None
        assert page.is_last

    def test_missing_packages_ends_stream(self) -> None:
        session = MagicMock()
        session.get.return_value = _response(payload={"message": "nothing here"})
        page = _source(session).fetch_page()
        assert page.records == []
        assert page.is_last

    @pytest.mark.parametrize("status", [404, 429, 500])
    def test_http_error_raises_fetch_error(self, status: int) -> None:
        session = MagicMock()
        session.get.return_value = _response(status=status)
        with pytest.raises(FetchError) as info:
            _source(session).fetch_page()
        assert info.value.status_code == status
        assert session.get.call_count == 1

    def test_network_error_raises_fetch_error(self) -> None:
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(FetchError) as info:
            _source(session).fetch_page()
        assert info.value.status_code is None


def _pg_connection(count: int, pages: list[list[dict]]) -> tuple[MagicMock, MagicMock]:
    conn = MagicMock()
    cur = conn.cursor.return_value.__enter__.return_value
    cur.fetchone.return_value = {"count": count}
    cur.fetchall.side_effect = pages
    return conn, cur


def _lender(n: int) -> dict:
    return {"id": n, "name": f"Lender {n}", "loan_count": 10 * n, "total_volume": 1000 * n}


class TestPostgresAggregateSource:
    def test_walks_offsets_until_total_count(self) -> None:
        conn, cur = _pg_connection(3, [[_lender(1), _lender(2)], [_lender(3)]])
        source = PostgresAggregateSource(LENDERS, conn, page_size=2)

        first = source.fetch_page(START_CURSOR)
        second = source.fetch_page(first.next_cursor)

        assert [r.id for r in first.records] == ["1", "2"]
        assert first.next_cursor == "2"
        assert [r.id for r in second.records] == ["3"]
        assert second.next_cursor is None
        page_params = [c.args[1] for c in cur.execute.call_args_list if len(c.args) > 1]
        assert page_params == [{"limit": 2, "offset": 0}, {"limit": 2, "offset": 2}]
        # Count query runs once.
        assert cur.fetchone.call_count == 1

    def test_short_page_ends_stream(self) -> None:
        conn, _ = _pg_connection(10, [[]])
        page = PostgresAggregateSource(LENDERS, conn, page_size=5).fetch_page()
        assert page.records == []
        assert page.is_last

    def test_database_error_raises_fetch_error(self) -> None:
        conn, cur = _pg_connection(3, [])
        cur.execute.side_effect = psycopg2.OperationalError("server closed the connection")
        with pytest.raises(FetchError, match="offset 0"):
            PostgresAggregateSource(LENDERS, conn).fetch_page()

    def test_zero_page_size_rejected(self) -> None:
        with pytest.raises(ValueError, match="page size"):
            PostgresAggregateSource(LENDERS, MagicMock(), page_size=0)

    def test_kind_without_queries_rejected(self) -> None:
        with pytest.raises(ValueError, match="no source queries"):
            PostgresAggregateSource(BILLS, MagicMock())

    def test_close_releases_connection(self) -> None:
        conn, _ = _pg_connection(0, [])
        with PostgresAggregateSource(LENDERS, conn):
            pass
        conn.close.assert_called_once()


class TestGetSource:
    def test_gov_info_requires_api_key(self) -> None:
        with pytest.raises(ConfigurationError, match="GOV_INFO_API_KEY"):
            get_source(BILLS, Settings(gov_info_api_key=""))

    def test_postgres_requires_dsn(self) -> None:
        with pytest.raises(ConfigurationError, match="SOURCE_DATABASE_URL"):
            get_source(LENDERS, Settings(source_database_url=""))

    def test_gov_info_source_from_settings(self) -> None:
        source = get_source(
            BILLS,
            Settings(gov_info_api_key="k", sync_start_date="2020-01-01", sync_end_date="2020-12-31"),
        )
        assert isinstance(source, GovInfoSource)
        source.close()
