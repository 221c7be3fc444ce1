"""Record kinds — everything that differs between the synced collections.

A :class:`RecordKind` parameterises the generic ingestion pipeline and the
similarity search: how a raw source payload becomes a
:class:`~gov_ingest.models.SourceRecord`, which text gets embedded, and
where the result is stored and queried.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from gov_ingest.models import EnrichedRecord, SourceRecord


@dataclass(frozen=True)
class RecordKind:
    """Per-collection policy consumed by the pipeline, sink and search.

    Attributes
    ----------
    name:
        Short name used on the command line and in the API path.
    table:
        Store table (Postgres) or collection (Chroma) name.
    conflict_key:
        Column holding the natural identifier; upserts replace on it.
    match_procedure:
        Stored procedure ranking rows by similarity to a query embedding.
    from_source:
        Builds a :class:`SourceRecord` from one raw source item.
    describe:
        Renders the natural-language text that gets embedded.
    source:
        ``"gov_info"`` for the REST collection, ``"postgres"`` for kinds
        aggregated from the source database.
    batch_size:
        Records per embedding call / upsert call.
    date_field:
        Attribute the search date range applies to (``None`` disables
        date filtering).
    columns:
        Attributes persisted in the store (``None`` persists all of
        them).  Anything else is only used to build the description.
    count_sql / page_sql:
        Source queries for ``"postgres"`` kinds. ``page_sql`` takes
        ``%(limit)s`` and ``%(offset)s``.
    """

    name: str
    table: str
    conflict_key: str
    match_procedure: str
    from_source: Callable[[dict[str, Any]], SourceRecord]
    describe: Callable[[SourceRecord], str]
    source: str = "gov_info"
    batch_size: int = 25
    date_field: str | None = None
    columns: tuple[str, ...] | None = None
    count_sql: str | None = None
    page_sql: str | None = None

    def to_row(self, record: EnrichedRecord) -> dict[str, Any]:
        return record.to_row(self.conflict_key, self.columns)


def _number(value: Any) -> int | float:
    if value is None:
        return 0
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _grouped(value: int | float) -> str:
    if isinstance(value, int):
        return f"{value:,}"
    return f"{value:,.2f}"


# ── bills ─────────────────────────────────────────────────────────────


def _bill_from_source(raw: dict[str, Any]) -> SourceRecord:
    return SourceRecord(
        id=str(raw["packageId"]),
        attributes={
            "title": raw.get("title") or "",
            "date_issued": raw.get("dateIssued"),
            "last_modified": raw.get("lastModified"),
            "congress": raw.get("congress"),
            "doc_class": raw.get("docClass"),
        },
    )


def _describe_bill(record: SourceRecord) -> str:
    return record.attributes["title"]


BILLS = RecordKind(
    name="bills",
    table="bills",
    conflict_key="package_id",
    match_procedure="match_bills_by_date",
    from_source=_bill_from_source,
    describe=_describe_bill,
    source="gov_info",
    batch_size=100,
    date_field="date_issued",
)


# ── lenders ───────────────────────────────────────────────────────────


def _volume_record(raw: dict[str, Any]) -> SourceRecord:
    return SourceRecord(
        id=str(raw["id"]),
        attributes={
            "name": raw["name"],
            "loan_count": _number(raw.get("loan_count")),
            "total_volume": _number(raw.get("total_volume")),
        },
    )


def _describe_lender(record: SourceRecord) -> str:
    attrs = record.attributes
    return (
        f"{attrs['name']}. Major lender with {_grouped(attrs['loan_count'])} loans "
        f"and ${_grouped(attrs['total_volume'])} in volume."
    )


LENDERS = RecordKind(
    name="lenders",
    table="lender_name_vectors",
    conflict_key="id",
    match_procedure="match_lenders",
    from_source=_volume_record,
    describe=_describe_lender,
    source="postgres",
    columns=("name", "loan_count", "total_volume"),
    batch_size=25,
    count_sql="""
        SELECT COUNT(DISTINCT l.id)
        FROM leadgen.lender l
        WHERE l.id != -1
        AND EXISTS (
            SELECT 1
            FROM leadgen.cube c
            WHERE c.lender_id = l.id
            AND c.msa_id IS NULL
            AND c.purchase_year IS NULL
            AND c.flip_entity_id IS NULL
        )
    """,
    page_sql="""
        WITH lender_metrics AS (
            SELECT
                lender_id,
                SUM(loan_count) AS total_loans,
                SUM(total_volume::numeric) AS total_volume
            FROM leadgen.cube
            WHERE lender_id IS NOT NULL
            AND lender_id != -1
            AND msa_id IS NULL
            AND purchase_year IS NULL
            AND flip_entity_id IS NULL
            GROUP BY lender_id
        )
        SELECT
            l.id,
            l.name,
            COALESCE(lm.total_loans, 0) AS loan_count,
            COALESCE(lm.total_volume, 0) AS total_volume
        FROM leadgen.lender l
        LEFT JOIN lender_metrics lm ON lm.lender_id = l.id
        WHERE l.id != -1
        ORDER BY lm.total_volume DESC NULLS LAST, l.id
        LIMIT %(limit)s OFFSET %(offset)s
    """,
)


# ── flip entities ─────────────────────────────────────────────────────


def _entity_from_source(raw: dict[str, Any]) -> SourceRecord:
    record = _volume_record(raw)
    extras = {
        key: raw[key]
        for key in ("state", "top_state", "top_county", "top_lender")
        if raw.get(key)
    }
    return SourceRecord(id=record.id, attributes={**record.attributes, **extras})


def _describe_entity(record: SourceRecord) -> str:
    attrs = record.attributes
    based = f"{attrs['state']} based flip entity" if attrs.get("state") else "Flip entity"
    return (
        f"{attrs['name']}. {based} with {_grouped(attrs['loan_count'])} loans "
        f"and ${_grouped(attrs['total_volume'])} in volume. "
        f"Most active in {attrs.get('top_state') or 'various states'}, "
        f"particularly in {attrs.get('top_county') or 'various counties'}. "
        f"Primary lender relationship with {attrs.get('top_lender') or 'various lenders'}."
    )


ENTITIES = RecordKind(
    name="entities",
    table="entity_name_vectors",
    conflict_key="id",
    match_procedure="match_entities",
    from_source=_entity_from_source,
    describe=_describe_entity,
    source="postgres",
    columns=("name", "loan_count", "total_volume"),
    batch_size=25,
    count_sql="""
        SELECT COUNT(DISTINCT fe.id)
        FROM leadgen.flip_entity fe
        INNER JOIN leadgen.cube c ON c.flip_entity_id = fe.id
        WHERE fe.id != -1
        AND fe.name != ''
        AND c.msa_id IS NULL
        AND c.purchase_year IS NULL
        AND c.lender_id IS NULL
    """,
    page_sql="""
        SELECT
            fe.id,
            fe.name,
            c.loan_count,
            c.total_volume::numeric AS total_volume
        FROM leadgen.cube c
        JOIN leadgen.flip_entity fe ON fe.id = c.flip_entity_id
        WHERE c.msa_id IS NULL
        AND c.purchase_year IS NULL
        AND c.lender_id IS NULL
        AND fe.id != -1
        AND fe.name != ''
        ORDER BY c.total_volume DESC NULLS LAST, fe.id
        LIMIT %(limit)s OFFSET %(offset)s
    """,
)


KINDS: dict[str, RecordKind] = {kind.name: kind for kind in (BILLS, LENDERS, ENTITIES)}


def get_kind(name: str) -> RecordKind:
    """Look up a record kind by name.

    Raises
    ------
    ValueError
        If *name* is not a registered kind.
    """
    try:
        return KINDS[name]
    except KeyError:
        raise ValueError(
            f"Unknown record kind {name!r}. Choose from: {', '.join(sorted(KINDS))}."
        ) from None
