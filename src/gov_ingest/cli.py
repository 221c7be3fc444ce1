"""Command-line entry point.

Sync a record kind (optionally resuming from a cursor)::

    gov-ingest sync bills --cursor AoJ4qd3B948DMUJJTExTLTExNGhyNDg4N3Jz
    gov-ingest sync lenders

Search it::

    gov-ingest search bills "health care" --limit 10 --start-date 2020-01-01 --end-date 2023-12-31
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date

from gov_ingest.config import Settings, settings as default_settings
from gov_ingest.errors import GovIngestError
from gov_ingest.ingestion.embedder import EmbeddingClient, get_embedding_function
from gov_ingest.ingestion.pipeline import IngestionPipeline
from gov_ingest.ingestion.sink import UpsertSink
from gov_ingest.ingestion.sources import get_source
from gov_ingest.kinds import KINDS, get_kind
from gov_ingest.retrieval.search import SimilaritySearch
from gov_ingest.retry import BackoffPolicy
from gov_ingest.store import get_store

logger = logging.getLogger("gov_ingest")


def _check_settings(settings: Settings, kind_source: str | None) -> None:
    """Fail before any network activity when credentials are missing."""
    if settings.embedding_provider.lower() == "openai":
        settings.require("openai_api_key")
    if settings.vector_backend.lower() == "postgres":
        settings.require("vector_database_url")
    if kind_source == "gov_info":
        settings.require("gov_info_api_key")
    elif kind_source == "postgres":
        settings.require("source_database_url")


def run_sync(kind_name: str, cursor: str | None, batch_size: int | None, settings: Settings) -> int:
    kind = get_kind(kind_name)
    _check_settings(settings, kind.source)
    policy = BackoffPolicy.from_settings(settings)
    embedder = EmbeddingClient(get_embedding_function(settings), policy=policy)

    with get_store(settings) as store, get_source(kind, settings) as source:
        pipeline = IngestionPipeline(
            source,
            kind,
            embedder,
            UpsertSink(store, kind, policy=policy),
            batch_size=batch_size,
        )
        stats = pipeline.run(start_cursor=cursor)
    return 0 if stats.failed_batches == 0 else 2


def run_search(
    kind_name: str,
    query: str,
    limit: int | None,
    start_date: date | None,
    end_date: date | None,
    settings: Settings,
) -> int:
    kind = get_kind(kind_name)
    _check_settings(settings, None)
    policy = BackoffPolicy.from_settings(settings)
    embedder = EmbeddingClient(get_embedding_function(settings), policy=policy)

    with get_store(settings) as store:
        searcher = SimilaritySearch(
            store,
            embedder,
            kind,
            threshold=settings.match_threshold,
            default_limit=settings.search_default_limit,
            policy=policy,
        )
        matches = searcher.search(query, limit=limit, start_date=start_date, end_date=end_date)

    print(f"\nSearch results for: {query}")
    for rank, match in enumerate(matches, 1):
        label = match.attributes.get("title") or match.attributes.get("name") or ""
        print(f"\n{rank}. {label} (ID: {match.id})")
        print(f"   Similarity: {match.similarity * 100:.1f}%")
        for key, value in match.attributes.items():
            if key not in ("title", "name"):
                print(f"   {key}: {value}")
    print(f"\nTotal results found: {len(matches)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gov-ingest",
        description="Sync records into a vector store and search them by similarity.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Fetch, embed and upsert every record of a kind")
    sync.add_argument("kind", choices=sorted(KINDS))
    sync.add_argument("--cursor", help="Resume from the cursor logged by a previous run")
    sync.add_argument("--batch-size", type=int, help="Records per embedding/upsert call")

    search = sub.add_parser("search", help="Semantic search over a synced kind")
    search.add_argument("kind", choices=sorted(KINDS))
    search.add_argument("query")
    search.add_argument("--limit", type=int)
    search.add_argument("--start-date", type=date.fromisoformat)
    search.add_argument("--end-date", type=date.fromisoformat)
    return parser


def main(argv: list[str] | None = None, settings: Settings = default_settings) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        if args.command == "sync":
            return run_sync(args.kind, args.cursor, args.batch_size, settings)
        return run_search(
            args.kind, args.query, args.limit, args.start_date, args.end_date, settings
        )
    except (GovIngestError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
