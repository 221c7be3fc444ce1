"""
Store — vector-store backends behind a single interface.

Public surface
--------------
- :class:`VectorStoreBase` — abstract backend.
- :class:`PostgresVectorStore` — pgvector / Supabase backend (default).
- :class:`ChromaVectorStore` — Chroma backend.
- :func:`get_store` — build the backend selected in settings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from gov_ingest.errors import ConfigurationError
from gov_ingest.store.base import VectorStoreBase

if TYPE_CHECKING:
    from gov_ingest.config import Settings

__all__ = [
    "ChromaVectorStore",
    "PostgresVectorStore",
    "VectorStoreBase",
    "get_store",
]


def get_store(settings: Settings) -> VectorStoreBase:
    """Return the vector store configured by ``settings.vector_backend``."""
    backend = settings.vector_backend.lower()
    if backend == "postgres":
        from gov_ingest.store.postgres_store import PostgresVectorStore

        settings.require("vector_database_url")
        return PostgresVectorStore(settings.vector_database_url)
    if backend == "chroma":
        from gov_ingest.store.chroma_store import ChromaVectorStore

        return ChromaVectorStore(settings.chroma_host, settings.chroma_port)
    raise ConfigurationError(
        f"Unsupported vector_backend={settings.vector_backend!r}. Choose from: postgres, chroma."
    )


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import backends to avoid pulling in their drivers at import time."""
    if name == "PostgresVectorStore":
        from gov_ingest.store.postgres_store import PostgresVectorStore

        return PostgresVectorStore
    if name == "ChromaVectorStore":
        from gov_ingest.store.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
