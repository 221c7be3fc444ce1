"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings

from gov_ingest.errors import ConfigurationError


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Embedding service
    openai_api_key: str = Field(default="", description="OpenAI API key used by the embedding client")
    embedding_provider: str = Field(
        default="openai",
        description="Embedding backend: 'openai' (remote API) or 'huggingface' (local sentence-transformers)",
    )
    embedding_model: str = "text-embedding-ada-002"

    # GovInfo document source
    gov_info_api_key: str = ""
    gov_info_base_url: str = "https://api.govinfo.gov"
    gov_info_collection: str = "BILLS"
    gov_info_page_size: int = 1000
    sync_start_date: str = "2014-01-01"
    sync_end_date: str = "2024-03-19"
    request_timeout: int = 60

    # Source database for the aggregate record kinds (lenders, entities)
    source_database_url: str = Field(
        default="",
        description="libpq DSN of the read-only source database, e.g. 'postgresql://user:pw@host/db?sslmode=require'",
    )

    # Vector store
    vector_backend: str = Field(default="postgres", description="'postgres' (pgvector) or 'chroma'")
    vector_database_url: str = ""
    chroma_host: str = "localhost"
    chroma_port: int = 8000

    # Retry policy
    max_retries: int = 3
    initial_retry_delay: float = 1.0
    max_retry_delay: float = 32.0

    # Similarity search
    match_threshold: float = 0.7
    search_default_limit: int = 5

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def require(self, *names: str) -> None:
        """Fail fast when any of *names* is unset.

        Raises
        ------
        ConfigurationError
            Listing every missing setting by its environment variable name.
        """
        missing = [name.upper() for name in names if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variable(s): {', '.join(missing)}"
            )


# Singleton — import `settings` wherever needed.
settings = Settings()
