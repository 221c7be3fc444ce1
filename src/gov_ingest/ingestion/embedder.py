"""Embedding client — batch text → vectors with retry."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from gov_ingest.errors import ConfigurationError, EmbeddingError, always_transient
from gov_ingest.retry import BackoffPolicy

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from gov_ingest.config import Settings

logger = logging.getLogger(__name__)


def get_embedding_function(settings: Settings) -> Embeddings:
    """Return the configured LangChain embedding backend.

    ``openai`` talks to the remote embeddings API; its own retries are
    disabled so :class:`BackoffPolicy` is the only retry layer.
    ``huggingface`` runs a sentence-transformer locally.
    """
    provider = settings.embedding_provider.lower()
    if provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        settings.require("openai_api_key")
        return OpenAIEmbeddings(
            model=settings.embedding_model,
            api_key=settings.openai_api_key,
            max_retries=0,
        )
    if provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        return HuggingFaceEmbeddings(model_name=settings.embedding_model)
    raise ConfigurationError(
        f"Unsupported embedding_provider={settings.embedding_provider!r}. "
        "Choose from: openai, huggingface."
    )


class EmbeddingClient:
    """Index-aligned batch embedding over any LangChain ``Embeddings``.

    Parameters
    ----------
    embeddings:
        The backend doing the remote inference call.
    policy:
        Retry policy; every backend failure counts as transient.
    sleep:
        Injected in tests to skip real delays.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        *,
        policy: BackoffPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._embeddings = embeddings
        self._policy = policy or BackoffPolicy()
        self._sleep = sleep

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*; ``result[i]`` is the vector of ``texts[i]``.

        Raises
        ------
        EmbeddingError
            When the backend keeps failing after ``max_retries`` attempts.
        """
        if not texts:
            return []

        def _call() -> list[list[float]]:
            vectors = self._embeddings.embed_documents(list(texts))
            if len(vectors) != len(texts):
                raise ValueError(
                    f"embedding service returned {len(vectors)} vectors for {len(texts)} inputs"
                )
            return [list(v) for v in vectors]

        try:
            return self._policy.run(
                _call,
                classify=always_transient,
                sleep=self._sleep,
                describe=f"embedding batch of {len(texts)}",
            )
        except Exception as exc:
            raise EmbeddingError(
                f"Embedding failed for batch of {len(texts)} after {self._policy.max_retries} attempts: {exc}"
            ) from exc

    def embed_query(self, text: str) -> list[float]:
        """Embed a single text as a one-item batch."""
        return self.embed([text])[0]
