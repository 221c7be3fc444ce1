"""Unit tests for the embedding client."""

from __future__ import annotations

import pytest

from fakes import FakeEmbeddings
from gov_ingest.config import Settings
from gov_ingest.errors import ConfigurationError, EmbeddingError
from gov_ingest.ingestion.embedder import EmbeddingClient, get_embedding_function
from gov_ingest.retry import BackoffPolicy


@pytest.fixture()
def sleeps() -> list[float]:
    return []


def _client(backend: FakeEmbeddings, sleeps: list[float]) -> EmbeddingClient:
    return EmbeddingClient(backend, policy=BackoffPolicy(max_retries=3), sleep=sleeps.append)


class TestEmbed:
    @pytest.mark.parametrize("size", [1, 7, 25, 100])
    def test_output_aligned_with_input(self, size: int, sleeps: list[float]) -> None:
        texts = [f"text {'x' * i}" for i in range(size)]
        vectors = _client(FakeEmbeddings(), sleeps).embed(texts)
        assert len(vectors) == size
        for i, (text, vector) in enumerate(zip(texts, vectors)):
            assert vector[0] == float(len(text))
            assert vector[1] == float(i)

    def test_empty_input_skips_remote_call(self, sleeps: list[float]) -> None:
        backend = FakeEmbeddings()
        assert _client(backend, sleeps).embed([]) == []
        assert backend.calls == []

    def test_retries_then_succeeds(self, sleeps: list[float]) -> None:
        backend = FakeEmbeddings(fail_on={1, 2})
        vectors = _client(backend, sleeps).embed(["a", "b"])
        assert len(vectors) == 2
        assert len(backend.calls) == 3
        assert sleeps == [1.0, 2.0]

    def test_exhausted_retries_raise_embedding_error(self, sleeps: list[float]) -> None:
        backend = FakeEmbeddings(fail_on={1, 2, 3})
        with pytest.raises(EmbeddingError, match="batch of 2"):
            _client(backend, sleeps).embed(["a", "b"])
        assert len(backend.calls) == 3

    def test_length_mismatch_is_a_failure(self, sleeps: list[float]) -> None:
        class ShortEmbeddings(FakeEmbeddings):
            def embed_documents(self, texts: list[str]) -> list[list[float]]:
                return super().embed_documents(texts)[:-1]

        backend = ShortEmbeddings()
        with pytest.raises(EmbeddingError):
            _client(backend, sleeps).embed(["a", "b", "c"])
        assert len(backend.calls) == 3

    def test_embed_query_uses_single_item_batch(self, sleeps: list[float]) -> None:
        backend = FakeEmbeddings()
        vector = _client(backend, sleeps).embed_query("health care")
        assert backend.calls == [["health care"]]
        assert vector == [11.0, 0.0, 1.0]


class TestGetEmbeddingFunction:
    def test_openai_requires_key(self) -> None:
        settings = Settings(embedding_provider="openai", openai_api_key="")
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            get_embedding_function(settings)

    def test_unknown_provider(self) -> None:
        settings = Settings(embedding_provider="cohere")
        with pytest.raises(ConfigurationError, match="Unsupported embedding_provider"):
            get_embedding_function(settings)
