"""Retrieval — similarity search over the stored embeddings."""

from gov_ingest.retrieval.search import DEFAULT_MATCH_THRESHOLD, SimilaritySearch

__all__ = ["DEFAULT_MATCH_THRESHOLD", "SimilaritySearch"]
