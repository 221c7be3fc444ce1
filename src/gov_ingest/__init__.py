"""gov-ingest — resilient embedding sync into a vector store, plus similarity search."""

__version__ = "1.0.0"
