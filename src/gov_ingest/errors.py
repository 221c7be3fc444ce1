"""Error taxonomy and transient-error classification.

Every store backend translates its native exceptions into
:class:`StoreError` with a string ``code``.  :func:`classify_store_error`
is the only place that knows which of those codes are worth retrying, so
the retry policy stays independent of any one store's error encoding.
"""

from __future__ import annotations

import enum


class GovIngestError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(GovIngestError):
    """A required setting is missing or invalid."""


class FetchError(GovIngestError):
    """The document source could not deliver a page. Fatal to a run."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmbeddingError(GovIngestError):
    """The embedding service kept failing after all retries."""


class StoreError(GovIngestError):
    """A vector-store operation failed.

    ``code`` is the backend's own error code (a Postgres SQLSTATE such as
    ``"57014"``, an HTTP status, ``"connection"`` or ``"timeout"``).
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class UpsertError(GovIngestError):
    """A batch could not be written to the store."""

    def __init__(self, message: str, batch_size: int, code: str | None = None) -> None:
        super().__init__(message)
        self.batch_size = batch_size
        self.code = code


class SearchError(GovIngestError):
    """A similarity search could not be completed."""


class TransientKind(str, enum.Enum):
    """Closed set of failure kinds that are expected to succeed on retry."""

    CONNECTION = "connection"
    TIMEOUT = "timeout"
    STATEMENT_TIMEOUT = "statement_timeout"
    SERIALIZATION_FAILURE = "serialization_failure"
    DEADLOCK_DETECTED = "deadlock_detected"


_TRANSIENT_CODES: dict[str, TransientKind] = {
    "connection": TransientKind.CONNECTION,
    "timeout": TransientKind.TIMEOUT,
    "57014": TransientKind.STATEMENT_TIMEOUT,
    "40001": TransientKind.SERIALIZATION_FAILURE,
    "40P01": TransientKind.DEADLOCK_DETECTED,
}


def classify_store_error(exc: BaseException) -> TransientKind | None:
    """Map *exc* onto a :class:`TransientKind`, or ``None`` if not transient."""
    if isinstance(exc, StoreError):
        return _TRANSIENT_CODES.get(exc.code or "")
    if isinstance(exc, TimeoutError):
        return TransientKind.TIMEOUT
    if isinstance(exc, ConnectionError):
        return TransientKind.CONNECTION
    return None


def always_transient(exc: BaseException) -> TransientKind:
    """Classifier for remote calls where every failure is worth retrying."""
    return TransientKind.CONNECTION
