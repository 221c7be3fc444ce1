"""Capped exponential backoff shared by every retrying operation.

The delay doubles after each failed attempt up to ``max_delay``, without
jitter.  No operation makes more than ``max_retries`` attempts in total.

Usage::

    policy = BackoffPolicy(initial_delay=1.0, max_delay=32.0, max_retries=3)
    result = policy.run(lambda: client.call(), classify=classify_store_error,
                        describe="upsert 25 bills")
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import TypeVar

from gov_ingest.errors import TransientKind, classify_store_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

Classifier = Callable[[BaseException], "TransientKind | None"]


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded exponential backoff.

    Attributes
    ----------
    initial_delay:
        Seconds slept before the second attempt.
    max_delay:
        Upper bound for any single sleep.
    max_retries:
        Maximum number of attempts for one logical operation.
    """

    initial_delay: float = 1.0
    max_delay: float = 32.0
    max_retries: int = 3

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.initial_delay < 0 or self.max_delay < self.initial_delay:
            raise ValueError("require 0 <= initial_delay <= max_delay")

    @classmethod
    def from_settings(cls, settings) -> BackoffPolicy:  # noqa: ANN001
        return cls(
            initial_delay=settings.initial_retry_delay,
            max_delay=settings.max_retry_delay,
            max_retries=settings.max_retries,
        )

    def next_delay(self, current_delay: float) -> float:
        return min(current_delay * 2, self.max_delay)

    def should_retry(self, attempt: int, transient: TransientKind | None) -> bool:
        """True while *attempt* is below the cap and the error is transient."""
        return transient is not None and attempt < self.max_retries

    def delays(self) -> Iterator[float]:
        """Yield the sleeps an operation that always fails would perform."""
        delay = self.initial_delay
        for _ in range(self.max_retries - 1):
            yield delay
            delay = self.next_delay(delay)

    def run(
        self,
        operation: Callable[[], T],
        *,
        classify: Classifier = classify_store_error,
        sleep: Callable[[float], None] = time.sleep,
        describe: str = "operation",
    ) -> T:
        """Call *operation* until it succeeds or the policy gives up.

        The last exception is re-raised unchanged when the error is not
        transient or the attempt cap has been reached.
        """
        attempt = 1
        delay = self.initial_delay
        last_delay = 0.0
        while True:
            try:
                return operation()
            except Exception as exc:
                transient = classify(exc)
                if not self.should_retry(attempt, transient):
                    if transient is not None:
                        logger.error(
                            "%s failed after %d/%d attempts (last delay %.1fs): %s",
                            describe, attempt, self.max_retries, last_delay, exc,
                        )
                    raise
                logger.warning(
                    "%s failed (%s), retrying in %.1fs (attempt %d/%d): %s",
                    describe, transient.value, delay, attempt, self.max_retries, exc,
                )
                sleep(delay)
                attempt += 1
                last_delay = delay
                delay = self.next_delay(delay)
