"""Exponential backoff policy for failed generation attempts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from packet_pipeline import constants


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with capped exponential backoff.

    After the n-th failed attempt (n starting at 1) the job waits
    ``min(base_delay * factor ** (n - 1), max_delay)`` seconds.  ``max_attempts``
    is copied onto each job at enqueue; the queue escalates a job once its
    own ``attempts`` reaches it.
    """

    max_attempts: int = constants.MAX_ATTEMPTS
    base_delay: float = constants.RETRY_BASE_DELAY_SECONDS
    factor: float = constants.RETRY_BACKOFF_FACTOR
    max_delay: float = constants.RETRY_MAX_DELAY_SECONDS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.factor < 1:
            raise ValueError("factor must be >= 1")

    def delay(self, attempts: int) -> timedelta:
        """Backoff to wait after the *attempts*-th failure."""
        exponent = max(attempts - 1, 0)
        seconds = min(self.base_delay * self.factor ** exponent, self.max_delay)
        return timedelta(seconds=seconds)
