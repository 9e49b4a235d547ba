"""
Bounded retry for transient network calls at the gateway boundary.
Engines never retry; only idempotent network operations go through here.
"""

import time
import logging
from typing import Callable, Literal, Tuple, Type, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Retry configuration for a network operation."""
    max_retries: int = 3
    backoff: Literal["fixed", "exp", "linear"] = "exp"
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.network_retries,
            initial_delay_seconds=settings.retry_delay_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        if self.backoff == "fixed":
            delay = self.initial_delay_seconds
        elif self.backoff == "linear":
            delay = self.initial_delay_seconds * attempt
        else:
            delay = self.initial_delay_seconds * (2 ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...],
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``fn``; on one of ``retry_on`` retry up to ``policy.max_retries`` times."""
    attempt = 0
    while True:
        try:
            return fn()
        except retry_on as e:
            attempt += 1
            if attempt > policy.max_retries:
                logger.error(f"[Retry] {description} failed after {attempt} attempt(s): {e}")
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                f"[Retry] {description} failed ({e}); retry {attempt}/{policy.max_retries} in {delay:.1f}s"
            )
            sleep(delay)
