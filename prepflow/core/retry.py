"""
Bounded exponential backoff for completion calls.

Only transient categories (network, timeout, server, rate limit) are
retried; authentication and response validation failures are raised on
the first attempt so callers can fall back immediately.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from prepflow.config.settings import Settings, get_settings
from prepflow.core.errors import CompletionError, categorize_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    base_delay: float = 2.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    jitter_ratio: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_retries=settings.retry_max_retries,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
            multiplier=settings.retry_backoff_multiplier,
        )

    def calculate_delay(self, attempt: int, rng: random.Random | None = None) -> float:
        """Delay before retry number `attempt + 1` (attempt is zero-based)."""
        exponential = self.base_delay * (self.multiplier ** attempt)
        jitter = (rng or random).random() * self.jitter_ratio * exponential
        return min(exponential + jitter, self.max_delay)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    context: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `fn`, retrying transient failures with backoff.

    Raises:
        CompletionError: the categorized final error
    """
    attempts = policy.max_retries + 1
    for attempt in range(attempts):
        try:
            return await fn()
        except Exception as e:
            error = categorize_error(e)
            if attempt == attempts - 1 or not error.retryable:
                logger.error(
                    f"[{context}] Final attempt failed ({attempt + 1}/{attempts}): "
                    f"{error.category.value}: {error}"
                )
                if error is e:
                    raise
                raise error from e

            delay = policy.calculate_delay(attempt)
            logger.warning(
                f"[{context}] Attempt {attempt + 1} failed, retrying in {delay:.1f}s: "
                f"{error.category.value}: {error}"
            )
            await sleep(delay)

    # Unreachable: the loop either returns or raises
    raise CompletionError(f"[{context}] retry loop exhausted")
