"""Retry with exponential backoff."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from app.domain.common.errors import DomainError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_PATTERNS = ("econnrefused", "etimedout", "enotfound", "network", "timeout", "timed out", "temporar")


def is_retryable_error(exc: BaseException) -> bool:
    """Default classifier: domain errors say so themselves; others match on transport failures."""
    if isinstance(exc, DomainError):
        return exc.retryable
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError)):
        return True
    message = str(exc).lower()
    return any(pattern in message for pattern in _RETRYABLE_PATTERNS)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, how long to wait between tries and which errors qualify."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    retry_on: Callable[[BaseException], bool] = field(default=is_retryable_error)

    def delay_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)


async def attempt_with_policy(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    operation: str = "operation",
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``fn`` until it succeeds, raises a non-retryable error or attempts run out.

    The last error is re-raised unchanged so callers can translate it.
    """
    attempt = 1
    while True:
        try:
            return await fn()
        except Exception as e:
            if not policy.retry_on(e) or attempt >= policy.max_attempts:
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "Retry attempt %d/%d for %s after %.2fs: %s",
                attempt,
                policy.max_attempts,
                operation,
                delay,
                e,
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await sleep(delay)
            attempt += 1
