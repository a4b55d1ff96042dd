"""
Bounded exponential backoff for read paths.

Only reads go through a RetryPolicy. Creating, updating or deleting financial
records is never retried automatically: a failed write is surfaced to the user.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from sqlalchemy.exc import DisconnectionError, OperationalError

from crm.config import settings
from crm.exceptions import TransientInfraError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_error(error: BaseException) -> bool:
    """Classify network failures, rate limiting and expired tokens as retryable"""
    if isinstance(error, TransientInfraError):
        return True
    if isinstance(error, (OperationalError, DisconnectionError)):
        return True
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in (401, 429)

    error_str = str(error).lower()
    return (
        "429" in error_str
        or "rate_limit" in error_str
        or "rate limit" in error_str
        or "network error" in error_str
        or "failed to fetch" in error_str
    )


class RetryPolicy:
    """Retry a read with delays of base_delay * 2**attempt, capped at max_delay"""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        is_retryable: Callable[[BaseException], bool] = is_transient_error,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.is_retryable = is_retryable
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def _should_retry(self, error: Exception, attempt: int, name: str) -> Optional[float]:
        if not self.is_retryable(error) or attempt >= self.max_attempts - 1:
            return None
        wait_time = self.delay_for(attempt)
        logger.warning(
            f"Transient error in {name}: {error}. "
            f"Waiting {wait_time} seconds before retry {attempt + 1}/{self.max_attempts}..."
        )
        return wait_time

    def run(self, func: Callable[[], T], name: str = "read") -> T:
        for attempt in range(self.max_attempts):
            try:
                return func()
            except Exception as e:
                wait_time = self._should_retry(e, attempt, name)
                if wait_time is None:
                    raise
                self._sleep(wait_time)
        raise RuntimeError("unreachable")

    async def run_async(self, func: Callable[[], Awaitable[T]], name: str = "read") -> T:
        # asyncio.CancelledError is not an Exception subclass, so cancelling the
        # caller during a backoff sleep stops the loop with no further attempts.
        for attempt in range(self.max_attempts):
            try:
                return await func()
            except Exception as e:
                wait_time = self._should_retry(e, attempt, name)
                if wait_time is None:
                    raise
                await asyncio.sleep(wait_time)
        raise RuntimeError("unreachable")


read_retry_policy = RetryPolicy(
    max_attempts=settings.read_max_retries,
    base_delay=settings.read_retry_base_delay,
    max_delay=settings.read_retry_max_delay,
)
