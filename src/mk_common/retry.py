"""Retry-with-backoff shared by submission, oracle lookups and confirmation tracking."""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """max_retries counts retries after the first attempt.

    Wait before retry n is min(max_delay, delay * backoff ** (n - 1));
    backoff=1.0 is a fixed delay.
    """

    max_retries: int = 3
    delay: float = 2.0
    backoff: float = 1.0
    max_delay: float = 60.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0, got {self.delay}")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def wait_strategy(self) -> wait_base:
        if self.backoff == 1.0:
            return wait_fixed(min(self.delay, self.max_delay))
        return wait_exponential(multiplier=self.delay, exp_base=self.backoff, max=self.max_delay)

    def exhausted(self, failures: int) -> bool:
        """True once consecutive failures exceed the retry allowance."""
        return failures > self.max_retries


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...],
    description: str = "operation",
) -> T:
    """Await fn(), retrying on retry_on exceptions; re-raise the last one when exhausted.

    Exceptions outside retry_on propagate immediately.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_strategy(),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=asyncio.sleep,
        reraise=True,
    )
    try:
        return await retrying(fn)
    except retry_on as exc:
        logger.error("%s failed after %d attempts: %s", description, policy.max_attempts, exc)
        raise
