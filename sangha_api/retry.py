"""Retry classification and exponential backoff for API calls."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, TypeVar

from sangha_api.errors import ApiError, is_retryable

logger = logging.getLogger("sangha_api.retry")

MAX_RETRIES = 3
BASE_DELAY = 1.0  # seconds
MAX_DELAY = 30.0

T = TypeVar("T")

TRANSIENT_ERRORS = (TimeoutError, ConnectionError, OSError)


class RetryPolicy:
    """Decides whether a failed attempt is repeated and how long to wait.

    ``attempt`` is the 1-based number of the attempt that just failed, so a
    policy with ``max_retries=3`` allows at most four attempts in total.
    """

    def __init__(
        self,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY,
        jitter: float = 0.0,
        max_delay: float = MAX_DELAY,
        rng: Callable[[], float] = random.random,
    ):
        self.max_retries = max(0, max_retries)
        self.base_delay = base_delay
        self.jitter = jitter
        self.max_delay = max_delay
        self._rng = rng

    def with_max_retries(self, max_retries: int) -> RetryPolicy:
        if max_retries == self.max_retries:
            return self
        return RetryPolicy(
            max_retries=max_retries,
            base_delay=self.base_delay,
            jitter=self.jitter,
            max_delay=self.max_delay,
            rng=self._rng,
        )

    def should_retry(self, error: ApiError, attempt: int) -> bool:
        if attempt > self.max_retries:
            return False
        return is_retryable(error)

    def delay(self, attempt: int, error: ApiError | None = None) -> float:
        """Seconds to wait before the attempt after ``attempt``.

        A ``Retry-After`` hint on the error takes precedence over the
        exponential schedule.
        """
        if error is not None and error.retry_after is not None:
            return min(max(error.retry_after, 0.0), self.max_delay)
        backoff = self.base_delay * (2 ** (attempt - 1))
        if self.jitter:
            backoff += self.jitter * self._rng()
        return min(backoff, self.max_delay)


async def retry_api_call(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    transient_errors: tuple = TRANSIENT_ERRORS,
    **kwargs: Any,
) -> T:
    """Call ``func`` again with exponential backoff when it fails transiently.

    For call sites that want resilience beyond the client's own retries.
    ``ApiError`` failures follow :class:`RetryPolicy`; ``transient_errors``
    are always retried; anything else propagates immediately.

    Args:
        func: Async function to call.
        *args: Positional arguments.
        max_retries: Retries after the first attempt.
        base_delay: Base delay in seconds (doubled each retry).
        transient_errors: Non-API exception types that trigger retry.
        **kwargs: Keyword arguments.

    Returns:
        The function's return value.

    Raises:
        The last exception if all retries fail.
    """
    policy = RetryPolicy(max_retries=max_retries, base_delay=base_delay)
    name = getattr(func, "__name__", repr(func))
    attempt = 0

    while True:
        attempt += 1
        try:
            return await func(*args, **kwargs)
        except ApiError as e:
            if not policy.should_retry(e, attempt):
                if attempt > 1:
                    logger.error("All %d attempts exhausted for %s: %s", attempt, name, e.code)
                raise
            delay = policy.delay(attempt, e)
            logger.warning(
                "Retry %d/%d for %s after %.1fs: %s",
                attempt,
                max_retries,
                name,
                delay,
                e.code,
            )
        except transient_errors as e:
            if attempt > max_retries:
                logger.error("All %d attempts exhausted for %s: %s", attempt, name, e)
                raise
            delay = policy.delay(attempt)
            logger.warning(
                "Retry %d/%d for %s after %.1fs: %s",
                attempt,
                max_retries,
                name,
                delay,
                e,
            )
        await asyncio.sleep(delay)
