"""
Per-call timeouts and bounded retry for collaborator calls.

Only transient failures (TransientIOError, timeouts) are retried. Business
outcomes such as OutOfStockError or a payment decline propagate on the first
attempt.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from checkout_saga.core.exceptions import TransientIOError
from checkout_saga.core.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and backoff settings for one kind of collaborator call."""

    timeout: float
    max_retries: int = 3
    backoff_base: float = 0.05
    backoff_max: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (base x 2^attempt, capped)."""
        return min(self.backoff_base * (2**attempt), self.backoff_max)


async def call_with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    timeout: float,
    max_retries: int = 3,
    backoff_base: float = 0.05,
    backoff_max: float = 1.0,
    operation: str | None = None,
    **kwargs: Any,
) -> T:
    """
    Await ``fn(*args, **kwargs)`` with a per-call timeout and bounded retry.

    Args:
        fn: Coroutine function to call
        timeout: Seconds allowed for each attempt
        max_retries: Retries after the first attempt
        backoff_base: First backoff delay in seconds
        backoff_max: Upper bound for a single delay
        operation: Name used in logs and in the raised error

    Raises:
        TransientIOError: When every attempt failed transiently
        Exception: Any non-transient error from ``fn``, unchanged
    """
    policy = RetryPolicy(
        timeout=timeout,
        max_retries=max_retries,
        backoff_base=backoff_base,
        backoff_max=backoff_max,
    )
    return await retry_with_policy(policy, fn, *args, operation=operation, **kwargs)


async def retry_with_policy(
    policy: RetryPolicy,
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    operation: str | None = None,
    **kwargs: Any,
) -> T:
    name = operation or getattr(fn, "__name__", "call")
    last_error: TransientIOError | None = None

    for attempt in range(policy.max_retries + 1):
        try:
            return await asyncio.wait_for(fn(*args, **kwargs), timeout=policy.timeout)
        except TimeoutError:
            last_error = TransientIOError(
                f"{name} timed out after {policy.timeout}s",
                operation=name,
                attempt=attempt + 1,
            )
        except TransientIOError as e:
            last_error = e

        if attempt < policy.max_retries:
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{name} failed transiently (attempt {attempt + 1}/"
                f"{policy.max_retries + 1}), retrying in {delay:.3f}s: {last_error}"
            )
            await asyncio.sleep(delay)

    logger.error(f"{name} failed after {policy.max_retries + 1} attempts: {last_error}")
    raise last_error
