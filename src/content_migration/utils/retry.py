"""Retry logic using tenacity.

Retries transient management API failures (network errors, 5xx responses and
rate limiting) with exponential backoff and jitter. A 429 carrying a
``Retry-After`` header waits exactly as long as the server asked.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)
from tenacity.wait import wait_base

from content_migration.client.exceptions import NetworkError, RateLimitError, ServerError
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

RETRYABLE_ERRORS = (NetworkError, ServerError, RateLimitError)


class wait_retry_after(wait_base):
    """Wait for ``Retry-After`` on rate limiting, else fall back to ``fallback``."""

    def __init__(self, fallback: wait_base, max_wait: float):
        self.fallback = fallback
        self.max_wait = max_wait

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None and outcome.failed else None
        if isinstance(error, RateLimitError) and error.retry_after:
            return float(min(error.retry_after, self.max_wait))
        return self.fallback(retry_state)


def retry_with_backoff(
    max_attempts: int = 3,
    min_wait: int = 1,
    max_wait: int = 30,
    retry_on_exceptions: tuple = RETRYABLE_ERRORS,
) -> Callable[[F], F]:
    """Retry decorator for coroutine functions.

    Args:
        max_attempts: Maximum number of attempts, the first call included
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds, also caps ``Retry-After``
        retry_on_exceptions: Exception types worth another attempt

    Returns:
        Decorated coroutine function
    """
    wait = wait_retry_after(
        wait_random_exponential(multiplier=1, min=min_wait, max=max_wait), max_wait
    )

    def decorator(func: F) -> F:
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait,
                retry=retry_if_exception_type(retry_on_exceptions),
                reraise=True,
            ):
                with attempt:
                    number = attempt.retry_state.attempt_number
                    if number > 1:
                        logger.info(
                            "retry_attempt",
                            function=func.__name__,
                            attempt=number,
                            max_attempts=max_attempts,
                        )
                    return await func(*args, **kwargs)

        return async_wrapper  # type: ignore

    return decorator


async def call_with_retry(
    func: Callable[..., Any],
    *args: Any,
    max_attempts: int = 3,
    min_wait: int = 1,
    max_wait: int = 30,
    **kwargs: Any,
) -> Any:
    """Call a coroutine function with a retry budget taken from configuration."""
    wrapped = retry_with_backoff(max_attempts=max_attempts, min_wait=min_wait, max_wait=max_wait)(
        func
    )
    return await wrapped(*args, **kwargs)
