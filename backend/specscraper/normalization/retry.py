"""
Retry logic for AI normalization requests.

Provides exponential backoff with jitter for transient failures from the
model API (connection errors, rate limits, timeouts).

Example:
    from specscraper.normalization.retry import with_retry, RetryPolicy

    @with_retry(retryable_exceptions=(APIConnectionError, RateLimitError))
    async def call_model(payload: dict) -> dict:
        ...
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from specscraper.core.config import settings

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class RetryExhausted(Exception):
    """Raised when all retry attempts are exhausted.

    The exception behind the final failure is chained as __cause__.

    Attributes:
        message: Human-readable description of the retry exhaustion
        attempts: Number of attempts made before exhaustion
    """

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.message = message
        self.attempts = attempts


class RetryPolicy:
    """Exponential backoff with jitter.

    The delay before retry N (0-indexed) is
    ``min(initial_delay * multiplier ** N, max_delay)`` varied by +/- jitter.

    Example:
        policy = RetryPolicy(max_retries=2, initial_delay=1.0, jitter=0.0)
        policy.get_delay(0)  # 1.0
        policy.get_delay(1)  # 2.0
    """

    def __init__(
        self,
        max_retries: int | None = None,
        initial_delay: float | None = None,
        max_delay: float = 30.0,
        multiplier: float = 2.0,
        jitter: float = 0.1,
    ):
        """Initialize the retry policy.

        Args:
            max_retries: Maximum retry attempts. Defaults to settings.NORMALIZATION_MAX_RETRIES.
            initial_delay: Delay before the first retry. Defaults to settings.NORMALIZATION_INITIAL_DELAY.
            max_delay: Maximum delay cap in seconds.
            multiplier: Exponential backoff multiplier.
            jitter: Jitter factor (0.0 to 1.0).

        Raises:
            ValueError: If parameters are invalid (negative delays, etc.)
        """
        if max_retries is not None and max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if initial_delay is not None and initial_delay < 0:
            raise ValueError("initial_delay must be non-negative")
        if max_delay < 0:
            raise ValueError("max_delay must be non-negative")
        if multiplier < 1:
            raise ValueError("multiplier must be at least 1.0")
        if not 0.0 <= jitter <= 1.0:
            raise ValueError("jitter must be between 0.0 and 1.0")

        self.max_retries = max_retries if max_retries is not None else settings.NORMALIZATION_MAX_RETRIES
        self.initial_delay = (
            initial_delay if initial_delay is not None else settings.NORMALIZATION_INITIAL_DELAY
        )
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter = jitter

    def get_delay(self, attempt: int) -> float:
        base_delay = min(
            self.initial_delay * (self.multiplier**attempt),
            self.max_delay,
        )

        if self.jitter > 0:
            jitter_range = base_delay * self.jitter
            return max(0.0, base_delay + random.uniform(-jitter_range, jitter_range))

        return base_delay

    def __repr__(self) -> str:
        return (
            f"RetryPolicy("
            f"max_retries={self.max_retries}, "
            f"initial_delay={self.initial_delay}, "
            f"max_delay={self.max_delay}, "
            f"multiplier={self.multiplier}, "
            f"jitter={self.jitter})"
        )


def with_retry(
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for retry with exponential backoff.

    Args:
        retryable_exceptions: Exception types that trigger a retry; anything
            else propagates immediately.
        policy: Retry policy. Defaults to RetryPolicy() built from settings.
        sleep: Awaitable sleep used between attempts (asyncio.sleep by default).

    Raises:
        RetryExhausted: When all attempts fail. The last error is __cause__.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            retry_policy = policy or RetryPolicy()
            pause = sleep or asyncio.sleep
            last_exception: Exception | None = None
            total_attempts = retry_policy.max_retries + 1

            for attempt in range(total_attempts):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_exception = e
                    current_attempt = attempt + 1

                    if attempt < retry_policy.max_retries:
                        delay = retry_policy.get_delay(attempt)
                        logger.warning(
                            "Retry attempt %d/%d failed for %s: %s. Retrying in %.2fs...",
                            current_attempt,
                            total_attempts,
                            func.__name__,
                            str(e),
                            delay,
                            extra={
                                "function": func.__name__,
                                "attempt": current_attempt,
                                "total_attempts": total_attempts,
                                "delay_seconds": delay,
                                "error_type": type(e).__name__,
                            },
                        )
                        await pause(delay)
                    else:
                        logger.error(
                            "All %d retry attempts exhausted for %s",
                            total_attempts,
                            func.__name__,
                            extra={
                                "function": func.__name__,
                                "total_attempts": total_attempts,
                                "final_error": str(e),
                                "error_type": type(e).__name__,
                            },
                        )

            raise RetryExhausted(
                f"Exhausted {retry_policy.max_retries} retries for {func.__name__}",
                attempts=total_attempts,
            ) from last_exception

        return wrapper

    return decorator
