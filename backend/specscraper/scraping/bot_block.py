"""
Bot-block classification and the fast path's retry policy.

A failure is a bot block when it is a PageInvalidError, or when its message
carries one of the signatures the validators and navigation errors use.
Both checks must agree with the messages produced in validators.py.
"""

from dataclasses import dataclass

from specscraper.core.config import settings
from specscraper.normalization.retry import RetryExhausted
from specscraper.scraping.errors import PageInvalidError

BOT_BLOCK_SIGNATURES: tuple[str, ...] = ("Bot protection", "Page blocked", "Page invalid")


def is_bot_block(error: BaseException) -> bool:
    """Whether a failed attempt is worth a reload-and-retry."""
    if isinstance(error, PageInvalidError):
        return True
    message = str(error)
    return any(signature in message for signature in BOT_BLOCK_SIGNATURES)


@dataclass(frozen=True)
class BotBlockRetryPolicy:
    """Bounded retry for bot-blocked fetches.

    Attributes:
        max_attempts: Total attempts, including the first
        delay_seconds: Fixed wait before the page is reloaded
    """

    max_attempts: int = settings.FAST_MAX_ATTEMPTS
    delay_seconds: float = settings.RETRY_DELAY_MS / 1000

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be non-negative")

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """True when another attempt should follow the failed one.

        Args:
            error: Failure of the attempt
            attempt: 1-based number of the failed attempt
        """
        return is_bot_block(error) and attempt < self.max_attempts

    def exhausted(self, error: BaseException, attempts: int) -> RetryExhausted:
        exc = RetryExhausted(str(error), attempts=attempts)
        exc.__cause__ = error
        return exc


__all__ = [
    "BOT_BLOCK_SIGNATURES",
    "BotBlockRetryPolicy",
    "RetryExhausted",
    "is_bot_block",
]
