"""
Scrape error types.

Page-validity and infrastructure failures end one scrape attempt. Only the
fast bulk path retries them, and only when they look like a bot block.
"""


class ScrapeError(Exception):
    """Base exception for a failed scrape attempt.

    Attributes:
        message: Human-readable error message
        slug: Device being scraped, when known
        cause: Underlying exception, if any
    """

    def __init__(
        self,
        message: str,
        slug: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.slug = slug
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class BrowserError(ScrapeError):
    """Browser or page could not be created."""


class NavigationError(ScrapeError):
    """Navigation, reload or content retrieval failed."""


class PageInvalidError(ScrapeError):
    """Fetched or cached HTML failed structural validation.

    Attributes:
        reason: Validation failure reason (e.g., "Bot protection: Access denied")
    """

    def __init__(self, reason: str, slug: str | None = None, prefix: str = "Page invalid"):
        super().__init__(f"{prefix}: {reason}", slug=slug)
        self.reason = reason


class ExtractionFailedError(ScrapeError):
    """Extraction hit an unrecoverable error (missing required field, closed page)."""
