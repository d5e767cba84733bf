"""
Scrape orchestration.

This package provides:
- ScrapeService: cache-tiered full scrapes, the fast bulk path and reprocessing
- Bulk jobs with requeue, backoff and pause/resume
- Cache tier selection and stale-while-revalidate refresh
- Bot-block classification and retry policy
- The scrape event stream types
- Playwright browser lifecycle
"""

from specscraper.scraping.bot_block import (
    BOT_BLOCK_SIGNATURES,
    BotBlockRetryPolicy,
    RetryExhausted,
    is_bot_block,
)
from specscraper.scraping.browser import BrowserService
from specscraper.scraping.bulk import (
    BulkJob,
    BulkJobType,
    BulkRunSummary,
    compute_backoff_seconds,
    run_bulk_fast,
    run_bulk_process_ai,
    run_bulk_process_raw,
)
from specscraper.scraping.cache_policy import CacheTier, select_cache_tier
from specscraper.scraping.errors import (
    BrowserError,
    ExtractionFailedError,
    NavigationError,
    PageInvalidError,
    ScrapeError,
)
from specscraper.scraping.events import (
    EventEmitter,
    FastScrapeResult,
    LogEvent,
    ProgressEvent,
    RetryEvent,
    ScrapeEvent,
    ScrapeFailed,
    ScrapeResult,
)
from specscraper.scraping.service import ScrapeService

__all__ = [
    "ScrapeService",
    "BulkJob",
    "BulkJobType",
    "BulkRunSummary",
    "compute_backoff_seconds",
    "run_bulk_fast",
    "run_bulk_process_ai",
    "run_bulk_process_raw",
    "CacheTier",
    "select_cache_tier",
    "BOT_BLOCK_SIGNATURES",
    "BotBlockRetryPolicy",
    "RetryExhausted",
    "is_bot_block",
    "BrowserService",
    "BrowserError",
    "ExtractionFailedError",
    "NavigationError",
    "PageInvalidError",
    "ScrapeError",
    "EventEmitter",
    "FastScrapeResult",
    "LogEvent",
    "ProgressEvent",
    "RetryEvent",
    "ScrapeEvent",
    "ScrapeFailed",
    "ScrapeResult",
]
