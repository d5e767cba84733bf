"""
Bulk jobs over many device slugs.

A BulkJob runs one job type for every slug with bounded concurrency:

    scrape_fast   fill the HTML cache through ScrapeService.scrape_fast
    process_raw   re-extract raw records from cached HTML
    process_ai    normalize raw records that have no normalized counterpart

Each slug is processed independently; a failure is recorded for that slug
and never affects its siblings. A retryable failure (a bot block on the
scrape path) is requeued after an exponential backoff with jitter until the
item runs out of attempts. A job can be paused and resumed: paused workers
finish their current item and wait before claiming the next one.

Example:
    job = BulkJob(service, BulkJobType.SCRAPE_FAST, concurrency=2)
    summary = await job.run(["apple-iphone-15", "google-pixel-8"])
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from specscraper.core.config import settings
from specscraper.normalization.base import NormalizationError
from specscraper.scraping.errors import ScrapeError
from specscraper.scraping.events import FastScrapeResult, ScrapeFailed
from specscraper.scraping.service import ScrapeService
from specscraper.services.html_cache import HtmlCacheError
from specscraper.services.phone_data import PhoneDataError

logger = logging.getLogger(__name__)


class BulkJobType(str, Enum):
    SCRAPE_FAST = "scrape_fast"
    PROCESS_RAW = "process_raw"
    PROCESS_AI = "process_ai"


@dataclass
class BulkRunSummary:
    """Outcome counts of one bulk run.

    Attributes:
        done: Slugs processed by this run
        cached: Slugs skipped because their HTML was already cached
        failed: Slugs that ended with an error after their last attempt
        requeued: Retryable failures that were scheduled for another attempt
        errors: Final error message per failed slug
    """

    done: int = 0
    cached: int = 0
    failed: int = 0
    requeued: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.done + self.cached + self.failed


@dataclass(frozen=True)
class ItemOutcome:
    status: str  # "done", "cached" or "failed"
    error: str | None = None
    retryable: bool = False


def compute_backoff_seconds(
    attempt: int,
    base_ms: int,
    max_ms: int,
    jitter_ms: int,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay before requeueing an item whose attempt number ``attempt`` failed.

    ``base_ms * 2 ** (attempt - 1)`` plus up to ``jitter_ms`` of jitter,
    capped at ``max_ms``.
    """
    delay_ms = base_ms * 2 ** max(0, attempt - 1) + int(rng() * jitter_ms)
    return min(delay_ms, max_ms) / 1000


class BulkJob:
    """
    Bounded-concurrency runner for one bulk job.

    Args:
        service: Scrape service providing the per-slug operations
        job_type: Operation to run for every slug
        concurrency: Parallel items. Defaults to settings.BULK_CONCURRENCY.
        max_attempts: Attempts per item. Defaults to settings.BULK_MAX_ATTEMPTS.
        retry_base_ms: Backoff after the first failed attempt
        retry_max_ms: Backoff cap
        retry_jitter_ms: Upper bound of the random jitter added to each backoff
        sleep: Awaitable sleep used for backoff delays
        rng: Random source in [0, 1) for jitter
    """

    def __init__(
        self,
        service: ScrapeService,
        job_type: BulkJobType = BulkJobType.SCRAPE_FAST,
        concurrency: int | None = None,
        max_attempts: int | None = None,
        retry_base_ms: int | None = None,
        retry_max_ms: int | None = None,
        retry_jitter_ms: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        if concurrency is None:
            concurrency = settings.BULK_CONCURRENCY
        if max_attempts is None:
            max_attempts = settings.BULK_MAX_ATTEMPTS
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.service = service
        self.job_type = job_type
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.retry_base_ms = retry_base_ms if retry_base_ms is not None else settings.BULK_RETRY_BASE_MS
        self.retry_max_ms = retry_max_ms if retry_max_ms is not None else settings.BULK_RETRY_MAX_MS
        self.retry_jitter_ms = (
            retry_jitter_ms if retry_jitter_ms is not None else settings.BULK_RETRY_JITTER_MS
        )
        self._sleep = sleep
        self._rng = rng
        self._running = asyncio.Event()
        self._running.set()

    # =========================================================================
    # Pause / resume
    # =========================================================================

    @property
    def paused(self) -> bool:
        return not self._running.is_set()

    def pause(self) -> None:
        """Stop claiming new items; items already running finish."""
        if not self.paused:
            logger.info("Bulk job paused", extra={"job_type": self.job_type.value})
        self._running.clear()

    def resume(self) -> None:
        if self.paused:
            logger.info("Bulk job resumed", extra={"job_type": self.job_type.value})
        self._running.set()

    # =========================================================================
    # Items
    # =========================================================================

    async def _scrape_fast(self, slug: str) -> ItemOutcome:
        terminal = None
        async for event in self.service.scrape_fast(slug):
            if isinstance(event, (FastScrapeResult, ScrapeFailed)):
                terminal = event

        if isinstance(terminal, FastScrapeResult):
            return ItemOutcome("cached" if terminal.cached else "done")
        if isinstance(terminal, ScrapeFailed):
            return ItemOutcome("failed", terminal.message, terminal.retryable)
        return ItemOutcome("failed", "Stream ended without a result")

    async def _run_item(self, slug: str) -> ItemOutcome:
        try:
            if self.job_type is BulkJobType.SCRAPE_FAST:
                return await self._scrape_fast(slug)
            if self.job_type is BulkJobType.PROCESS_RAW:
                await self.service.process_raw(slug)
            else:
                await self.service.process_ai(slug)
            return ItemOutcome("done")
        except (ScrapeError, NormalizationError, HtmlCacheError, PhoneDataError) as e:
            return ItemOutcome("failed", str(e))
        except Exception as e:
            logger.exception("Unexpected bulk item error", extra={"slug": slug})
            return ItemOutcome("failed", f"Unexpected error: {e}")

    async def _run_slug(self, slug: str, semaphore: asyncio.Semaphore, summary: BulkRunSummary) -> None:
        for attempt in range(1, self.max_attempts + 1):
            await self._running.wait()
            async with semaphore:
                outcome = await self._run_item(slug)

            if outcome.status == "done":
                summary.done += 1
                return
            if outcome.status == "cached":
                summary.cached += 1
                return

            if not outcome.retryable or attempt >= self.max_attempts:
                summary.failed += 1
                summary.errors[slug] = outcome.error or "Unknown error"
                logger.warning(
                    "Bulk item failed",
                    extra={"slug": slug, "attempt": attempt, "error": summary.errors[slug]},
                )
                return

            delay = compute_backoff_seconds(
                attempt, self.retry_base_ms, self.retry_max_ms, self.retry_jitter_ms, self._rng
            )
            summary.requeued += 1
            logger.warning(
                f"Requeued in {delay:.1f}s: {outcome.error}",
                extra={"slug": slug, "attempt": attempt, "max_attempts": self.max_attempts},
            )
            await self._sleep(delay)

    async def run(self, slugs: Iterable[str]) -> BulkRunSummary:
        """Process every slug once; duplicates are dropped.

        Returns:
            BulkRunSummary with per-outcome counts
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        summary = BulkRunSummary()
        unique_slugs = list(dict.fromkeys(slugs))

        logger.info(
            "Starting bulk job",
            extra={
                "job_type": self.job_type.value,
                "slug_count": len(unique_slugs),
                "concurrency": self.concurrency,
            },
        )
        await asyncio.gather(*(self._run_slug(slug, semaphore, summary) for slug in unique_slugs))
        logger.info(
            "Bulk job finished",
            extra={
                "job_type": self.job_type.value,
                "done": summary.done,
                "cached": summary.cached,
                "failed": summary.failed,
                "requeued": summary.requeued,
            },
        )
        return summary


async def run_bulk_fast(
    service: ScrapeService,
    slugs: Iterable[str],
    concurrency: int | None = None,
    **options: Any,
) -> BulkRunSummary:
    """Run scrape_fast for every slug. Extra options go to BulkJob."""
    job = BulkJob(service, BulkJobType.SCRAPE_FAST, concurrency=concurrency, **options)
    return await job.run(slugs)


async def run_bulk_process_raw(
    service: ScrapeService,
    slugs: Iterable[str],
    concurrency: int | None = None,
    **options: Any,
) -> BulkRunSummary:
    """Re-extract raw records from cached HTML for every slug."""
    job = BulkJob(service, BulkJobType.PROCESS_RAW, concurrency=concurrency, **options)
    return await job.run(slugs)


async def run_bulk_process_ai(
    service: ScrapeService,
    slugs: Iterable[str] | None = None,
    concurrency: int | None = None,
    **options: Any,
) -> BulkRunSummary:
    """Normalize stored raw records.

    Without explicit slugs, every slug that has raw data but no normalized
    record is processed.
    """
    if slugs is None:
        slugs = await service.slugs_needing_ai()
    job = BulkJob(service, BulkJobType.PROCESS_AI, concurrency=concurrency, **options)
    return await job.run(slugs)
