"""
Scrape orchestrator.

ScrapeService.scrape() answers a device request from the cheapest usable
source:

    CheckingCache -> UsingFreshCache | UsingStaleCacheWithBackgroundRefresh | FetchingLive
                  -> Extracting -> Persisting -> Done | Failed

A stale cache entry is parsed to answer the caller and a background task
refreshes it; the task is never awaited by the invocation. A missing or
expired entry is fetched live. The result is normalized by the AI service
and persisted.

ScrapeService.scrape_fast() is the bulk backfill path: it only fills the
cache on a miss, never normalizes, and retries bot-blocked fetches with a
reload.

Both methods are async generators yielding events from
specscraper.scraping.events. The last event is always terminal (a result or
ScrapeFailed); failures are reported in the stream, not raised.

process_raw() and process_ai() reprocess stored data for bulk jobs: the first
re-extracts a raw record from cached HTML, the second normalizes a stored raw
record. Unlike the streams they raise on failure.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from playwright.async_api import Error as PlaywrightError

from specscraper.core.config import DAY_SECONDS, settings
from specscraper.extraction.base import ExtractionError
from specscraper.extraction.extractors import extract_phone_data, log_extraction_issues
from specscraper.extraction.schemas import PhoneData, RawPhoneData
from specscraper.extraction.validators import HtmlValidator as DefaultHtmlValidator
from specscraper.normalization.base import NormalizationError
from specscraper.normalization.retry import RetryExhausted
from specscraper.observability import (
    background_refreshes_total,
    cache_decisions_total,
    scrape_duration_seconds,
    scrape_retries_total,
    scrapes_total,
    tracer,
)
from specscraper.scraping.base import (
    BrowserProvider,
    HtmlCache,
    HtmlValidator,
    Normalizer,
    PhoneDataStore,
)
from specscraper.scraping.bot_block import BotBlockRetryPolicy, is_bot_block
from specscraper.scraping.cache_policy import CacheTier, select_cache_tier
from specscraper.scraping.errors import (
    ExtractionFailedError,
    NavigationError,
    PageInvalidError,
    ScrapeError,
)
from specscraper.scraping.events import (
    EventEmitter,
    FastScrapeResult,
    ScrapeEvent,
    ScrapeFailed,
    ScrapeResult,
)
from specscraper.services.html_cache import CachedHtml, HtmlCacheError
from specscraper.services.phone_data import PhoneDataError

logger = logging.getLogger(__name__)


class ScrapeService:
    """
    Cache-aware scraper with a progressive event stream.

    Collaborators are injected; ScrapeService.from_settings() wires the
    Playwright, SQLAlchemy and OpenAI defaults.

    Example:
        service = ScrapeService.from_settings()
        async for event in service.scrape("apple-iphone-15"):
            print(event.model_dump_json())
    """

    def __init__(
        self,
        browsers: BrowserProvider,
        html_cache: HtmlCache,
        phone_data: PhoneDataStore,
        normalizer: Normalizer,
        validator: HtmlValidator | None = None,
        retry_policy: BotBlockRetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        url_template: str | None = None,
        navigation_timeout_ms: int | None = None,
        reload_timeout_ms: int | None = None,
        rate_limit_delay_ms: int | None = None,
    ):
        """
        Initialize the scrape service.

        Args:
            browsers: Scoped browser/page provider
            html_cache: Age-aware raw HTML cache
            phone_data: Raw and normalized record store
            normalizer: AI normalization service
            validator: HTML structural checker. Defaults to the built-in validator.
            retry_policy: Fast-path bot-block retry policy
            sleep: Awaitable sleep used for rate-limit and retry delays
            clock: Monotonic clock (seconds) used for step timings
            url_template: Device page URL with a {slug} placeholder
            navigation_timeout_ms: Timeout for page navigation
            reload_timeout_ms: Timeout for the retry reload
            rate_limit_delay_ms: Pause before each fast-path fetch
        """
        self._browsers = browsers
        self._html_cache = html_cache
        self._phone_data = phone_data
        self._normalizer = normalizer
        self._validator = validator or DefaultHtmlValidator()
        self._retry_policy = retry_policy or BotBlockRetryPolicy()
        self._sleep = sleep
        self._clock = clock
        self._url_template = url_template or settings.SCRAPE_URL_TEMPLATE
        self._navigation_timeout_ms = navigation_timeout_ms or settings.NAVIGATION_TIMEOUT_MS
        self._reload_timeout_ms = reload_timeout_ms or settings.RELOAD_TIMEOUT_MS
        self._rate_limit_delay_ms = (
            rate_limit_delay_ms if rate_limit_delay_ms is not None else settings.RATE_LIMIT_DELAY_MS
        )
        # Strong references keep fire-and-forget refreshes alive until they finish
        self._background_tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(cls) -> "ScrapeService":
        from specscraper.normalization.openai_normalizer import OpenAINormalizationService
        from specscraper.observability import setup_observability
        from specscraper.scraping.browser import BrowserService
        from specscraper.services.html_cache import HtmlCacheService
        from specscraper.services.phone_data import PhoneDataService

        setup_observability()
        return cls(
            browsers=BrowserService(),
            html_cache=HtmlCacheService(),
            phone_data=PhoneDataService(),
            normalizer=OpenAINormalizationService.from_settings(),
        )

    def url_for(self, slug: str) -> str:
        return self._url_template.format(slug=slug)

    # =========================================================================
    # Page operations
    # =========================================================================

    async def _fetch_and_extract(
        self, page: Any, slug: str, navigate: bool = True
    ) -> tuple[RawPhoneData, str]:
        """Load the device page, validate it and extract a raw record.

        Args:
            page: Open page handle
            slug: Device identifier
            navigate: False to read the page as it is (after a reload)

        Returns:
            Tuple of (raw record, full page HTML)

        Raises:
            NavigationError: If navigation or content retrieval fails
            PageInvalidError: If the page is a bot challenge or malformed
            ExtractionFailedError: If extraction hits an unrecoverable error
        """
        with tracer.start_as_current_span("scrape.fetch_and_extract") as span:
            span.set_attribute("slug", slug)
            span.set_attribute("navigate", navigate)

            if navigate:
                try:
                    await page.goto(
                        self.url_for(slug),
                        wait_until="domcontentloaded",
                        timeout=self._navigation_timeout_ms,
                    )
                except PlaywrightError as e:
                    raise NavigationError(f"Navigation failed: {e.message}", slug=slug, cause=e) from e

            try:
                html = await page.content()
            except PlaywrightError as e:
                raise NavigationError(f"Failed to read page content: {e.message}", slug=slug, cause=e) from e

            reason = self._validator.validate(html)
            if reason:
                span.set_attribute("invalid_reason", reason)
                raise PageInvalidError(reason, slug=slug)

            data = await self._extract(page, slug)
            return data, html

    async def _extract(self, page: Any, slug: str) -> RawPhoneData:
        try:
            result = await extract_phone_data(page, slug)
        except ExtractionError as e:
            raise ExtractionFailedError(f"Extraction failed: {e}", slug=slug, cause=e) from e
        log_extraction_issues(result.issues, slug)
        return result.data

    async def _parse_cached(self, page: Any, html: str, slug: str) -> RawPhoneData:
        """Extract a raw record from cached HTML loaded into a local page.

        Raises:
            PageInvalidError: If the cached HTML fails validation
            NavigationError: If the HTML cannot be loaded into the page
            ExtractionFailedError: If extraction hits an unrecoverable error
        """
        reason = self._validator.validate(html)
        if reason:
            raise PageInvalidError(reason, slug=slug, prefix="Cached page invalid")

        try:
            await page.set_content(html, wait_until="domcontentloaded")
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load cached HTML: {e.message}", slug=slug, cause=e) from e

        return await self._extract(page, slug)

    async def _reload(self, page: Any, slug: str) -> bool:
        """Reload after a bot block. Returns False when the reload failed."""
        try:
            await page.reload(wait_until="domcontentloaded", timeout=self._reload_timeout_ms)
        except PlaywrightError as e:
            logger.warning(f"Reload failed: {e.message}", extra={"slug": slug})
            return False
        return True

    # =========================================================================
    # Persistence (failures downgraded to warnings)
    # =========================================================================

    async def _read_cache(self, slug: str) -> CachedHtml | None:
        try:
            return await self._html_cache.get_raw_html_with_age(slug)
        except HtmlCacheError as e:
            logger.warning("Cache check failed", extra={"slug": slug, "error": str(e)})
            return None

    async def _save_html(self, slug: str, html: str) -> None:
        try:
            await self._html_cache.save_raw_html(slug, html)
        except HtmlCacheError as e:
            logger.warning("Failed to cache HTML", extra={"slug": slug, "error": str(e)})

    async def _save_raw(self, slug: str, data: RawPhoneData) -> None:
        try:
            await self._phone_data.save_raw(slug, data)
        except PhoneDataError as e:
            logger.warning("Failed to save raw data", extra={"slug": slug, "error": str(e)})

    async def _save_normalized(self, slug: str, data: PhoneData) -> None:
        try:
            await self._phone_data.save(slug, data)
        except PhoneDataError as e:
            logger.warning("Failed to save phone data", extra={"slug": slug, "error": str(e)})

    # =========================================================================
    # Background refresh
    # =========================================================================

    def _spawn_background_refresh(self, slug: str) -> asyncio.Task[None]:
        task = asyncio.create_task(self._background_refresh(slug), name=f"swr-refresh:{slug}")
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _background_refresh(self, slug: str) -> None:
        logger.info("Starting background refresh", extra={"slug": slug})
        try:
            async with self._browsers.browser() as browser:
                async with self._browsers.page(browser) as page:
                    await self._browsers.abort_extra_resources(page)
                    data, html = await self._fetch_and_extract(page, slug)
            await self._save_html(slug, html)
            await self._save_raw(slug, data)
        except Exception as e:
            # The caller was already answered from the stale entry
            background_refreshes_total.labels(outcome="failed").inc()
            logger.error(f"Background refresh failed: {e}", extra={"slug": slug})
            return

        background_refreshes_total.labels(outcome="success").inc()
        logger.info("Background refresh complete", extra={"slug": slug})

    @property
    def pending_background_tasks(self) -> int:
        return len(self._background_tasks)

    async def drain_background_tasks(self) -> None:
        """Wait for outstanding background refreshes (shutdown, tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # =========================================================================
    # Reprocessing stored data
    # =========================================================================

    async def process_raw(self, slug: str) -> RawPhoneData:
        """Re-extract the raw record from cached HTML and store it.

        Raises:
            ScrapeError: If no HTML is cached or it cannot be parsed
            HtmlCacheError: If the cache cannot be read
            PhoneDataError: If the raw record cannot be saved
        """
        html = await self._html_cache.get_raw_html(slug)
        if not html:
            raise ScrapeError(f"No cached HTML for slug: {slug}", slug=slug)

        async with self._browsers.local_browser() as browser:
            async with self._browsers.page(browser) as page:
                data = await self._parse_cached(page, html, slug)

        await self._phone_data.save_raw(slug, data)
        logger.info("Reprocessed cached HTML", extra={"slug": slug})
        return data

    async def process_ai(self, slug: str) -> PhoneData:
        """Normalize a stored raw record and store the result.

        Raises:
            ScrapeError: If there is no raw record for the slug
            NormalizationError: If normalization fails
            PhoneDataError: If the records cannot be read or saved
        """
        raw = await self._phone_data.get_raw(slug)
        if raw is None:
            raise ScrapeError(f"No raw data for slug: {slug}", slug=slug)

        started = self._clock()
        normalized = await self._normalizer.normalize(raw)
        await self._phone_data.save(slug, normalized)
        logger.info(
            "Normalized stored raw data",
            extra={"slug": slug, "duration_ms": int((self._clock() - started) * 1000)},
        )
        return normalized

    async def slugs_needing_ai(self) -> list[str]:
        return await self._phone_data.get_slugs_needing_ai()

    # =========================================================================
    # Full scrape
    # =========================================================================

    async def scrape(self, slug: str) -> AsyncIterator[ScrapeEvent]:
        """Scrape one device, serving from cache when possible.

        Yields progress, log and finally ScrapeResult or ScrapeFailed.
        """
        emitter = EventEmitter(self._clock)
        started = time.perf_counter()

        yield emitter.progress("Checking cache", 1)
        yield emitter.log(f"Starting scrape: {slug}")

        cached = await self._read_cache(slug)
        cache_check_ms = emitter.elapsed_ms()
        tier = select_cache_tier(cached.age_seconds if cached else None)
        cache_decisions_total.labels(tier=tier.value).inc()

        data: RawPhoneData | None = None
        try:
            if cached is not None and tier is not CacheTier.MISS:
                age_days = int(cached.age_seconds // DAY_SECONDS)
                swr_note = " (SWR)" if tier is CacheTier.STALE else ""
                yield emitter.progress(f"Cache found ({age_days}d)", 3, cache_check_ms)
                yield emitter.log(f"[Cache] hit slug={slug} ageDays={age_days}{swr_note}")
                yield emitter.progress("Starting local browser", 5)

                try:
                    async with self._browsers.local_browser() as browser:
                        yield emitter.progress("Browser ready", 8, emitter.elapsed_ms())
                        async with self._browsers.page(browser) as page:
                            yield emitter.progress("Parsing cached HTML", 10)
                            data = await self._parse_cached(page, cached.html, slug)
                except ScrapeError as e:
                    data = None
                    yield emitter.log(
                        f"[Cache] parse failed, falling back to fresh fetch: {e}", "warn"
                    )

                if data is not None:
                    parse_ms = emitter.elapsed_ms()
                    yield emitter.progress("Data extracted", 15, parse_ms)
                    yield emitter.log(f"Cache parsed in {parse_ms}ms: {data.summary}")

                    if tier is CacheTier.STALE:
                        yield emitter.log("[SWR] Triggering background refresh (cache age > 30d)")
                        self._spawn_background_refresh(slug)

            if data is None:
                yield emitter.progress(
                    "Cache expired" if cached else "Cache empty", 2, cache_check_ms
                )
                yield emitter.log(f"[Cache] {'stale' if cached else 'miss'} slug={slug}")
                yield emitter.progress("Starting browser", 3)

                async with self._browsers.browser() as browser:
                    browser_ms = emitter.elapsed_ms()
                    yield emitter.progress("Browser ready", 5, browser_ms)
                    yield emitter.log(f"Browser started in {browser_ms}ms")

                    async with self._browsers.page(browser) as page:
                        await self._browsers.abort_extra_resources(page)
                        yield emitter.progress("Loading page", 8)
                        yield emitter.log(f"Navigating to {self.url_for(slug)}...")
                        data, html = await self._fetch_and_extract(page, slug)

                scrape_ms = emitter.elapsed_ms()
                yield emitter.progress("Data extracted", 15, scrape_ms)
                yield emitter.log(f"Page loaded in {scrape_ms}ms: {data.summary}")

                await self._save_html(slug, html)
                await self._save_raw(slug, data)

            yield emitter.progress("AI normalization", 20)
            yield emitter.log("Normalizing data...")

            normalized = await self._normalizer.normalize(data)
            ai_ms = emitter.elapsed_ms()
            logger.info(
                "Normalization finished",
                extra={"slug": slug, "duration_ms": ai_ms},
            )

            total_ms = emitter.total_ms()
            yield emitter.progress("Done", 100, total_ms)
            yield emitter.log(f"AI: {ai_ms / 1000:.1f}s | Total: {total_ms / 1000:.1f}s")

            await self._save_normalized(slug, normalized)
        except (ScrapeError, NormalizationError) as e:
            scrapes_total.labels(mode="full", outcome="failed").inc()
            logger.error(f"Scrape failed: {e}", extra={"slug": slug})
            yield ScrapeFailed(slug=slug, message=str(e), retryable=is_bot_block(e))
            return
        except Exception as e:
            scrapes_total.labels(mode="full", outcome="failed").inc()
            logger.exception("Unexpected scrape error", extra={"slug": slug})
            yield ScrapeFailed(slug=slug, message=f"Unexpected error: {e}", retryable=False)
            return
        finally:
            scrape_duration_seconds.labels(mode="full").observe(time.perf_counter() - started)

        scrapes_total.labels(mode="full", outcome="success").inc()
        yield ScrapeResult(slug=slug, data=normalized)

    # =========================================================================
    # Fast scrape
    # =========================================================================

    async def scrape_fast(self, slug: str) -> AsyncIterator[ScrapeEvent]:
        """Cache a device page without AI normalization.

        An existing cache entry ends the stream at once. Otherwise the page is
        fetched after the rate-limit delay, retrying bot blocks with a reload.
        Yields progress, log, retry and finally FastScrapeResult or ScrapeFailed.
        """
        emitter = EventEmitter(self._clock)
        started = time.perf_counter()
        policy = self._retry_policy

        yield emitter.progress("Checking cache", 1)
        yield emitter.log(f"[Fast] Starting scrape: {slug}")

        try:
            existing = await self._html_cache.get_raw_html(slug)
        except HtmlCacheError as e:
            logger.warning("Cache read failed", extra={"slug": slug, "error": str(e)})
            existing = None

        if existing:
            total_ms = emitter.total_ms()
            scrapes_total.labels(mode="fast", outcome="cached").inc()
            yield emitter.progress("Cache found", 100, total_ms)
            yield emitter.log(f"[Fast] Already cached, skipping ({total_ms}ms)")
            yield FastScrapeResult(slug=slug, cached=True)
            return

        yield emitter.progress("Starting browser", 5)
        yield emitter.log(f"Rate limit: waiting {self._rate_limit_delay_ms}ms...")
        await self._sleep(self._rate_limit_delay_ms / 1000)

        data: RawPhoneData | None = None
        html = ""
        try:
            async with self._browsers.browser() as browser:
                browser_ms = emitter.elapsed_ms()
                yield emitter.progress("Browser ready", 15, browser_ms)
                yield emitter.log(f"Browser started in {browser_ms}ms")

                async with self._browsers.page(browser) as page:
                    await self._browsers.abort_extra_resources(page)

                    navigate = True
                    for attempt in range(1, policy.max_attempts + 1):
                        yield emitter.progress(
                            f"Loading page (attempt {attempt}/{policy.max_attempts})",
                            20 + (attempt - 1) * 15,
                        )
                        yield emitter.log(
                            f"Attempt {attempt}/{policy.max_attempts}: {self.url_for(slug)}..."
                        )

                        try:
                            data, html = await self._fetch_and_extract(page, slug, navigate=navigate)
                            break
                        except ScrapeError as e:
                            last_error = e

                        if not policy.should_retry(last_error, attempt):
                            if is_bot_block(last_error):
                                raise policy.exhausted(last_error, attempt)
                            raise last_error

                        scrape_retries_total.labels(reason="bot_block").inc()
                        yield emitter.retry(
                            attempt=attempt,
                            max_attempts=policy.max_attempts,
                            delay_seconds=policy.delay_seconds,
                            reason=last_error.message,
                        )
                        yield emitter.log(
                            f"Attempt {attempt} failed: {last_error.message}. "
                            f"Retrying in {policy.delay_seconds:g}s...",
                            "warn",
                        )
                        await self._sleep(policy.delay_seconds)
                        navigate = not await self._reload(page, slug)
        except (ScrapeError, RetryExhausted) as e:
            scrapes_total.labels(mode="fast", outcome="failed").inc()
            scrape_duration_seconds.labels(mode="fast").observe(time.perf_counter() - started)
            logger.error(f"Fast scrape failed: {e}", extra={"slug": slug})
            yield ScrapeFailed(slug=slug, message=str(e), retryable=is_bot_block(e))
            return
        except Exception as e:
            scrapes_total.labels(mode="fast", outcome="failed").inc()
            scrape_duration_seconds.labels(mode="fast").observe(time.perf_counter() - started)
            logger.exception("Unexpected fast scrape error", extra={"slug": slug})
            yield ScrapeFailed(slug=slug, message=f"Unexpected error: {e}", retryable=False)
            return

        scrape_ms = emitter.elapsed_ms()
        yield emitter.progress("Data extracted", 70, scrape_ms)
        yield emitter.log(f"Page loaded in {scrape_ms}ms: {data.summary}")

        await self._save_html(slug, html)
        await self._save_raw(slug, data)
        yield emitter.progress("Data saved", 90)
        yield emitter.log("Raw HTML and phone data saved")

        total_ms = emitter.total_ms()
        scrapes_total.labels(mode="fast", outcome="success").inc()
        scrape_duration_seconds.labels(mode="fast").observe(time.perf_counter() - started)
        yield emitter.progress("Done (fast)", 100, total_ms)
        yield emitter.log(f"Fast scrape finished in {total_ms / 1000:.1f}s (no AI)")
        yield FastScrapeResult(slug=slug, cached=False, data=data)
