"""
Unit tests for ScrapeService.scrape (the full, cache-aware path).

Tests cover:
- Fresh, stale and expired cache tiers
- Background refresh spawned without being awaited
- Fallback from an unparseable cache entry to a live fetch
- Failures reported as a terminal ScrapeFailed event
- Scoped browser resources released on every path
- Reprocessing of cached HTML and stored raw records
"""

from datetime import datetime, timezone

import pytest

from specscraper.core.config import DAY_SECONDS
from specscraper.normalization.base import NormalizationError
from specscraper.scraping.errors import BrowserError, PageInvalidError, ScrapeError
from specscraper.scraping.events import LogEvent, ScrapeFailed, ScrapeResult
from specscraper.services.html_cache import CachedHtml, HtmlCacheError
from specscraper.services.phone_data import PhoneDataError

SLUG = "samsung-galaxy-s24"


def cached_entry(html: str, age_days: float) -> CachedHtml:
    return CachedHtml(
        html=html,
        fetched_at=datetime.now(timezone.utc),
        age_seconds=age_days * DAY_SECONDS,
    )


def stages(events) -> list[str]:
    return [e.stage for e in events if e.type == "progress"]


def percents(events) -> list[int]:
    return [e.percent for e in events if e.type == "progress"]


def logs(events) -> list[LogEvent]:
    return [e for e in events if e.type == "log"]


# =============================================================================
# Cache hits
# =============================================================================


class TestFreshCache:
    """Entries younger than 30 days are parsed locally and never refreshed."""

    @pytest.mark.asyncio
    async def test_fresh_hit_skips_live_fetch(
        self, make_service, make_browsers, page_factory, collect_events,
        html_cache, phone_store, normalizer, normalized_phone, mock_extract, device_html,
    ):
        html_cache.get_raw_html_with_age.return_value = cached_entry(device_html, 10)
        browsers = make_browsers(page=page_factory())
        service = make_service(browsers)

        events = await collect_events(service.scrape(SLUG))

        assert stages(events) == [
            "Checking cache",
            "Cache found (10d)",
            "Starting local browser",
            "Browser ready",
            "Parsing cached HTML",
            "Data extracted",
            "AI normalization",
            "Done",
        ]
        assert percents(events) == [1, 3, 5, 8, 10, 15, 20, 100]
        assert isinstance(events[-1], ScrapeResult)
        assert events[-1].data == normalized_phone

        assert browsers.opened["browser"] == 0
        assert browsers.opened["local_browser"] == 1
        assert browsers.all_closed
        browsers.page_double.set_content.assert_awaited_once()
        browsers.page_double.goto.assert_not_awaited()

        html_cache.save_raw_html.assert_not_awaited()
        phone_store.save_raw.assert_not_awaited()
        phone_store.save.assert_awaited_once_with(SLUG, normalized_phone)
        assert service.pending_background_tasks == 0

    @pytest.mark.asyncio
    async def test_cache_log_reports_age(
        self, make_service, make_browsers, collect_events, html_cache, mock_extract, device_html
    ):
        html_cache.get_raw_html_with_age.return_value = cached_entry(device_html, 10.7)

        events = await collect_events(make_service(make_browsers()).scrape(SLUG))

        messages = [e.message for e in logs(events)]
        assert f"[Cache] hit slug={SLUG} ageDays=10" in messages


class TestStaleCache:
    """Entries between 30 and 90 days answer the caller and refresh in the background."""

    @pytest.mark.asyncio
    async def test_stale_hit_spawns_unawaited_refresh(
        self, make_service, make_browsers, page_factory, collect_events,
        html_cache, phone_store, mock_extract, device_html, gate,
    ):
        html_cache.get_raw_html_with_age.return_value = cached_entry(device_html, 45)
        browsers = make_browsers(page=page_factory(device_html), gate=gate)
        service = make_service(browsers)

        events = await collect_events(service.scrape(SLUG))

        # The caller's stream finished while the refresh is still blocked
        assert isinstance(events[-1], ScrapeResult)
        assert "Cache found (45d)" in stages(events)
        messages = [e.message for e in logs(events)]
        assert f"[Cache] hit slug={SLUG} ageDays=45 (SWR)" in messages
        assert "[SWR] Triggering background refresh (cache age > 30d)" in messages
        assert service.pending_background_tasks == 1
        html_cache.save_raw_html.assert_not_awaited()

        gate.set()
        await service.drain_background_tasks()

        assert service.pending_background_tasks == 0
        html_cache.save_raw_html.assert_awaited_once_with(SLUG, device_html)
        phone_store.save_raw.assert_awaited_once()
        browsers.page_double.goto.assert_awaited_once()
        assert browsers.all_closed

    @pytest.mark.asyncio
    async def test_background_failure_is_swallowed(
        self, make_service, make_browsers, collect_events, html_cache, mock_extract, device_html
    ):
        html_cache.get_raw_html_with_age.return_value = cached_entry(device_html, 60)
        browsers = make_browsers(browser_error=BrowserError("Failed to create browser: refused"))
        service = make_service(browsers)

        events = await collect_events(service.scrape(SLUG))
        await service.drain_background_tasks()

        assert isinstance(events[-1], ScrapeResult)
        assert service.pending_background_tasks == 0
        html_cache.save_raw_html.assert_not_awaited()


# =============================================================================
# Live fetches
# =============================================================================


class TestLiveFetch:
    """Expired or missing entries are fetched through the remote browser."""

    @pytest.mark.asyncio
    async def test_expired_entry_fetches_live(
        self, make_service, make_browsers, page_factory, collect_events,
        html_cache, phone_store, normalized_phone, raw_phone, mock_extract, device_html,
    ):
        html_cache.get_raw_html_with_age.return_value = cached_entry(device_html, 120)
        browsers = make_browsers(page=page_factory(device_html))
        service = make_service(browsers)

        events = await collect_events(service.scrape(SLUG))

        assert "Cache expired" in stages(events)
        assert f"[Cache] stale slug={SLUG}" in [e.message for e in logs(events)]
        assert isinstance(events[-1], ScrapeResult)

        assert browsers.opened["local_browser"] == 0
        assert browsers.opened["browser"] == 1
        assert browsers.aborted == 1
        browsers.page_double.goto.assert_awaited_once()
        assert browsers.page_double.goto.await_args.args == (f"https://example.com/{SLUG}",)

        html_cache.save_raw_html.assert_awaited_once_with(SLUG, device_html)
        phone_store.save_raw.assert_awaited_once_with(SLUG, raw_phone)
        phone_store.save.assert_awaited_once_with(SLUG, normalized_phone)
        assert service.pending_background_tasks == 0

    @pytest.mark.asyncio
    async def test_no_entry_progress_is_monotonic(
        self, make_service, make_browsers, page_factory, collect_events, mock_extract, device_html
    ):
        service = make_service(make_browsers(page=page_factory(device_html)))

        events = await collect_events(service.scrape(SLUG))

        assert stages(events)[:3] == ["Checking cache", "Cache empty", "Starting browser"]
        assert percents(events) == [1, 2, 3, 5, 8, 15, 20, 100]
        assert sum(isinstance(e, (ScrapeResult, ScrapeFailed)) for e in events) == 1

    @pytest.mark.asyncio
    async def test_cache_read_error_is_a_miss(
        self, make_service, make_browsers, page_factory, collect_events,
        html_cache, mock_extract, device_html,
    ):
        html_cache.get_raw_html_with_age.side_effect = HtmlCacheError("database is locked")
        browsers = make_browsers(page=page_factory(device_html))

        events = await collect_events(make_service(browsers).scrape(SLUG))

        assert "Cache empty" in stages(events)
        assert isinstance(events[-1], ScrapeResult)
        assert browsers.opened["browser"] == 1

    @pytest.mark.asyncio
    async def test_unparseable_cache_falls_back_to_live(
        self, make_service, make_browsers, page_factory, collect_events,
        html_cache, mock_extract, device_html, bot_challenge_html,
    ):
        """A cached challenge page is never parsed; the device is fetched live."""
        html_cache.get_raw_html_with_age.return_value = cached_entry(bot_challenge_html, 5)
        browsers = make_browsers(page=page_factory(device_html))

        events = await collect_events(make_service(browsers).scrape(SLUG))

        warnings = [e for e in logs(events) if e.level == "warn"]
        assert len(warnings) == 1
        assert warnings[0].message.startswith("[Cache] parse failed, falling back to fresh fetch")
        assert "Cached page invalid: Bot protection" in warnings[0].message

        assert "Cache expired" in stages(events)
        assert percents(events) == sorted(percents(events))
        assert isinstance(events[-1], ScrapeResult)
        assert browsers.opened["local_browser"] == 1
        assert browsers.opened["browser"] == 1
        assert browsers.all_closed
        browsers.page_double.set_content.assert_not_awaited()


# =============================================================================
# Failures
# =============================================================================


class TestScrapeFailures:
    """Failures end the stream with ScrapeFailed instead of raising."""

    @pytest.mark.asyncio
    async def test_bot_block_fails_without_retry(
        self, make_service, make_browsers, page_factory, collect_events,
        phone_store, normalizer, mock_extract, bot_challenge_html,
    ):
        browsers = make_browsers(page=page_factory(bot_challenge_html))

        events = await collect_events(make_service(browsers).scrape(SLUG))

        terminal = events[-1]
        assert isinstance(terminal, ScrapeFailed)
        assert terminal.slug == SLUG
        assert terminal.message == "Page invalid: Bot protection: JavaScript/cookies required"
        assert terminal.retryable is True
        assert not any(e.type == "retry" for e in events)

        browsers.page_double.goto.assert_awaited_once()
        mock_extract.assert_not_awaited()
        normalizer.normalize.assert_not_awaited()
        phone_store.save_raw.assert_not_awaited()
        assert browsers.all_closed

    @pytest.mark.asyncio
    async def test_browser_error_is_reported(self, make_service, make_browsers, collect_events):
        browsers = make_browsers(browser_error=BrowserError("BROWSER_WS_ENDPOINT is not configured"))

        events = await collect_events(make_service(browsers).scrape(SLUG))

        assert isinstance(events[-1], ScrapeFailed)
        assert events[-1].message == "BROWSER_WS_ENDPOINT is not configured"
        assert events[-1].retryable is False

    @pytest.mark.asyncio
    async def test_normalization_failure_skips_normalized_save(
        self, make_service, make_browsers, page_factory, collect_events,
        html_cache, phone_store, normalizer, mock_extract, device_html,
    ):
        normalizer.normalize.side_effect = NormalizationError("Model returned invalid JSON")
        service = make_service(make_browsers(page=page_factory(device_html)))

        events = await collect_events(service.scrape(SLUG))

        assert isinstance(events[-1], ScrapeFailed)
        assert events[-1].message == "Model returned invalid JSON"
        assert events[-1].retryable is False
        # The raw layer was persisted before normalization
        html_cache.save_raw_html.assert_awaited_once()
        phone_store.save_raw.assert_awaited_once()
        phone_store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_persistence_failures_do_not_fail_scrape(
        self, make_service, make_browsers, page_factory, collect_events,
        html_cache, phone_store, mock_extract, device_html,
    ):
        html_cache.save_raw_html.side_effect = HtmlCacheError("disk full")
        phone_store.save_raw.side_effect = PhoneDataError("disk full")
        phone_store.save.side_effect = PhoneDataError("disk full")
        service = make_service(make_browsers(page=page_factory(device_html)))

        events = await collect_events(service.scrape(SLUG))

        assert isinstance(events[-1], ScrapeResult)
        phone_store.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_error_ends_stream(
        self, make_service, make_browsers, page_factory, collect_events,
        phone_store, normalizer, mock_extract, device_html,
    ):
        mock_extract.side_effect = ValueError("could not convert string to float: '.'")
        browsers = make_browsers(page=page_factory(device_html))

        events = await collect_events(make_service(browsers).scrape(SLUG))

        terminal = events[-1]
        assert isinstance(terminal, ScrapeFailed)
        assert terminal.message == "Unexpected error: could not convert string to float: '.'"
        assert terminal.retryable is False
        normalizer.normalize.assert_not_awaited()
        phone_store.save_raw.assert_not_awaited()
        assert browsers.all_closed


# =============================================================================
# Reprocessing stored data
# =============================================================================


class TestProcessRaw:
    """Tests for process_raw (cached HTML to raw record)."""

    @pytest.mark.asyncio
    async def test_reextracts_cached_html(
        self, make_service, make_browsers, html_cache, phone_store, raw_phone, mock_extract, device_html
    ):
        html_cache.get_raw_html.return_value = device_html
        browsers = make_browsers()

        data = await make_service(browsers).process_raw(SLUG)

        assert data == raw_phone
        browsers.page_double.set_content.assert_awaited_once()
        browsers.page_double.goto.assert_not_awaited()
        phone_store.save_raw.assert_awaited_once_with(SLUG, raw_phone)
        assert browsers.opened["local_browser"] == 1
        assert browsers.all_closed

    @pytest.mark.asyncio
    async def test_missing_html(self, make_service, make_browsers, phone_store, mock_extract):
        with pytest.raises(ScrapeError, match=f"No cached HTML for slug: {SLUG}"):
            await make_service(make_browsers()).process_raw(SLUG)

        phone_store.save_raw.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_cached_html(
        self, make_service, make_browsers, html_cache, phone_store, mock_extract, bot_challenge_html
    ):
        html_cache.get_raw_html.return_value = bot_challenge_html
        browsers = make_browsers()

        with pytest.raises(PageInvalidError, match="^Cached page invalid: Bot protection"):
            await make_service(browsers).process_raw(SLUG)

        mock_extract.assert_not_awaited()
        phone_store.save_raw.assert_not_awaited()
        assert browsers.all_closed


class TestProcessAi:
    """Tests for process_ai (stored raw record to normalized record)."""

    @pytest.mark.asyncio
    async def test_normalizes_stored_raw(
        self, make_service, make_browsers, phone_store, normalizer, raw_phone, normalized_phone
    ):
        phone_store.get_raw.return_value = raw_phone
        browsers = make_browsers()

        result = await make_service(browsers).process_ai(SLUG)

        assert result == normalized_phone
        normalizer.normalize.assert_awaited_once_with(raw_phone)
        phone_store.save.assert_awaited_once_with(SLUG, normalized_phone)
        assert browsers.opened == {"browser": 0, "local_browser": 0, "page": 0}

    @pytest.mark.asyncio
    async def test_missing_raw(self, make_service, make_browsers, phone_store, normalizer):
        phone_store.get_raw.return_value = None

        with pytest.raises(ScrapeError, match=f"No raw data for slug: {SLUG}"):
            await make_service(make_browsers()).process_ai(SLUG)

        normalizer.normalize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_normalization_error_propagates(
        self, make_service, make_browsers, phone_store, normalizer, raw_phone
    ):
        phone_store.get_raw.return_value = raw_phone
        normalizer.normalize.side_effect = NormalizationError("Model returned invalid JSON")

        with pytest.raises(NormalizationError):
            await make_service(make_browsers()).process_ai(SLUG)

        phone_store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_slugs_needing_ai(self, make_service, make_browsers, phone_store):
        phone_store.get_slugs_needing_ai.return_value = ["a-phone", "c-phone"]

        assert await make_service(make_browsers()).slugs_needing_ai() == ["a-phone", "c-phone"]
