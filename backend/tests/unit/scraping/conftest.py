"""
Fixtures for scrape orchestrator tests.

FakeBrowsers stands in for BrowserService: it counts every browser and page
it opens and closes, and hands out MagicMock pages whose navigation methods
are AsyncMocks. Field extraction is patched out; these tests exercise the
orchestration around it.
"""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from specscraper.extraction.base import ExtractionResult
from specscraper.extraction.schemas import PhoneData, RawPhoneData
from specscraper.scraping.bot_block import BotBlockRetryPolicy
from specscraper.scraping.service import ScrapeService


def make_mock_page(content="") -> MagicMock:
    """Page double; ``content`` may be a string or a list of successive results."""
    page = MagicMock()
    page.goto = AsyncMock()
    page.reload = AsyncMock()
    page.set_content = AsyncMock()
    page.close = AsyncMock()
    if isinstance(content, list):
        page.content = AsyncMock(side_effect=content)
    else:
        page.content = AsyncMock(return_value=content)
    return page


class FakeBrowsers:
    """BrowserProvider double recording the lifecycle of browsers and pages.

    Args:
        page: Page handed out by every page() call
        browser_error: Raised by browser() instead of opening
        gate: Event browser() waits on before yielding
    """

    def __init__(self, page=None, browser_error=None, gate=None):
        self.page_double = page if page is not None else make_mock_page()
        self.browser_error = browser_error
        self.gate = gate
        self.opened = {"browser": 0, "local_browser": 0, "page": 0}
        self.closed = {"browser": 0, "local_browser": 0, "page": 0}
        self.aborted = 0

    @asynccontextmanager
    async def browser(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.browser_error is not None:
            raise self.browser_error
        self.opened["browser"] += 1
        try:
            yield "remote-browser"
        finally:
            self.closed["browser"] += 1

    @asynccontextmanager
    async def local_browser(self):
        self.opened["local_browser"] += 1
        try:
            yield "local-browser"
        finally:
            self.closed["local_browser"] += 1

    @asynccontextmanager
    async def page(self, browser):
        self.opened["page"] += 1
        try:
            yield self.page_double
        finally:
            self.closed["page"] += 1

    async def abort_extra_resources(self, page):
        self.aborted += 1

    @property
    def all_closed(self) -> bool:
        return self.opened == self.closed


class SleepRecorder:
    """Awaitable sleep that records delays without waiting."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


async def collect(stream) -> list:
    return [event async for event in stream]


@pytest.fixture
def raw_phone() -> RawPhoneData:
    return RawPhoneData(slug="samsung-galaxy-s24", name="Galaxy S24", brand="Samsung")


@pytest.fixture
def normalized_phone() -> PhoneData:
    return PhoneData(slug="samsung-galaxy-s24", name="Galaxy S24", brand="Samsung")


@pytest.fixture
def mock_extract(raw_phone):
    """Patch field extraction to return raw_phone with no issues."""
    with patch(
        "specscraper.scraping.service.extract_phone_data",
        new=AsyncMock(return_value=ExtractionResult(data=raw_phone, issues=[])),
    ) as mock:
        yield mock


@pytest.fixture
def html_cache():
    cache = AsyncMock()
    cache.get_raw_html_with_age.return_value = None
    cache.get_raw_html.return_value = None
    return cache


@pytest.fixture
def phone_store():
    return AsyncMock()


@pytest.fixture
def normalizer(normalized_phone):
    mock = AsyncMock()
    mock.normalize.return_value = normalized_phone
    return mock


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def make_service(html_cache, phone_store, normalizer, sleeper):
    """Factory building a ScrapeService around the given FakeBrowsers."""

    def factory(browsers: FakeBrowsers) -> ScrapeService:
        return ScrapeService(
            browsers=browsers,
            html_cache=html_cache,
            phone_data=phone_store,
            normalizer=normalizer,
            retry_policy=BotBlockRetryPolicy(max_attempts=3, delay_seconds=5.0),
            sleep=sleeper,
            url_template="https://example.com/{slug}",
            navigation_timeout_ms=1000,
            reload_timeout_ms=1000,
            rate_limit_delay_ms=2000,
        )

    return factory


@pytest.fixture
def gate():
    return asyncio.Event()


@pytest.fixture
def make_browsers():
    return FakeBrowsers


@pytest.fixture
def page_factory():
    return make_mock_page


@pytest.fixture
def collect_events():
    """Drain an event stream into a list."""
    return collect
