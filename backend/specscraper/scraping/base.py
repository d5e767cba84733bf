"""
Collaborator interfaces the scrape orchestrator depends on.

Defaults live in specscraper.scraping.browser, specscraper.services and
specscraper.normalization; tests substitute fakes that satisfy the same
protocols.
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol

from specscraper.extraction.schemas import PhoneData, RawPhoneData
from specscraper.services.html_cache import CachedHtml


class BrowserProvider(Protocol):
    """Scoped browser and page handles.

    Every handle is released when its ``async with`` block exits, on success
    or failure.
    """

    def browser(self) -> AbstractAsyncContextManager[Any]:
        """Browser used for live fetches."""
        ...

    def local_browser(self) -> AbstractAsyncContextManager[Any]:
        """Local headless browser used to parse cached HTML."""
        ...

    def page(self, browser: Any) -> AbstractAsyncContextManager[Any]:
        ...

    async def abort_extra_resources(self, page: Any) -> None:
        ...


class HtmlCache(Protocol):
    async def get_raw_html(self, slug: str) -> str | None:
        ...

    async def get_raw_html_with_age(self, slug: str) -> CachedHtml | None:
        ...

    async def save_raw_html(self, slug: str, html: str) -> None:
        ...


class PhoneDataStore(Protocol):
    async def save_raw(self, slug: str, data: RawPhoneData) -> None:
        ...

    async def get_raw(self, slug: str) -> RawPhoneData | None:
        ...

    async def save(self, slug: str, data: PhoneData) -> None:
        ...

    async def get_slugs_needing_ai(self) -> list[str]:
        """Slugs with a raw record but no normalized one."""
        ...


class Normalizer(Protocol):
    async def normalize(self, raw: RawPhoneData) -> PhoneData:
        ...


class HtmlValidator(Protocol):
    def validate(self, html: str) -> str | None:
        """Failure reason, or None when the HTML is usable."""
        ...
