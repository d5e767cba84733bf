"""
Raw HTML cache backed by SQLAlchemy.

Stores the last fetched HTML per (slug, source) with the time it was
fetched. Reads report the entry's age in seconds; saving an entry replaces
it and resets its age (last write wins). The cache also records the result
of structural checks so corrupted pages can be found and re-scraped.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from specscraper.core.config import settings
from specscraper.core.database import AsyncSessionLocal
from specscraper.extraction.validators import get_html_validation_error
from specscraper.models.raw_html import RawHtml, ScrapeVerification

logger = logging.getLogger(__name__)


class HtmlCacheError(Exception):
    """Raised when a cache read or write fails.

    Attributes:
        message: Human-readable error message
        cause: Underlying database exception
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


@dataclass(frozen=True)
class CachedHtml:
    """A cache hit with its age."""

    html: str
    fetched_at: datetime
    age_seconds: float


@dataclass(frozen=True)
class VerificationResult:
    is_corrupted: bool
    reason: str | None


def _utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class HtmlCacheService:
    """
    Age-aware HTML cache.

    Every call opens its own session, so one service instance can be shared
    by concurrent scrapes and background refreshes.

    Example:
        cache = HtmlCacheService()
        await cache.save_raw_html("apple-iphone-15", html)
        hit = await cache.get_raw_html_with_age("apple-iphone-15")
        if hit and hit.age_seconds < 86400:
            ...
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        source: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize the cache service.

        Args:
            session_factory: Session factory. Defaults to the application's.
            source: Default source key. Defaults to settings.SCRAPE_SOURCE.
            clock: Returns the current UTC time (injectable for tests).
        """
        self._session_factory = session_factory or AsyncSessionLocal
        self._source = source or settings.SCRAPE_SOURCE
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _get_entry(self, session: AsyncSession, slug: str, source: str) -> RawHtml | None:
        result = await session.execute(
            select(RawHtml).where(RawHtml.slug == slug, RawHtml.source == source)
        )
        return result.scalar_one_or_none()

    async def save_raw_html(self, slug: str, html: str, source: str | None = None) -> None:
        """Insert or replace the cached HTML for a slug.

        Raises:
            HtmlCacheError: If the write fails
        """
        source = source or self._source
        now = self._clock()
        try:
            async with self._session_factory() as session:
                entry = await self._get_entry(session, slug, source)
                if entry is None:
                    session.add(RawHtml(slug=slug, source=source, html=html, fetched_at=now))
                else:
                    entry.html = html
                    entry.fetched_at = now
                try:
                    await session.commit()
                except IntegrityError:
                    # A concurrent writer inserted first; overwrite its row
                    await session.rollback()
                    entry = await self._get_entry(session, slug, source)
                    entry.html = html
                    entry.fetched_at = now
                    await session.commit()
        except SQLAlchemyError as e:
            raise HtmlCacheError(f"Failed to save raw HTML: {e}", cause=e) from e

        logger.info(
            "Saved raw HTML",
            extra={"slug": slug, "source": source, "html_bytes": len(html)},
        )

    async def get_raw_html(self, slug: str, source: str | None = None) -> str | None:
        """Cached HTML for a slug, or None.

        Raises:
            HtmlCacheError: If the read fails
        """
        hit = await self.get_raw_html_with_age(slug, source)
        return hit.html if hit else None

    async def get_raw_html_with_age(
        self, slug: str, source: str | None = None
    ) -> CachedHtml | None:
        """Cached HTML with its age in seconds, or None when absent.

        Raises:
            HtmlCacheError: If the read fails
        """
        source = source or self._source
        try:
            async with self._session_factory() as session:
                entry = await self._get_entry(session, slug, source)
        except SQLAlchemyError as e:
            raise HtmlCacheError(f"Failed to get raw HTML: {e}", cause=e) from e

        if entry is None:
            return None

        fetched_at = _utc(entry.fetched_at)
        age_seconds = max(0.0, (self._clock() - fetched_at).total_seconds())
        return CachedHtml(html=entry.html, fetched_at=fetched_at, age_seconds=age_seconds)

    async def get_raw_html_if_fresh(
        self, slug: str, max_age_seconds: float, source: str | None = None
    ) -> CachedHtml | None:
        """Cached HTML only when younger than max_age_seconds."""
        hit = await self.get_raw_html_with_age(slug, source)
        if hit is None or hit.age_seconds >= max_age_seconds:
            return None
        return hit

    async def has_scraped_html(self, slug: str, source: str | None = None) -> bool:
        return await self.get_raw_html_with_age(slug, source) is not None

    async def get_scraped_slugs(self, source: str | None = None) -> list[str]:
        """All slugs with cached HTML for a source, alphabetically."""
        source = source or self._source
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(RawHtml.slug).where(RawHtml.source == source).order_by(RawHtml.slug)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise HtmlCacheError(f"Failed to list scraped slugs: {e}", cause=e) from e

    # =========================================================================
    # Verification
    # =========================================================================

    async def record_verification(self, slug: str, is_corrupted: bool, reason: str | None) -> None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ScrapeVerification).where(ScrapeVerification.slug == slug)
                )
                record = result.scalar_one_or_none()
                if record is None:
                    record = ScrapeVerification(slug=slug)
                    session.add(record)
                record.is_corrupted = is_corrupted
                record.reason = reason
                record.verified_at = self._clock()
                await session.commit()
        except SQLAlchemyError as e:
            raise HtmlCacheError(f"Failed to record verification: {e}", cause=e) from e

    async def verify_html(self, slug: str) -> VerificationResult:
        """Validate the cached HTML for a slug and record the outcome."""
        html = await self.get_raw_html(slug)
        reason = "No cached HTML" if html is None else get_html_validation_error(html)
        verdict = VerificationResult(is_corrupted=reason is not None, reason=reason)
        await self.record_verification(slug, verdict.is_corrupted, verdict.reason)

        if verdict.is_corrupted:
            logger.warning(
                "Cached HTML failed verification",
                extra={"slug": slug, "reason": reason},
            )
        return verdict

    async def get_verification_status(self, slug: str) -> VerificationResult | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ScrapeVerification).where(ScrapeVerification.slug == slug)
                )
                record = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise HtmlCacheError(f"Failed to get verification status: {e}", cause=e) from e

        if record is None:
            return None
        return VerificationResult(is_corrupted=record.is_corrupted, reason=record.reason)

    async def _slugs_by_corruption(self, is_corrupted: bool) -> list[str]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ScrapeVerification.slug)
                    .where(ScrapeVerification.is_corrupted == is_corrupted)
                    .order_by(ScrapeVerification.slug)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise HtmlCacheError(f"Failed to list verified slugs: {e}", cause=e) from e

    async def get_corrupted_slugs(self) -> list[str]:
        return await self._slugs_by_corruption(True)

    async def get_valid_slugs(self) -> list[str]:
        return await self._slugs_by_corruption(False)
