"""
Raw HTML cache models.

RawHtml stores the last fetched HTML of a device page per source. Its age
(now minus fetched_at) is the only freshness signal the scrape orchestrator
uses. ScrapeVerification records whether a cached page passed structural
validation the last time it was checked.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from specscraper.core.database import Base


class RawHtml(Base):
    """
    Cached HTML of one device page.

    Attributes:
        slug: Device identifier
        source: Site the HTML was fetched from (e.g., "kimovil")
        html: Full page HTML
        fetched_at: When the HTML was last written; reset on every save
    """

    __tablename__ = "raw_html"
    __table_args__ = (
        UniqueConstraint("slug", "source", name="uq_raw_html_slug_source"),
    )

    slug: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(64), nullable=False, default="kimovil")
    html: Mapped[str] = mapped_column(Text, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<RawHtml(slug={self.slug!r}, source={self.source!r}, bytes={len(self.html)})>"


class ScrapeVerification(Base):
    """
    Result of the last structural check of a cached page.

    Attributes:
        slug: Device identifier
        is_corrupted: Whether the cached HTML failed validation
        reason: Validation failure reason, None when valid
        verified_at: When the check ran
    """

    __tablename__ = "scrape_verification"

    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    is_corrupted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
