"""
Phone data models.

PhoneDataRaw holds the extractor output for a device and PhoneDataRecord
holds the AI-normalized record. Both are keyed by slug and store the
record as JSON; writes are last-write-wins upserts.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from specscraper.core.database import Base


class PhoneDataRaw(Base):
    """Raw extracted record for one device."""

    __tablename__ = "phone_data_raw"

    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)


class PhoneDataRecord(Base):
    """Normalized record for one device."""

    __tablename__ = "phone_data"

    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
