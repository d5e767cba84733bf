"""
Persistence for extracted and normalized device records.
"""

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from specscraper.core.database import AsyncSessionLocal
from specscraper.extraction.schemas import PhoneData, RawPhoneData
from specscraper.models.phone_data import PhoneDataRaw, PhoneDataRecord

logger = logging.getLogger(__name__)


class PhoneDataError(Exception):
    """Raised when a record cannot be stored or loaded."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class PhoneDataService:
    """
    Stores raw and normalized device records as JSON, one row per slug.

    Saves are last-write-wins upserts. Reads return validated pydantic
    models or None when the slug has no record.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or AsyncSessionLocal

    async def _upsert(self, model: type[PhoneDataRaw] | type[PhoneDataRecord], slug: str, data: dict[str, Any]) -> None:
        async with self._session_factory() as session:
            result = await session.execute(select(model).where(model.slug == slug))
            row = result.scalar_one_or_none()
            if row is None:
                session.add(model(slug=slug, data=data))
            else:
                row.data = data
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                result = await session.execute(select(model).where(model.slug == slug))
                result.scalar_one().data = data
                await session.commit()

    async def _load(self, model: type[PhoneDataRaw] | type[PhoneDataRecord], slug: str) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            result = await session.execute(select(model.data).where(model.slug == slug))
            return result.scalar_one_or_none()

    async def save_raw(self, slug: str, data: RawPhoneData) -> None:
        """Store the extractor output for a device.

        Raises:
            PhoneDataError: If the write fails
        """
        try:
            await self._upsert(PhoneDataRaw, slug, data.model_dump(mode="json"))
        except SQLAlchemyError as e:
            raise PhoneDataError(f"Failed to save raw data for {slug}: {e}", cause=e) from e
        logger.info("Saved raw phone data", extra={"slug": slug})

    async def get_raw(self, slug: str) -> RawPhoneData | None:
        try:
            data = await self._load(PhoneDataRaw, slug)
            return RawPhoneData.model_validate(data) if data is not None else None
        except (SQLAlchemyError, ValidationError) as e:
            raise PhoneDataError(f"Failed to load raw data for {slug}: {e}", cause=e) from e

    async def save(self, slug: str, data: PhoneData) -> None:
        """Store the normalized record for a device.

        Raises:
            PhoneDataError: If the write fails
        """
        try:
            await self._upsert(PhoneDataRecord, slug, data.model_dump(mode="json"))
        except SQLAlchemyError as e:
            raise PhoneDataError(f"Failed to save phone data for {slug}: {e}", cause=e) from e
        logger.info("Saved normalized phone data", extra={"slug": slug})

    async def get(self, slug: str) -> PhoneData | None:
        try:
            data = await self._load(PhoneDataRecord, slug)
            return PhoneData.model_validate(data) if data is not None else None
        except (SQLAlchemyError, ValidationError) as e:
            raise PhoneDataError(f"Failed to load phone data for {slug}: {e}", cause=e) from e

    async def has_raw(self, slug: str) -> bool:
        return await self.get_raw(slug) is not None

    async def get_slugs_needing_ai(self) -> list[str]:
        """Slugs with a raw record but no normalized record yet."""
        try:
            async with self._session_factory() as session:
                normalized = select(PhoneDataRecord.slug)
                result = await session.execute(
                    select(PhoneDataRaw.slug)
                    .where(PhoneDataRaw.slug.not_in(normalized))
                    .order_by(PhoneDataRaw.slug)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PhoneDataError(f"Failed to list slugs needing AI: {e}", cause=e) from e
