"""
Base interface for AI normalization services.

A normalizer turns a RawPhoneData into a PhoneData: it cleans up the
free-text attributes (display and camera features, materials, colors,
CPU name) and assigns a canonical role to every camera. It is slow
(tens of seconds) and only runs on the full scrape path.
"""

from abc import ABC, abstractmethod
from typing import Protocol

from specscraper.extraction.schemas import PhoneData, RawPhoneData


class NormalizationServiceProtocol(Protocol):
    """Protocol defining the normalization service interface."""

    async def normalize(self, raw: RawPhoneData) -> PhoneData:
        """Normalize a raw device record.

        Raises:
            NormalizationError: If normalization fails.
        """
        ...


class BaseNormalizationService(ABC):
    """Abstract base class for normalization services.

    Attributes:
        provider_name: Human-readable name of the provider (e.g., "openai")
    """

    provider_name: str = "base"

    @abstractmethod
    async def normalize(self, raw: RawPhoneData) -> PhoneData:
        """Normalize a raw device record.

        Args:
            raw: Record produced by the field extractors.

        Returns:
            PhoneData with AI-processed fields merged over the raw record.

        Raises:
            NormalizationError: If normalization fails.
        """
        pass


class NormalizationError(Exception):
    """Base exception for normalization errors.

    Attributes:
        message: Human-readable error message
        cause: Optional underlying exception
        provider: Name of the provider that raised the error
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        provider: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.provider = provider

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message
