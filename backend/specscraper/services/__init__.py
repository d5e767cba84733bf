"""
Persistence services used by the scrape orchestrator.
"""

from specscraper.services.html_cache import (
    CachedHtml,
    HtmlCacheError,
    HtmlCacheService,
    VerificationResult,
)
from specscraper.services.phone_data import PhoneDataError, PhoneDataService

__all__ = [
    "CachedHtml",
    "HtmlCacheError",
    "HtmlCacheService",
    "VerificationResult",
    "PhoneDataError",
    "PhoneDataService",
]
