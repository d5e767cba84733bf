"""
Cache tier selection.

Age is the only freshness signal. The tier is decided once per invocation
from the age read at decision time.
"""

from enum import Enum

from specscraper.core.config import settings


class CacheTier(str, Enum):
    FRESH = "fresh"  # parse cached HTML only
    STALE = "stale"  # parse cached HTML and refresh in the background
    MISS = "miss"  # fetch live before answering


def select_cache_tier(
    age_seconds: float | None,
    swr_threshold_seconds: float | None = None,
    max_age_seconds: float | None = None,
) -> CacheTier:
    """Map a cache entry's age to a tier.

    Args:
        age_seconds: Age of the entry, or None when there is no entry
        swr_threshold_seconds: Start of the stale tier. Defaults to settings.CACHE_SWR_THRESHOLD_SECONDS.
        max_age_seconds: Start of the miss tier. Defaults to settings.CACHE_MAX_AGE_SECONDS.

    Example:
        select_cache_tier(10 * 86400)   # CacheTier.FRESH
        select_cache_tier(45 * 86400)   # CacheTier.STALE
        select_cache_tier(None)         # CacheTier.MISS
    """
    if swr_threshold_seconds is None:
        swr_threshold_seconds = settings.CACHE_SWR_THRESHOLD_SECONDS
    if max_age_seconds is None:
        max_age_seconds = settings.CACHE_MAX_AGE_SECONDS

    if age_seconds is None or age_seconds >= max_age_seconds:
        return CacheTier.MISS
    if age_seconds >= swr_threshold_seconds:
        return CacheTier.STALE
    return CacheTier.FRESH
