"""Core application modules."""

from specscraper.core.config import Settings, settings

__all__ = [
    "Settings",
    "settings",
]
