"""
Database models.

All models inherit from Base and include common audit columns
(id, created_at, updated_at).

Models:
    - RawHtml: Cached device page HTML, keyed by slug and source
    - ScrapeVerification: Last structural check of a cached page
    - PhoneDataRaw: Extractor output per device
    - PhoneDataRecord: AI-normalized record per device
"""

from specscraper.models.phone_data import PhoneDataRaw, PhoneDataRecord
from specscraper.models.raw_html import RawHtml, ScrapeVerification

__all__ = [
    "RawHtml",
    "ScrapeVerification",
    "PhoneDataRaw",
    "PhoneDataRecord",
]
