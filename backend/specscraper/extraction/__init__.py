"""
Field extraction for device specification pages.

This package provides:
- The strategy engine (ordered, first-match-wins, issue-collecting)
- CSS strategy helpers wrapping Playwright queries
- Pure parsers for CPU clusters, dates, SIM info, dimensions, cameras and SKUs
- Field extractors and composite extractors for one site's page structure
- Structural HTML validation (bot challenges, malformed documents)
- Pydantic schemas for raw and normalized device records
"""

from specscraper.extraction.base import (
    ExtractionContext,
    ExtractionError,
    ExtractionIssue,
    ExtractionResult,
    ExtractionStrategy,
    FieldName,
    PageClosedError,
    RequiredFieldError,
    StrategyError,
    StrategyOutcome,
)
from specscraper.extraction.composite import extract_images, extract_others, extract_scores
from specscraper.extraction.extractors import extract_phone_data, log_extraction_issues
from specscraper.extraction.schemas import (
    Benchmark,
    Camera,
    CpuCoreCluster,
    NormalizedCamera,
    PhoneData,
    RawPhoneData,
    Sku,
)
from specscraper.extraction.strategies import (
    CssStrategy,
    css_array_strategy,
    css_attr_strategy,
    css_single_strategy,
    css_strategy,
    css_text_strategy,
    page_strategy,
    run_strategies,
)
from specscraper.extraction.validators import HtmlValidator, get_html_validation_error

__all__ = [
    # Engine
    "ExtractionContext",
    "ExtractionIssue",
    "ExtractionResult",
    "ExtractionStrategy",
    "FieldName",
    "StrategyOutcome",
    "run_strategies",
    "CssStrategy",
    "css_strategy",
    "css_text_strategy",
    "css_attr_strategy",
    "css_array_strategy",
    "css_single_strategy",
    "page_strategy",
    # Errors
    "ExtractionError",
    "StrategyError",
    "RequiredFieldError",
    "PageClosedError",
    # Extractors
    "extract_phone_data",
    "extract_images",
    "extract_scores",
    "extract_others",
    "log_extraction_issues",
    # Validation
    "HtmlValidator",
    "get_html_validation_error",
    # Schemas
    "Benchmark",
    "Camera",
    "CpuCoreCluster",
    "NormalizedCamera",
    "PhoneData",
    "RawPhoneData",
    "Sku",
]
