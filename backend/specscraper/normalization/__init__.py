"""
AI normalization of raw device records.

This package provides:
- The normalization service interface and error types
- An OpenAI JSON-mode implementation that edits only free-text fields
- Retry logic with exponential backoff for transient API failures
"""

from specscraper.normalization.base import (
    BaseNormalizationService,
    NormalizationError,
    NormalizationServiceProtocol,
)
from specscraper.normalization.openai_normalizer import (
    AINormalizationResponse,
    OpenAINormalizationError,
    OpenAINormalizationService,
    merge_normalized,
)
from specscraper.normalization.retry import RetryExhausted, RetryPolicy, with_retry

__all__ = [
    "BaseNormalizationService",
    "NormalizationError",
    "NormalizationServiceProtocol",
    "AINormalizationResponse",
    "OpenAINormalizationError",
    "OpenAINormalizationService",
    "merge_normalized",
    "RetryExhausted",
    "RetryPolicy",
    "with_retry",
]
