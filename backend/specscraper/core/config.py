"""
Configuration management for the device spec scraper.

Uses pydantic-settings to load configuration from environment variables
with sensible defaults for development.
"""

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DAY_SECONDS = 24 * 60 * 60


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Device Spec Scraper"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    DB_ECHO: bool = False  # Log all SQL queries (noisy, use sparingly)

    # Database Configuration
    # SQLite via aiosqlite for local runs, asyncpg URLs work unchanged
    DATABASE_URL: str = "sqlite+aiosqlite:///./specscraper.db"

    # ==========================================================================
    # Target Site Configuration
    # ==========================================================================

    SCRAPE_SOURCE: str = "kimovil"  # Source key stored alongside cached HTML
    SCRAPE_URL_TEMPLATE: str = "https://www.kimovil.com/en/where-to-buy-{slug}"

    # ==========================================================================
    # Browser Configuration
    # Remote CDP endpoint (scraping browser) or a local Playwright launch
    # ==========================================================================

    BROWSER_WS_ENDPOINT: str = ""  # wss:// CDP endpoint, required unless LOCAL_PLAYWRIGHT
    LOCAL_PLAYWRIGHT: bool = False  # Launch a local headful Chromium instead
    BROWSER_CONNECT_TIMEOUT_MS: int = 120_000
    BROWSER_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # ==========================================================================
    # Scrape Timings
    # ==========================================================================

    NAVIGATION_TIMEOUT_MS: int = 60_000
    RELOAD_TIMEOUT_MS: int = 10_000
    RATE_LIMIT_DELAY_MS: int = 2000  # Pause before each fast-path navigation
    FAST_MAX_ATTEMPTS: int = 3  # Total attempts, not retries
    RETRY_DELAY_MS: int = 5000  # Pause before reloading a bot-blocked page

    # ==========================================================================
    # Cache Tiers
    # Younger than the SWR threshold: fresh. Between the two: stale but usable,
    # refreshed in the background. At or beyond the max age: fetch live.
    # ==========================================================================

    CACHE_SWR_THRESHOLD_SECONDS: int = 30 * DAY_SECONDS
    CACHE_MAX_AGE_SECONDS: int = 90 * DAY_SECONDS

    # ==========================================================================
    # Bulk Jobs
    # A retryable item failure is requeued after base * 2^(n-1) plus jitter,
    # capped at the max delay, until BULK_MAX_ATTEMPTS is reached.
    # ==========================================================================

    BULK_CONCURRENCY: int = 2  # Parallel items per bulk run
    BULK_MAX_ATTEMPTS: int = 5  # Attempts per item, including the first
    BULK_RETRY_BASE_MS: int = 30_000
    BULK_RETRY_MAX_MS: int = 600_000
    BULK_RETRY_JITTER_MS: int = 1000

    # ==========================================================================
    # AI Normalization (OpenAI)
    # ==========================================================================

    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT: int = 120  # Request timeout in seconds
    OPENAI_TEMPERATURE: float = 0.1
    NORMALIZATION_LANGUAGE: str = "English"
    NORMALIZATION_MAX_RETRIES: int = 2
    NORMALIZATION_INITIAL_DELAY: float = 1.0  # Seconds before the first retry

    # ==========================================================================
    # Observability
    # ==========================================================================

    OTEL_SERVICE_NAME: str = "specscraper"
    OTEL_EXPORTER_OTLP_ENDPOINT: str = "http://tempo:4317"
    OTEL_ENABLED: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("FAST_MAX_ATTEMPTS", "BULK_CONCURRENCY", "BULK_MAX_ATTEMPTS")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Reject attempt and concurrency counts below one."""
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @model_validator(mode="after")
    def check_cache_tiers(self) -> "Settings":
        if self.CACHE_SWR_THRESHOLD_SECONDS >= self.CACHE_MAX_AGE_SECONDS:
            raise ValueError(
                "CACHE_SWR_THRESHOLD_SECONDS must be below CACHE_MAX_AGE_SECONDS"
            )
        return self


# Global settings instance
settings = Settings()
