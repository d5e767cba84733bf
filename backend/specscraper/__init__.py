"""Device specification scraper: strategy-based extraction and cache-aware scraping."""
