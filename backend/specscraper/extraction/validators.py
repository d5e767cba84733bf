"""
Structural validity checks for fetched or cached device pages.

get_html_validation_error() returns a short reason when the HTML is a bot
challenge or is missing the markup the extractors depend on, and None
when the page looks usable. The "Bot protection" and "Page blocked"
prefixes are what the fast scrape path classifies as retryable.
"""

import re

# Challenge texts mapped to the reason reported for them
BOT_CHALLENGE_MARKERS: tuple[tuple[str, str], ...] = (
    ("Enable JavaScript and cookies to continue", "Bot protection: JavaScript/cookies required"),
    ("Please verify you are a human", "Bot protection: Human verification required"),
    ("Access denied", "Bot protection: Access denied"),
)

_BLOCKED_TITLE_PATTERN = re.compile(
    r"<title[^>]*>\s*([^<]*(?:403|429|Forbidden|Too Many Requests|Attention Required|Just a moment)[^<]*)</title>",
    re.IGNORECASE,
)

# Documents shorter than this cannot hold a device sheet
MIN_DOCUMENT_LENGTH = 512


def get_html_validation_error(html: str | None) -> str | None:
    """Return why the page is unusable, or None if it passes.

    Args:
        html: Full page HTML

    Returns:
        Reason string such as "Bot protection: Access denied", or None
    """
    if not html or not html.strip():
        return "Empty document"

    for marker, reason in BOT_CHALLENGE_MARKERS:
        if marker in html:
            return reason

    blocked = _BLOCKED_TITLE_PATTERN.search(html)
    if blocked:
        return f"Page blocked: {blocked.group(1).strip()}"

    if "<main" not in html:
        return "Missing main content element"

    if "k-dltable" not in html and "container-sheet" not in html:
        return "Missing expected content structure"

    if len(html) < MIN_DOCUMENT_LENGTH or "</html>" not in html.lower():
        return "Truncated document"

    return None


class HtmlValidator:
    """Callable wrapper so the checker can be injected into the scrape service."""

    def validate(self, html: str) -> str | None:
        return get_html_validation_error(html)
