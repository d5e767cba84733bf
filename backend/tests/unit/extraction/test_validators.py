"""Tests for structural HTML validation."""

import pytest

from specscraper.extraction.validators import HtmlValidator, get_html_validation_error


def sheet(body: str = "", title: str = "Samsung Galaxy S24", close: bool = True) -> str:
    filler = "<p>Specification paragraph</p>" * 20
    html = (
        f"<html><head><title>{title}</title></head><body>"
        f"<main><section class='container-sheet-design'><table class='k-dltable'></table></section>"
        f"{body}{filler}</main></body>"
    )
    return html + "</html>" if close else html


class TestGetHtmlValidationError:
    """Tests for get_html_validation_error."""

    def test_valid_sheet(self, device_html):
        assert get_html_validation_error(device_html) is None
        assert get_html_validation_error(sheet()) is None

    @pytest.mark.parametrize("html", [None, "", "   \n  "])
    def test_empty_document(self, html):
        assert get_html_validation_error(html) == "Empty document"

    @pytest.mark.parametrize(
        "marker,reason",
        [
            ("Enable JavaScript and cookies to continue", "Bot protection: JavaScript/cookies required"),
            ("Please verify you are a human", "Bot protection: Human verification required"),
            ("Access denied", "Bot protection: Access denied"),
        ],
    )
    def test_bot_challenges(self, marker, reason):
        """Challenge text wins even when the page otherwise looks complete."""
        assert get_html_validation_error(sheet(body=f"<p>{marker}</p>")) == reason

    def test_bot_challenge_interstitial(self, bot_challenge_html):
        assert (
            get_html_validation_error(bot_challenge_html)
            == "Bot protection: JavaScript/cookies required"
        )

    @pytest.mark.parametrize(
        "title",
        ["403 Forbidden", "429 Too Many Requests", "Attention Required! | Cloudflare"],
    )
    def test_blocked_titles(self, title):
        assert get_html_validation_error(sheet(title=title)) == f"Page blocked: {title}"

    def test_missing_main(self):
        html = "<html><body><table class='k-dltable'></table>" + "x" * 600 + "</body></html>"

        assert get_html_validation_error(html) == "Missing main content element"

    def test_missing_content_structure(self):
        html = "<html><body><main>" + "x" * 600 + "</main></body></html>"

        assert get_html_validation_error(html) == "Missing expected content structure"

    def test_truncated_document(self):
        assert get_html_validation_error(sheet(close=False)) == "Truncated document"

    def test_short_document(self):
        html = "<html><body><main class='k-dltable'></main></body></html>"

        assert get_html_validation_error(html) == "Truncated document"


class TestHtmlValidator:
    def test_delegates(self, device_html, bot_challenge_html):
        validator = HtmlValidator()

        assert validator.validate(device_html) is None
        assert validator.validate(bot_challenge_html).startswith("Bot protection")
