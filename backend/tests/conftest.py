"""
Pytest configuration and fixtures for testing.

Provides page doubles for extraction tests, sample device HTML, and an
in-memory database for persistence tests.
"""

import os
from pathlib import Path
from typing import Any

import pytest


def pytest_configure(config):
    """
    Pytest hook that runs before test collection.

    This is the earliest point we can modify the environment.
    We load .env.test here to ensure it's available before any
    specscraper modules are imported (settings are read at import time).
    """
    from dotenv import load_dotenv

    os.environ.setdefault("TESTING", "true")

    test_env_path = Path(__file__).parent.parent / ".env.test"
    if test_env_path.exists():
        load_dotenv(test_env_path, override=True)
        print(f"Loaded test environment from {test_env_path}")


# =============================================================================
# Page Doubles
# =============================================================================


class FakeElement:
    """Element handle double with fixed text, attributes and outer HTML."""

    def __init__(
        self,
        text: str | None = None,
        attrs: dict[str, str] | None = None,
        html: str = "",
    ):
        self._text = text
        self._attrs = attrs or {}
        self._html = html

    async def text_content(self) -> str | None:
        return self._text

    async def get_attribute(self, name: str) -> str | None:
        return self._attrs.get(name)

    async def evaluate(self, expression: str) -> str:
        return self._html


class FakePage:
    """Page double answering DOM queries from a selector map.

    Values may be a FakeElement, a list of them, or an exception to raise.
    Unknown selectors match nothing. Every queried selector is recorded.
    """

    def __init__(self, selectors: dict[str, Any] | None = None, closed: bool = False):
        self.selectors = selectors or {}
        self.closed = closed
        self.queries: list[str] = []

    def _lookup(self, selector: str) -> list[FakeElement]:
        self.queries.append(selector)
        value = self.selectors.get(selector, [])
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, FakeElement):
            return [value]
        return list(value)

    async def query_selector(self, selector: str) -> FakeElement | None:
        elements = self._lookup(selector)
        return elements[0] if elements else None

    async def query_selector_all(self, selector: str) -> list[FakeElement]:
        return self._lookup(selector)

    def is_closed(self) -> bool:
        return self.closed


@pytest.fixture
def make_element():
    """Factory for FakeElement instances."""
    return FakeElement


@pytest.fixture
def make_page():
    """Factory for FakePage instances."""
    return FakePage


# =============================================================================
# Sample HTML
# =============================================================================


@pytest.fixture
def device_html() -> str:
    """A device sheet that passes structural validation.

    Returns:
        HTML with a <main> element, a k-dltable section and a closing tag.
    """
    filler = "".join(f"<p>Specification paragraph {i}</p>" for i in range(30))
    return (
        "<!DOCTYPE html><html><head><title>Samsung Galaxy S24 - Kimovil</title></head>"
        "<body><main><header><div class='title-group'><h1 id='sec-start'>Samsung Galaxy S24</h1>"
        "</div></header><section class='container-sheet-hardware'><table class='k-dltable'>"
        "<tr><th>GPU</th><td>Adreno 750</td></tr></table></section>"
        f"{filler}</main></body></html>"
    )


@pytest.fixture
def bot_challenge_html() -> str:
    """A bot challenge interstitial."""
    return (
        "<html><head><title>Just a moment...</title></head>"
        "<body><p>Enable JavaScript and cookies to continue</p></body></html>"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine with all tables created."""
    from sqlalchemy.pool import StaticPool

    from specscraper.core.database import create_engine_for, init_db

    engine = create_engine_for("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the in-memory engine."""
    from specscraper.core.database import create_session_factory

    return create_session_factory(db_engine)
