"""
Unit tests for the extraction strategy engine.

Tests cover:
- First-match-wins ordering and short-circuiting
- Absent values vs failed strategies (issues only for failures)
- Required-field exhaustion naming the last strategy
- CSS strategy helpers wrapping Playwright failures
"""

import pytest
from playwright.async_api import Error as PlaywrightError

from specscraper.extraction.base import (
    ExtractionContext,
    FieldName,
    PageClosedError,
    RequiredFieldError,
    StrategyError,
)
from specscraper.extraction.strategies import (
    css_array_strategy,
    css_attr_strategy,
    css_single_strategy,
    css_strategy,
    css_text_strategy,
    run_strategies,
)


class StubStrategy:
    """Strategy double returning a fixed value or raising a fixed error."""

    def __init__(self, name, value=None, error=None):
        self.name = name
        self.selector = f"#{name}"
        self.value = value
        self.error = error
        self.calls = 0

    async def run(self, ctx):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.value


def failing(name, message="timeout"):
    return StubStrategy(
        name, error=StrategyError(FieldName.GPU, f"#{name}", name, message)
    )


@pytest.fixture
def ctx(make_page):
    return ExtractionContext(page=make_page(), slug="test-phone")


# =============================================================================
# run_strategies
# =============================================================================


class TestRunStrategies:
    """Tests for the ordered strategy loop."""

    @pytest.mark.asyncio
    async def test_first_present_value_wins(self, ctx):
        """Later strategies are never evaluated once one produces a value."""
        first = StubStrategy("first", value="Adreno 750")
        second = StubStrategy("second", value="Mali-G720")

        outcome = await run_strategies(ctx, FieldName.GPU, [first, second])

        assert outcome.value == "Adreno 750"
        assert outcome.issues == []
        assert first.calls == 1
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_absent_then_present(self, ctx):
        """An absent strategy records no issue and the loop continues."""
        absent = StubStrategy("absent")
        present = StubStrategy("present", value="Adreno 750")

        outcome = await run_strategies(ctx, FieldName.GPU, [absent, present])

        assert outcome.value == "Adreno 750"
        assert outcome.issues == []
        assert absent.calls == 1

    @pytest.mark.asyncio
    async def test_failure_becomes_issue_and_loop_continues(self, ctx):
        """A failing strategy is recorded as an issue, not raised."""
        broken = failing("broken", "Timeout 30000ms exceeded")
        present = StubStrategy("present", value="Adreno 750")

        outcome = await run_strategies(ctx, FieldName.GPU, [broken, present])

        assert outcome.value == "Adreno 750"
        assert len(outcome.issues) == 1
        issue = outcome.issues[0]
        assert issue.field == FieldName.GPU
        assert issue.strategy == "broken"
        assert issue.selector == "#broken"
        assert issue.message == "Timeout 30000ms exceeded"

    @pytest.mark.asyncio
    async def test_optional_exhaustion_counts_only_failures(self, ctx):
        """One issue per failed strategy, none for merely absent ones."""
        strategies = [
            failing("a"),
            StubStrategy("b"),
            failing("c"),
            StubStrategy("d"),
        ]

        outcome = await run_strategies(ctx, FieldName.GPU, strategies)

        assert outcome.value is None
        assert [issue.strategy for issue in outcome.issues] == ["a", "c"]
        assert all(s.calls == 1 for s in strategies)

    @pytest.mark.asyncio
    async def test_required_exhaustion_names_last_strategy(self, ctx):
        """A required field raises naming the last strategy attempted."""
        strategies = [StubStrategy("heading"), failing("og-title"), StubStrategy("document-title")]

        with pytest.raises(RequiredFieldError) as exc_info:
            await run_strategies(ctx, FieldName.NAME, strategies, required=True)

        error = exc_info.value
        assert error.field == FieldName.NAME
        assert error.strategy == "document-title"
        assert error.selector == "#document-title"
        assert 'Required field "name"' in error.message

    @pytest.mark.asyncio
    async def test_required_field_with_value_does_not_raise(self, ctx):
        outcome = await run_strategies(
            ctx, FieldName.NAME, [failing("a"), StubStrategy("b", value="Pixel 8")], required=True
        )

        assert outcome.value == "Pixel 8"
        assert len(outcome.issues) == 1

    @pytest.mark.asyncio
    async def test_empty_strategy_list(self, ctx):
        """An empty list yields an empty outcome, even when required."""
        outcome = await run_strategies(ctx, FieldName.GPU, [], required=True)

        assert outcome.value is None
        assert outcome.issues == []

    @pytest.mark.asyncio
    async def test_falsy_values_are_present(self, ctx):
        """False and empty strings are values; only None means absent."""
        outcome = await run_strategies(
            ctx, FieldName.NFC, [StubStrategy("nfc", value=False), StubStrategy("other", value=True)]
        )

        assert outcome.value is False

    @pytest.mark.asyncio
    async def test_page_closed_propagates(self, ctx):
        """Infrastructure failures are not downgraded to issues."""
        closed = StubStrategy(
            "closed", error=PageClosedError(FieldName.GPU, "#closed", "closed", "Page closed")
        )

        with pytest.raises(PageClosedError):
            await run_strategies(ctx, FieldName.GPU, [closed, StubStrategy("never", value="x")])


# =============================================================================
# CSS helpers
# =============================================================================


class TestCssTextStrategy:
    """Tests for css_text_strategy."""

    @pytest.mark.asyncio
    async def test_returns_trimmed_text(self, make_page, make_element):
        page = make_page({".gpu": make_element("  Adreno 750 \n")})
        strategy = css_text_strategy("gpu", FieldName.GPU, ".gpu")

        assert await strategy.run(ExtractionContext(page, "x")) == "Adreno 750"

    @pytest.mark.asyncio
    async def test_applies_transform(self, make_page, make_element):
        page = make_page({".weight": make_element("168 g")})
        strategy = css_text_strategy(
            "weight", FieldName.WEIGHT, ".weight", lambda text: float(text.split()[0])
        )

        assert await strategy.run(ExtractionContext(page, "x")) == 168.0

    @pytest.mark.asyncio
    async def test_missing_element_is_absent(self, make_page):
        strategy = css_text_strategy("gpu", FieldName.GPU, ".gpu")

        assert await strategy.run(ExtractionContext(make_page(), "x")) is None

    @pytest.mark.asyncio
    async def test_blank_text_is_absent(self, make_page, make_element):
        page = make_page({".gpu": make_element("   ")})
        strategy = css_text_strategy("gpu", FieldName.GPU, ".gpu", lambda text: 1 / 0)

        assert await strategy.run(ExtractionContext(page, "x")) is None

    @pytest.mark.asyncio
    async def test_playwright_error_becomes_strategy_error(self, make_page):
        page = make_page({".gpu": PlaywrightError("Timeout 30000ms exceeded")})
        strategy = css_text_strategy("gpu", FieldName.GPU, ".gpu")

        with pytest.raises(StrategyError) as exc_info:
            await strategy.run(ExtractionContext(page, "x"))

        assert exc_info.value.field == FieldName.GPU
        assert exc_info.value.selector == ".gpu"
        assert exc_info.value.strategy == "gpu"
        assert "Timeout" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_playwright_error_on_closed_page(self, make_page):
        page = make_page({".gpu": PlaywrightError("Target closed")}, closed=True)
        strategy = css_text_strategy("gpu", FieldName.GPU, ".gpu")

        with pytest.raises(PageClosedError) as exc_info:
            await strategy.run(ExtractionContext(page, "x"))

        assert exc_info.value.message.startswith("Page closed")

    @pytest.mark.asyncio
    async def test_value_error_in_transform_is_failure(self, make_page, make_element):
        """Bad data is a failed strategy, not an absent one."""
        page = make_page({".skus": make_element("not json")})
        strategy = css_text_strategy("skus", FieldName.SKUS, ".skus", lambda text: int(text))

        with pytest.raises(StrategyError):
            await strategy.run(ExtractionContext(page, "x"))


class TestCssAttrStrategy:
    """Tests for css_attr_strategy."""

    @pytest.mark.asyncio
    async def test_reads_attribute(self, make_page, make_element):
        page = make_page({"meta": make_element(attrs={"content": " Pixel 8 "})})
        strategy = css_attr_strategy("og", FieldName.NAME, "meta", "content")

        assert await strategy.run(ExtractionContext(page, "x")) == "Pixel 8"

    @pytest.mark.asyncio
    async def test_missing_attribute_is_absent(self, make_page, make_element):
        page = make_page({"meta": make_element(attrs={})})
        strategy = css_attr_strategy("og", FieldName.NAME, "meta", "content")

        assert await strategy.run(ExtractionContext(page, "x")) is None


class TestCssArrayStrategy:
    """Tests for css_array_strategy."""

    @pytest.mark.asyncio
    async def test_collects_non_empty_items(self, make_page, make_element):
        page = make_page(
            {"li": [make_element("HDR10+"), make_element(""), make_element(" 120Hz ")]}
        )
        strategy = css_array_strategy("features", FieldName.DISPLAY_FEATURES, "li")

        assert await strategy.run(ExtractionContext(page, "x")) == ["HDR10+", "120Hz"]

    @pytest.mark.asyncio
    async def test_item_returning_none_is_dropped(self, make_page, make_element):
        page = make_page({"li": [make_element("1"), make_element("x"), make_element("3")]})
        strategy = css_array_strategy(
            "numbers", FieldName.OTHERS, "li", item=lambda t: int(t) if t.isdigit() else None
        )

        assert await strategy.run(ExtractionContext(page, "x")) == [1, 3]

    @pytest.mark.asyncio
    async def test_attribute_fallback_order(self, make_page, make_element):
        page = make_page(
            {
                "img": [
                    make_element(attrs={"src": "a.jpg"}),
                    make_element(attrs={"src": "", "data-src": "b.jpg"}),
                ]
            }
        )
        strategy = css_array_strategy(
            "images", FieldName.IMAGES, "img", attributes=("src", "data-src")
        )

        assert await strategy.run(ExtractionContext(page, "x")) == ["a.jpg", "b.jpg"]

    @pytest.mark.asyncio
    async def test_empty_list_is_absent(self, make_page, make_element):
        page = make_page({"li": [make_element(""), make_element("  ")]})
        strategy = css_array_strategy("features", FieldName.DISPLAY_FEATURES, "li")

        assert await strategy.run(ExtractionContext(page, "x")) is None


class TestCssStrategy:
    """Tests for css_strategy and css_single_strategy."""

    @pytest.mark.asyncio
    async def test_no_elements_skips_transform(self, make_page):
        called = []

        async def transform(elements):
            called.append(elements)
            return "value"

        strategy = css_strategy("all", FieldName.SCORES, "li", transform)

        assert await strategy.run(ExtractionContext(make_page(), "x")) is None
        assert called == []

    @pytest.mark.asyncio
    async def test_transform_receives_all_elements(self, make_page, make_element):
        page = make_page({"li": [make_element("a"), make_element("b")]})

        async def count(elements):
            return len(elements)

        strategy = css_strategy("all", FieldName.SCORES, "li", count)

        assert await strategy.run(ExtractionContext(page, "x")) == 2

    @pytest.mark.asyncio
    async def test_single_transforms_first_element(self, make_page, make_element):
        page = make_page({"li": [make_element("first"), make_element("second")]})

        async def text(element):
            return await element.text_content()

        strategy = css_single_strategy("one", FieldName.SCORES, "li", text)

        assert await strategy.run(ExtractionContext(page, "x")) == "first"
