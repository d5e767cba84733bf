"""
Strategy engine and CSS strategy helpers.

run_strategies() walks an ordered strategy list and returns the first
present value (first-match-wins, not best-match). Failed strategies are
turned into ExtractionIssues and the loop moves on; absent values are
skipped silently. Only a required field that exhausts its list raises.

Example:
    from specscraper.extraction.strategies import css_text_strategy, run_strategies

    gpu_strategies = [
        css_text_strategy(
            "hardware-table",
            FieldName.GPU,
            'section.container-sheet-hardware .k-dltable tr:has-text("GPU") td',
        ),
    ]
    outcome = await run_strategies(ctx, FieldName.GPU, gpu_strategies)
    print(outcome.value, len(outcome.issues))
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Generic, TypeVar

from playwright.async_api import Error as PlaywrightError

from specscraper.extraction.base import (
    ExtractionContext,
    ExtractionIssue,
    ExtractionStrategy,
    FieldName,
    PageClosedError,
    RequiredFieldError,
    StrategyError,
    StrategyOutcome,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PageQuery = Callable[[Any], Awaitable[T | None]]


async def run_strategies(
    ctx: ExtractionContext,
    field: FieldName,
    strategies: Sequence[ExtractionStrategy[T]],
    required: bool = False,
) -> StrategyOutcome[T]:
    """Run strategies in order until one produces a value.

    Args:
        ctx: Extraction context for the current page
        field: Field being extracted (tags every issue)
        strategies: Ordered strategies, most reliable first
        required: Raise instead of returning an empty outcome on exhaustion

    Returns:
        StrategyOutcome with the first present value (or None) and one
        issue per strategy that failed before it.

    Raises:
        RequiredFieldError: If required and no strategy produced a value.
            Names the last strategy attempted.
        PageClosedError: If the page was closed mid-extraction.
    """
    issues: list[ExtractionIssue] = []

    for strategy in strategies:
        try:
            value = await strategy.run(ctx)
        except StrategyError as e:
            issues.append(
                ExtractionIssue(
                    field=field,
                    selector=strategy.selector,
                    strategy=strategy.name,
                    message=e.message,
                )
            )
            logger.debug(
                "Extraction strategy failed",
                extra={
                    "slug": ctx.slug,
                    "field": field.value,
                    "strategy": strategy.name,
                    "error": e.message,
                },
            )
            continue

        if value is not None:
            return StrategyOutcome(value=value, issues=issues)

    if required and strategies:
        last = strategies[-1]
        raise RequiredFieldError(
            field,
            last.selector,
            last.name,
            f'Required field "{field.value}" not found after trying all strategies',
        )

    return StrategyOutcome(value=None, issues=issues)


class CssStrategy(Generic[T]):
    """Strategy backed by a page query coroutine.

    Wraps the query so Playwright failures surface as StrategyError tagged
    with field/selector/strategy, and a ValueError raised while transforming
    page data counts as a failure rather than an absent value.
    """

    def __init__(
        self,
        name: str,
        field: FieldName,
        selector: str,
        query: PageQuery,
    ):
        self.name = name
        self.field = field
        self.selector = selector
        self._query = query

    async def run(self, ctx: ExtractionContext) -> T | None:
        try:
            return await self._query(ctx.page)
        except PlaywrightError as e:
            if ctx.page.is_closed():
                raise PageClosedError(
                    self.field, self.selector, self.name, f"Page closed: {e.message}"
                ) from e
            raise StrategyError(self.field, self.selector, self.name, e.message) from e
        except ValueError as e:
            raise StrategyError(self.field, self.selector, self.name, str(e)) from e

    def __repr__(self) -> str:
        return f"CssStrategy(name={self.name!r}, field={self.field.value!r}, selector={self.selector!r})"


def _identity(value: str) -> str:
    return value


async def _read_text(element: Any) -> str:
    text = await element.text_content()
    return (text or "").strip()


def page_strategy(
    name: str,
    field: FieldName,
    selector: str,
    query: PageQuery,
) -> CssStrategy:
    """Strategy from an arbitrary page query (for composite extractors)."""
    return CssStrategy(name, field, selector, query)


def css_strategy(
    name: str,
    field: FieldName,
    selector: str,
    transform: Callable[[list[Any]], Awaitable[T | None]],
) -> CssStrategy[T]:
    """Transform every element matching the selector into one value.

    No matching element means absent; the transform is not called.
    """

    async def query(page: Any) -> T | None:
        elements = await page.query_selector_all(selector)
        if not elements:
            return None
        return await transform(elements)

    return CssStrategy(name, field, selector, query)


def css_text_strategy(
    name: str,
    field: FieldName,
    selector: str,
    transform: Callable[[str], T | None] = _identity,
) -> CssStrategy[T]:
    """Trimmed text of the first match, optionally transformed.

    Empty text is treated as absent.
    """

    async def query(page: Any) -> T | None:
        element = await page.query_selector(selector)
        if element is None:
            return None
        text = await _read_text(element)
        if not text:
            return None
        return transform(text)

    return CssStrategy(name, field, selector, query)


def css_attr_strategy(
    name: str,
    field: FieldName,
    selector: str,
    attribute: str,
    transform: Callable[[str], T | None] = _identity,
) -> CssStrategy[T]:
    """Attribute value of the first match, optionally transformed."""

    async def query(page: Any) -> T | None:
        element = await page.query_selector(selector)
        if element is None:
            return None
        value = await element.get_attribute(attribute)
        if not value:
            return None
        return transform(value.strip())

    return CssStrategy(name, field, selector, query)


def css_array_strategy(
    name: str,
    field: FieldName,
    selector: str,
    item: Callable[[str], T | None] = _identity,
    attributes: Sequence[str] = (),
) -> CssStrategy[list[T]]:
    """One item per matching element.

    Reads the element text, or the first non-empty attribute out of
    ``attributes`` when given. Items mapped to None or empty strings are
    dropped; an empty list is treated as absent.
    """

    async def query(page: Any) -> list[T] | None:
        elements = await page.query_selector_all(selector)
        values: list[T] = []
        for element in elements:
            raw = ""
            if attributes:
                for attribute in attributes:
                    raw = (await element.get_attribute(attribute) or "").strip()
                    if raw:
                        break
            else:
                raw = await _read_text(element)
            if not raw:
                continue
            value = item(raw)
            if value is not None:
                values.append(value)
        return values or None

    return CssStrategy(name, field, selector, query)


def css_single_strategy(
    name: str,
    field: FieldName,
    selector: str,
    transform: Callable[[Any], Awaitable[T | None]],
) -> CssStrategy[T]:
    """Transform the first matching element."""

    async def query(page: Any) -> T | None:
        element = await page.query_selector(selector)
        if element is None:
            return None
        return await transform(element)

    return CssStrategy(name, field, selector, query)
