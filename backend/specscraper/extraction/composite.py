"""
Composite extractors for images, pros/cons and derived feature tags.

Each extractor runs its own strategy list through the engine and returns
a StrategyOutcome; the caller merges the issues into its aggregate.
"""

import re
from typing import Any

from specscraper.extraction.base import ExtractionContext, FieldName, StrategyOutcome
from specscraper.extraction.parsers import fix_image_url
from specscraper.extraction.strategies import (
    css_array_strategy,
    css_attr_strategy,
    css_strategy,
    page_strategy,
    run_strategies,
)

IMAGE_ATTRIBUTES = ("src", "data-src")

IMAGE_STRATEGIES = [
    css_array_strategy(
        "gallery-thumbs",
        FieldName.IMAGES,
        "header .gallery-thumbs img",
        item=fix_image_url,
        attributes=IMAGE_ATTRIBUTES,
    ),
    css_array_strategy(
        "main-image",
        FieldName.IMAGES,
        "header .main-image img, header .device-main-image img",
        item=fix_image_url,
        attributes=IMAGE_ATTRIBUTES,
    ),
    css_array_strategy(
        "product-gallery",
        FieldName.IMAGES,
        ".product-gallery img",
        item=fix_image_url,
        attributes=IMAGE_ATTRIBUTES,
    ),
    css_attr_strategy(
        "og-image",
        FieldName.IMAGES,
        'meta[property="og:image"]',
        "content",
        transform=lambda url: [fix_image_url(url)],
    ),
]


async def _join_item_texts(elements: list[Any]) -> str | None:
    texts = []
    for element in elements:
        text = (await element.text_content() or "").strip()
        if text:
            texts.append(text)
    return "|".join(texts) or None


SCORE_STRATEGIES = [
    css_strategy("pros-and-cons-list", FieldName.SCORES, ".pros-and-cons-list li", _join_item_texts),
    css_strategy("pros-cons", FieldName.SCORES, ".pros li, .cons li", _join_item_texts),
    css_strategy(
        "advantages-disadvantages",
        FieldName.SCORES,
        ".advantages li, .disadvantages li",
        _join_item_texts,
    ),
]


SPEAKERS_SELECTOR = 'section.container-sheet-connectivity .k-dltable tr:has-text("Speakers") td'
VIDEO_SELECTOR = 'section.container-sheet-camera .k-dltable tr:has-text("Video") td'
WIRELESS_SELECTOR = 'section.container-sheet-battery .k-dltable tr:has-text("Wireless") td'
WIFI_SELECTOR = 'section.container-sheet-connectivity .k-dltable tr:has-text("Wi-Fi") td'


async def _cell_text(page: Any, selector: str) -> str | None:
    element = await page.query_selector(selector)
    if element is None:
        return None
    return (await element.text_content() or "").strip() or None


def video_features(text: str) -> list[str]:
    """Tags for the video row: "8K video", "4K@60fps" or "4K video", "Slow motion"."""
    features = []
    if "8K" in text:
        features.append("8K video")
    if "4K" in text:
        fps = re.search(r"4K\s*@?\s*(\d+)", text, re.IGNORECASE)
        features.append(f"4K@{fps.group(1)}fps" if fps else "4K video")
    if "slow motion" in text.lower():
        features.append("Slow motion")
    return features


async def _combined_features(page: Any) -> list[str] | None:
    features: list[str] = []

    speakers = await _cell_text(page, SPEAKERS_SELECTOR)
    if speakers and "stereo" in speakers.lower():
        features.append("Stereo speakers")

    video = await _cell_text(page, VIDEO_SELECTOR)
    if video:
        features.extend(video_features(video))

    wireless = await _cell_text(page, WIRELESS_SELECTOR)
    if wireless and "yes" in wireless.lower():
        features.append("Wireless charging")

    wifi = await _cell_text(page, WIFI_SELECTOR)
    if wifi:
        match = re.search(r"Wi-Fi\s*(\d+[a-z]*)", wifi, re.IGNORECASE)
        if match:
            features.append(f"WiFi {match.group(1)}")

    return features or None


OTHERS_STRATEGIES = [
    page_strategy(
        "combined-features",
        FieldName.OTHERS,
        ", ".join((SPEAKERS_SELECTOR, VIDEO_SELECTOR, WIRELESS_SELECTOR, WIFI_SELECTOR)),
        _combined_features,
    ),
]


async def extract_images(ctx: ExtractionContext) -> StrategyOutcome[list[str]]:
    return await run_strategies(ctx, FieldName.IMAGES, IMAGE_STRATEGIES)


async def extract_scores(ctx: ExtractionContext) -> StrategyOutcome[str]:
    """Pros and cons joined with "|"."""
    return await run_strategies(ctx, FieldName.SCORES, SCORE_STRATEGIES)


async def extract_others(ctx: ExtractionContext) -> StrategyOutcome[list[str]]:
    return await run_strategies(ctx, FieldName.OTHERS, OTHERS_STRATEGIES)
