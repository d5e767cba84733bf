"""
Field extractors for device specification pages.

Each record attribute has an ordered strategy list. extract_phone_data()
runs all of them against one page and assembles a RawPhoneData, collecting
every non-fatal issue. Only the device name is required: a page without
one is not a device sheet. Everything else degrades to None or an empty
list when the page lacks it.

Example:
    result = await extract_phone_data(page, "samsung-galaxy-s24")
    print(result.data.name, len(result.issues))
"""

import logging
from collections.abc import Sequence
from typing import Any, TypeVar

from specscraper.extraction.base import (
    ExtractionContext,
    ExtractionIssue,
    ExtractionResult,
    ExtractionStrategy,
    FieldName,
)
from specscraper.extraction.composite import extract_images, extract_others, extract_scores
from specscraper.extraction.parsers import (
    SimInfo,
    get_software,
    parse_battery_capacity,
    parse_battery_wattage,
    parse_benchmark,
    parse_bluetooth,
    parse_camera_block,
    parse_cpu_cores,
    parse_device_title,
    parse_dimensions,
    parse_display_size,
    parse_fingerprint_position,
    parse_ppi,
    parse_release_date,
    parse_resolution,
    parse_sim,
    parse_skus,
    parse_usb,
    parse_weight,
    parse_yes,
    split_cpu_model,
    split_list,
)
from specscraper.extraction.schemas import Camera, RawPhoneData
from specscraper.extraction.strategies import (
    css_array_strategy,
    css_attr_strategy,
    css_strategy,
    css_text_strategy,
    run_strategies,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def row(section: str, label: str) -> str:
    """Selector for the value cell of a labelled row in a sheet section."""
    return f'section.container-sheet-{section} .k-dltable tr:has-text("{label}") td'


async def _camera_blocks(elements: list[Any]) -> list[Camera] | None:
    cameras = []
    for element in elements:
        html = await element.evaluate("el => el.outerHTML")
        camera = parse_camera_block(html)
        if camera is not None:
            cameras.append(camera)
    return cameras or None


# =============================================================================
# Strategy lists
# =============================================================================

NAME_STRATEGIES = [
    css_text_strategy(
        "title-heading", FieldName.NAME, "header .title-group #sec-start", parse_device_title
    ),
    css_attr_strategy(
        "og-title", FieldName.NAME, 'meta[property="og:title"]', "content", parse_device_title
    ),
    css_text_strategy("document-title", FieldName.NAME, "title", parse_device_title),
]

ALIASES_STRATEGIES = [
    css_text_strategy("intro-table", FieldName.ALIASES, row("intro", "Aliases"), split_list),
]

RELEASE_DATE_STRATEGIES = [
    css_text_strategy(
        "intro-table",
        FieldName.RELEASE_DATE,
        row("intro", "Release date"),
        lambda text: parse_release_date(text.split(",")[0]),
    ),
]

DIMENSIONS_STRATEGIES = [
    css_text_strategy("design-table", FieldName.DIMENSIONS, row("design", "Size"), parse_dimensions),
]

WEIGHT_STRATEGIES = [
    css_text_strategy("design-table", FieldName.WEIGHT, row("design", "Weight"), parse_weight),
]

MATERIALS_STRATEGIES = [
    css_text_strategy("design-table", FieldName.MATERIALS, row("design", "Materials"), split_list),
]

IP_RATING_STRATEGIES = [
    css_text_strategy("design-table", FieldName.IP_RATING, row("design", "Resistance certificates")),
]

COLORS_STRATEGIES = [
    css_array_strategy("color-chips", FieldName.COLORS, row("design", "Colors") + " .color-sep"),
    css_text_strategy("design-table", FieldName.COLORS, row("design", "Colors"), split_list),
]

DISPLAY_SIZE_STRATEGIES = [
    css_text_strategy("design-table", FieldName.DISPLAY, row("design", "Diagonal"), parse_display_size),
]

DISPLAY_TYPE_STRATEGIES = [
    css_text_strategy("design-table", FieldName.DISPLAY, row("design", "Type")),
]

RESOLUTION_STRATEGIES = [
    css_text_strategy("design-table", FieldName.DISPLAY, row("design", "Resolution"), parse_resolution),
]

ASPECT_RATIO_STRATEGIES = [
    css_text_strategy("design-table", FieldName.DISPLAY, row("design", "Aspect Ratio")),
]

PPI_STRATEGIES = [
    css_text_strategy("design-table", FieldName.DISPLAY, row("design", "Density"), parse_ppi),
]

DISPLAY_FEATURES_STRATEGIES = [
    css_array_strategy("design-list", FieldName.DISPLAY_FEATURES, row("design", "Others") + " li"),
]

_PROCESSOR_TABLE = 'section.container-sheet-hardware h3:has-text("Processor") + .k-dltable'

CPU_STRATEGIES = [
    css_text_strategy("processor-table", FieldName.CPU, f'{_PROCESSOR_TABLE} tr:has-text("Model") td'),
]

CPU_CORES_STRATEGIES = [
    css_text_strategy(
        "processor-table",
        FieldName.CPU_CORES,
        f'{_PROCESSOR_TABLE} tr:has-text("CPU") td',
        parse_cpu_cores,
    ),
]

GPU_STRATEGIES = [
    css_text_strategy("hardware-table", FieldName.GPU, row("hardware", "GPU")),
]

SKU_STRATEGIES = [
    css_attr_strategy(
        "versions-data", FieldName.SKUS, "header .grouped-versions-list", "data-versions", parse_skus
    ),
]

SD_SLOT_STRATEGIES = [
    css_text_strategy("hardware-table", FieldName.SD_SLOT, row("hardware", "SD Slot"), parse_yes),
]

FINGERPRINT_STRATEGIES = [
    css_text_strategy(
        "security-table",
        FieldName.FINGERPRINT,
        'section.container-sheet-hardware h3:has-text("Security") + .k-dltable tr:has-text("Fingerprint") td',
        parse_fingerprint_position,
    ),
]

BENCHMARK_STRATEGIES = [
    css_text_strategy(
        "antutu-score",
        FieldName.BENCHMARKS,
        row("hardware", "Score"),
        lambda text: [b] if (b := parse_benchmark(text)) else None,
    ),
]

_REAR_CAMERA_BLOCKS = 'section.container-sheet-camera h3:has-text("rear camera") + .k-column-blocks'
_SELFIE_CAMERA_BLOCKS = 'section.container-sheet-camera h3.k-h4:has-text("Selfie") + .k-column-blocks'

REAR_CAMERA_STRATEGIES = [
    css_strategy("rear-tables", FieldName.CAMERAS, f"{_REAR_CAMERA_BLOCKS} table", _camera_blocks),
    css_strategy("rear-definition-lists", FieldName.CAMERAS, f"{_REAR_CAMERA_BLOCKS} dl", _camera_blocks),
]

SELFIE_CAMERA_STRATEGIES = [
    css_strategy("selfie-tables", FieldName.CAMERAS, f"{_SELFIE_CAMERA_BLOCKS} table", _camera_blocks),
    css_strategy("selfie-definition-lists", FieldName.CAMERAS, f"{_SELFIE_CAMERA_BLOCKS} dl", _camera_blocks),
]

REAR_CAMERA_FEATURE_STRATEGIES = [
    css_array_strategy(
        "rear-features",
        FieldName.CAMERA_FEATURES,
        'section.container-sheet-camera table.k-dltable th:has-text("Features") + td li',
    ),
]

SELFIE_CAMERA_FEATURE_STRATEGIES = [
    css_array_strategy(
        "selfie-extras",
        FieldName.CAMERA_FEATURES,
        'section.container-sheet-camera dl.k-dl dt:has-text("Extra") + dd li',
    ),
]

NFC_STRATEGIES = [
    css_text_strategy(
        "connectivity-list",
        FieldName.NFC,
        'section.container-sheet-connectivity dl.k-dl dt:has-text("NFC") + dd',
        parse_yes,
    ),
    css_text_strategy("connectivity-table", FieldName.NFC, row("connectivity", "NFC"), parse_yes),
]

BLUETOOTH_STRATEGIES = [
    css_text_strategy(
        "bluetooth-table",
        FieldName.BLUETOOTH,
        'section.container-sheet-connectivity h3.k-h4:has-text("Bluetooth") + .k-dltable tr:has-text("Version") td',
        parse_bluetooth,
    ),
]

USB_STRATEGIES = [
    css_text_strategy("connectivity-table", FieldName.USB, row("connectivity", "Proprietary")),
]

SIM_STRATEGIES = [
    css_text_strategy(
        "sim-table",
        FieldName.SIM,
        'section.container-sheet-connectivity h3.k-h4:has-text("SIM card") + .k-dltable tr:has-text("Type") td',
        parse_sim,
    ),
]

HEADPHONE_JACK_STRATEGIES = [
    css_text_strategy(
        "connectivity-table",
        FieldName.HEADPHONE_JACK,
        row("connectivity", "Audio Jack"),
        lambda text: text == "Yes",
    ),
]

BATTERY_CAPACITY_STRATEGIES = [
    css_text_strategy("battery-table", FieldName.BATTERY, row("battery", "Capacity"), parse_battery_capacity),
]

FAST_CHARGE_STRATEGIES = [
    css_text_strategy("battery-table", FieldName.BATTERY, row("battery", "Fast charge")),
]

OS_STRATEGIES = [
    css_text_strategy("software-table", FieldName.OS, row("software", "Operating System"), get_software),
]


# =============================================================================
# Record assembly
# =============================================================================


def log_extraction_issues(issues: Sequence[ExtractionIssue], slug: str) -> None:
    """Log each issue as a warning; issues never affect control flow."""
    for issue in issues:
        logger.warning(
            f"Extraction issue in {issue.field.value}: {issue.message} (strategy: {issue.strategy})",
            extra={
                "slug": slug,
                "field": issue.field.value,
                "selector": issue.selector,
                "strategy": issue.strategy,
            },
        )


async def extract_phone_data(page: Any, slug: str) -> ExtractionResult[RawPhoneData]:
    """Extract a full device record from a rendered page.

    Args:
        page: Playwright page with the device sheet loaded
        slug: Device identifier

    Returns:
        ExtractionResult with a best-effort RawPhoneData and all issues

    Raises:
        RequiredFieldError: If the device name cannot be found
        PageClosedError: If the page closes mid-extraction
    """
    ctx = ExtractionContext(page=page, slug=slug)
    issues: list[ExtractionIssue] = []

    async def run(
        field: FieldName,
        strategies: Sequence[ExtractionStrategy[T]],
        required: bool = False,
    ) -> T | None:
        outcome = await run_strategies(ctx, field, strategies, required=required)
        issues.extend(outcome.issues)
        return outcome.value

    brand, name = await run(FieldName.NAME, NAME_STRATEGIES, required=True)

    dimensions = await run(FieldName.DIMENSIONS, DIMENSIONS_STRATEGIES)
    cpu_manufacturer, cpu = split_cpu_model(await run(FieldName.CPU, CPU_STRATEGIES))
    cpu_cores = await run(FieldName.CPU_CORES, CPU_CORES_STRATEGIES)
    benchmarks = await run(FieldName.BENCHMARKS, BENCHMARK_STRATEGIES)
    sim: SimInfo = await run(FieldName.SIM, SIM_STRATEGIES) or SimInfo([], 0)
    fast_charge_text = await run(FieldName.BATTERY, FAST_CHARGE_STRATEGIES)
    software = await run(FieldName.OS, OS_STRATEGIES)

    rear_cameras = await run(FieldName.CAMERAS, REAR_CAMERA_STRATEGIES) or []
    selfie_cameras = await run(FieldName.CAMERAS, SELFIE_CAMERA_STRATEGIES) or []
    rear_features = await run(FieldName.CAMERA_FEATURES, REAR_CAMERA_FEATURE_STRATEGIES) or []
    selfie_features = await run(FieldName.CAMERA_FEATURES, SELFIE_CAMERA_FEATURE_STRATEGIES) or []

    images = await extract_images(ctx)
    scores = await extract_scores(ctx)
    others = await extract_others(ctx)
    for outcome in (images, scores, others):
        issues.extend(outcome.issues)

    data = RawPhoneData(
        slug=slug,
        name=name,
        brand=brand,
        aliases=await run(FieldName.ALIASES, ALIASES_STRATEGIES) or [],
        release_date=await run(FieldName.RELEASE_DATE, RELEASE_DATE_STRATEGIES),
        images=images.value,
        height_mm=dimensions.height_mm if dimensions else None,
        width_mm=dimensions.width_mm if dimensions else None,
        thickness_mm=dimensions.thickness_mm if dimensions else None,
        weight_g=await run(FieldName.WEIGHT, WEIGHT_STRATEGIES),
        materials=await run(FieldName.MATERIALS, MATERIALS_STRATEGIES) or [],
        ip_rating=await run(FieldName.IP_RATING, IP_RATING_STRATEGIES),
        colors=await run(FieldName.COLORS, COLORS_STRATEGIES) or [],
        size_in=await run(FieldName.DISPLAY, DISPLAY_SIZE_STRATEGIES),
        display_type=await run(FieldName.DISPLAY, DISPLAY_TYPE_STRATEGIES),
        resolution=await run(FieldName.DISPLAY, RESOLUTION_STRATEGIES),
        aspect_ratio=await run(FieldName.DISPLAY, ASPECT_RATIO_STRATEGIES),
        ppi=await run(FieldName.DISPLAY, PPI_STRATEGIES),
        display_features=await run(FieldName.DISPLAY_FEATURES, DISPLAY_FEATURES_STRATEGIES) or [],
        cpu=cpu,
        cpu_manufacturer=cpu_manufacturer,
        cpu_cores=cpu_cores.cores if cpu_cores else None,
        cpu_core_clusters=cpu_cores.clusters if cpu_cores else None,
        gpu=await run(FieldName.GPU, GPU_STRATEGIES),
        sd_slot=await run(FieldName.SD_SLOT, SD_SLOT_STRATEGIES),
        skus=await run(FieldName.SKUS, SKU_STRATEGIES) or [],
        fingerprint_position=await run(FieldName.FINGERPRINT, FINGERPRINT_STRATEGIES),
        benchmarks=benchmarks or [],
        nfc=await run(FieldName.NFC, NFC_STRATEGIES),
        bluetooth=await run(FieldName.BLUETOOTH, BLUETOOTH_STRATEGIES),
        sim=sim.types,
        sim_count=sim.count,
        usb=parse_usb(await run(FieldName.USB, USB_STRATEGIES)),
        headphone_jack=await run(FieldName.HEADPHONE_JACK, HEADPHONE_JACK_STRATEGIES),
        battery_capacity_mah=await run(FieldName.BATTERY, BATTERY_CAPACITY_STRATEGIES),
        battery_fast_charging=parse_yes(fast_charge_text),
        battery_wattage=parse_battery_wattage(fast_charge_text),
        cameras=[*rear_cameras, *selfie_cameras],
        camera_features=[*rear_features, *selfie_features],
        os=software.os if software else None,
        os_skin=software.os_skin if software else None,
        scores=scores.value,
        others=others.value,
    )

    logger.debug(
        "Extracted device record",
        extra={"slug": slug, "summary": data.summary, "issue_count": len(issues)},
    )
    return ExtractionResult(data=data, issues=issues)
