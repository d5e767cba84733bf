"""
Pure parsers for free-text device specification values.

Every parser takes the raw text of one table cell (or attribute) and
returns a typed value, or None when the text does not contain one.
An unparseable value is a normal outcome, never an error, with one
exception: parse_skus raises ValueError for malformed JSON so the
strategy that read it is recorded as failed rather than absent.
"""

import json
import re
from datetime import datetime, timezone
from typing import NamedTuple

from parsel import Selector

from specscraper.extraction.schemas import (
    Benchmark,
    Camera,
    CpuCoreCluster,
    CpuCoreRole,
    FingerprintPosition,
    Sku,
    UsbType,
)

# =============================================================================
# CPU
# =============================================================================

_CORE_FREQ_PATTERN = re.compile(r"(\d+)\s*[x×]\s*([\d.,]+)\s*(ghz|mhz)", re.IGNORECASE)

# Cluster boundaries: "+", "&", or a comma introducing the next "Nx" count
_GROUP_SPLIT_PATTERN = re.compile(r"\s*\+\s*|\s*&\s*|\s*,\s*(?=\d+\s*[x×])", re.IGNORECASE)

# Pass 1: frequency attached to the count token ("4x2.8GHz Cortex-A78")
_ATTACHED_PATTERN = re.compile(r"^(\d+)\s*[x×]\s*([\d.,]+)\s*(ghz|mhz)\b(.*)$", re.IGNORECASE)

# Pass 2: count first, frequency later in the group ("4x Cortex-A78 @ 2.4 GHz")
_COUNT_PATTERN = re.compile(r"^(\d+)\s*(?:[x×]|cores?\b)\s*(.*)$", re.IGNORECASE)
_FREQ_PATTERN = re.compile(r"([\d.,]+)\s*(ghz|mhz)\b", re.IGNORECASE)

_PERFORMANCE_MARKER = re.compile(r"\bp[- ]?cores?\b|\bperformance\b", re.IGNORECASE)
_EFFICIENCY_MARKER = re.compile(r"\be[- ]?cores?\b|\befficiency\b", re.IGNORECASE)

# Known microarchitecture codenames, checked in order. "mid" cores are
# performance cores unless another cluster in the same CPU is a flagship core.
_CODENAME_ROLES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"cortex[- ]?x\d", re.IGNORECASE), "performance"),
    (re.compile(r"\bprime\b", re.IGNORECASE), "performance"),
    (re.compile(r"firestorm|avalanche|everest|lightning|vortex|monsoon|hurricane|mongoose", re.IGNORECASE), "performance"),
    (re.compile(r"icestorm|blizzard|sawtooth|thunder|mistral|tempest|zephyr", re.IGNORECASE), "efficiency"),
    (re.compile(r"cortex[- ]?a5\d{1,2}\b|\bsilver\b", re.IGNORECASE), "efficiency"),
    (re.compile(r"cortex[- ]?a7\d{1,2}\b|\bgold\b", re.IGNORECASE), "mid"),
)


_LEADING_NUMBER = re.compile(r"\d+(?:\.\d+)?|\.\d+")


def _to_mhz(value: str, unit: str) -> int | None:
    """Frequency in MHz from the leading number of value ("2.8.1" reads as 2.8)."""
    match = _LEADING_NUMBER.match(value.replace(",", "."))
    if not match:
        return None
    frequency = float(match.group())
    if unit.lower() == "ghz":
        return round(frequency * 1000)
    return round(frequency)


def _clean_label(text: str) -> str | None:
    label = re.sub(r"\s+", " ", text).strip(" @-–()[],:")
    return label or None


def get_cpu_cores(text: str | None) -> list[str] | None:
    """Core groups as "countxMHz" strings.

    Example:
        get_cpu_cores("1x3.2GHz • 3x2.42GHz")  # ["1x3200", "3x2420"]
    """
    if not text:
        return None

    normalized = re.sub(r"\s+", " ", text.replace("•", " ")).strip()
    result = []
    for count, freq, unit in _CORE_FREQ_PATTERN.findall(normalized):
        mhz = _to_mhz(freq, unit)
        if mhz is not None:
            result.append(f"{int(count)}x{mhz}")
    return result or None


def _codename_role(text: str) -> str | None:
    for pattern, role in _CODENAME_ROLES:
        if pattern.search(text):
            return role
    return None


def _parse_cluster(group: str, index: int) -> CpuCoreCluster | None:
    match = _ATTACHED_PATTERN.match(group)
    if match:
        count, freq, unit, rest = match.groups()
        return CpuCoreCluster(
            count=int(count),
            max_freq_mhz=_to_mhz(freq, unit),
            label=_clean_label(rest),
            raw_group=group,
            index=index,
        )

    match = _COUNT_PATTERN.match(group)
    if not match:
        return None

    count, rest = match.groups()
    max_freq_mhz = None
    freq_match = _FREQ_PATTERN.search(rest)
    if freq_match:
        max_freq_mhz = _to_mhz(freq_match.group(1), freq_match.group(2))
        rest = rest[: freq_match.start()] + rest[freq_match.end():]
    return CpuCoreCluster(
        count=int(count),
        max_freq_mhz=max_freq_mhz,
        label=_clean_label(rest),
        raw_group=group,
        index=index,
    )


def _assign_roles(clusters: list[CpuCoreCluster]) -> None:
    roles: list[str | None] = []
    for cluster in clusters:
        if _PERFORMANCE_MARKER.search(cluster.raw_group):
            roles.append("performance")
        elif _EFFICIENCY_MARKER.search(cluster.raw_group):
            roles.append("efficiency")
        else:
            roles.append(_codename_role(cluster.raw_group))

    has_flagship = "performance" in roles
    roles = [
        ("balanced" if has_flagship else "performance") if role == "mid" else role
        for role in roles
    ]

    frequencies = [c.max_freq_mhz for c in clusters if c.max_freq_mhz is not None]
    highest = max(frequencies, default=None)
    lowest = min(frequencies, default=None)
    by_frequency = len(clusters) > 1 and highest is not None and highest != lowest

    for cluster, role in zip(clusters, roles):
        if role is None and by_frequency and cluster.max_freq_mhz is not None:
            if cluster.max_freq_mhz == highest:
                role = "performance"
            elif cluster.max_freq_mhz == lowest:
                role = "efficiency"
            else:
                role = "balanced"
        cluster.role = role or "unknown"


def get_cpu_core_clusters(text: str | None) -> list[CpuCoreCluster] | None:
    """Parse a CPU frequency description into core clusters.

    Groups are split on "+", "&" and commas that introduce another count.
    Roles come from explicit P-core/E-core markers, then known codenames,
    then relative frequency across the clusters of the same CPU. Clusters
    without a frequency are kept with max_freq_mhz=None.

    Example:
        clusters = get_cpu_core_clusters("4x2.8GHz + 4x2.0GHz")
        [c.role for c in clusters]  # ["performance", "efficiency"]
    """
    if not text:
        return None

    normalized = re.sub(r"\s+", " ", text.replace("•", " ")).strip()
    groups = [g.strip() for g in _GROUP_SPLIT_PATTERN.split(normalized) if g and g.strip()]

    clusters: list[CpuCoreCluster] = []
    for group in groups:
        cluster = _parse_cluster(group, index=len(clusters))
        if cluster is not None:
            clusters.append(cluster)

    if not clusters:
        return None

    _assign_roles(clusters)
    return clusters


class CpuCores(NamedTuple):
    cores: list[str] | None
    clusters: list[CpuCoreCluster] | None


def parse_cpu_cores(text: str | None) -> CpuCores | None:
    """Both core readings of one CPU cell, or None when neither is present."""
    cores = get_cpu_cores(text)
    clusters = get_cpu_core_clusters(text)
    if cores is None and clusters is None:
        return None
    return CpuCores(cores, clusters)


def split_cpu_model(text: str | None) -> tuple[str | None, str | None]:
    """Split "Qualcomm Snapdragon 8 Gen 3" into manufacturer and model."""
    if not text:
        return None, None
    manufacturer, _, model = text.strip().partition(" ")
    return manufacturer or None, model.strip() or None


# =============================================================================
# Dates and software
# =============================================================================

MONTHS = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}


def parse_release_date(text: str | None) -> datetime | None:
    """Parse "<Month> <Year>" (English, any case) into the first of that month, UTC."""
    if not text:
        return None

    match = re.search(r"([a-z]+)\s+(\d{4})", text.strip().lower())
    if not match:
        return None

    month = MONTHS.get(match.group(1))
    if month is None:
        return None
    try:
        return datetime(int(match.group(2)), month, 1, tzinfo=timezone.utc)
    except ValueError:
        return None


class Software(NamedTuple):
    os: str
    os_skin: str


def get_software(text: str | None) -> Software | None:
    """OS from the first line, vendor skin from the third.

    The cell reads "Android 14\\n<blank>\\nOne UI 6.1 (based on ...)".
    """
    if not text:
        return None

    lines = text.split("\n")
    os_match = re.search(r"\w+ ?[\d.,]*", lines[0].strip())
    if not os_match:
        return None

    skin = lines[2].split("(")[0].strip() if len(lines) > 2 else ""
    return Software(os=os_match.group(0).strip(), os_skin=skin)


# =============================================================================
# Design and display
# =============================================================================


class Dimensions(NamedTuple):
    height_mm: float | None
    width_mm: float | None
    thickness_mm: float | None


def parse_dimensions(text: str | None) -> Dimensions | None:
    """Three numbers sorted largest first: height, width, thickness.

    Anything other than exactly three numbers is ambiguous and yields None.
    """
    if not text:
        return None

    numbers = re.findall(r"\b(\d+\.?\d*)\b", text)
    if len(numbers) != 3:
        return None

    height, width, thickness = sorted((float(n) for n in numbers), reverse=True)
    return Dimensions(height or None, width or None, thickness or None)


def _first_float(pattern: str, text: str | None, flags: int = 0) -> float | None:
    if not text:
        return None
    match = re.search(pattern, text, flags)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def parse_weight(text: str | None) -> float | None:
    return _first_float(r"([\d.]+)\s*g", text)


def parse_display_size(text: str | None) -> float | None:
    return _first_float(r'([\d.]+)\s*"', text)


def parse_resolution(text: str | None) -> str | None:
    if not text:
        return None
    match = re.search(r"(\d+\s*x\s*\d+)", text, re.IGNORECASE)
    return match.group(1) if match else None


def parse_ppi(text: str | None) -> int | None:
    if not text:
        return None
    match = re.search(r"(\d+)\s*ppi", text, re.IGNORECASE)
    return int(match.group(1)) if match else None


def split_list(text: str | None) -> list[str] | None:
    """Comma-separated cell into a list of trimmed, non-empty items."""
    if not text:
        return None
    items = [item.strip() for item in re.sub(r"\s+", " ", text).split(",")]
    return [item for item in items if item] or None


# =============================================================================
# Hardware
# =============================================================================


def parse_skus(text: str | None) -> list[Sku] | None:
    """Group the ``data-versions`` JSON into SKUs by RAM/storage.

    The attribute maps market keys to {"mkid": ..., "devices": {...}} with
    ram/rom in MB. Markets selling the same configuration share one SKU.

    Raises:
        ValueError: If the attribute is not valid JSON or lacks the expected keys
    """
    if not text:
        return None

    data = json.loads(text)
    markets = data.values() if isinstance(data, dict) else data

    grouped: dict[str, Sku] = {}
    try:
        for market in markets:
            devices = market["devices"]
            for device in devices.values() if isinstance(devices, dict) else devices:
                ram_gb = device["ram"] / 1024
                storage_gb = device["rom"] / 1024
                key = f"{ram_gb}/{storage_gb}"
                sku = grouped.setdefault(key, Sku(ram_gb=ram_gb, storage_gb=storage_gb))
                if market["mkid"] not in sku.market_ids:
                    sku.market_ids.append(market["mkid"])
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed versions data: {e!r}") from e

    return list(grouped.values()) or None


def parse_benchmark(text: str | None) -> Benchmark | None:
    """AnTuTu cell: score on the first line, version on the second."""
    if not text:
        return None

    parts = [re.sub(r"[•.,]", "", part).strip() for part in text.split("\n")]
    parts = [part for part in parts if part]
    if len(parts) < 2:
        return None

    score, name = parts[0], parts[1]
    try:
        return Benchmark(name=name, score=float(score))
    except ValueError:
        return None


def parse_fingerprint_position(text: str | None) -> FingerprintPosition | None:
    if not text:
        return None
    for position in ("screen", "side", "back"):
        if position in text:
            return position
    return None


def parse_yes(text: str | None) -> bool | None:
    """Yes/No cell into a bool, None when the cell is absent."""
    if text is None:
        return None
    return "yes" in text.lower()


# =============================================================================
# Connectivity and battery
# =============================================================================

SIM_TYPES = ("Nano-SIM", "Micro-SIM", "Mini-SIM", "eSIM")

_SIM_COUNTS = {"single": 1, "dual": 2, "triple": 3}


class SimInfo(NamedTuple):
    types: list[str]
    count: int


def parse_sim(text: str | None) -> SimInfo:
    """SIM types listed in the cell (inside parentheses when present) and slot count.

    Example:
        parse_sim("Dual SIM (Nano-SIM, eSIM)")  # SimInfo(["Nano-SIM", "eSIM"], 2)
    """
    if not text:
        return SimInfo([], 0)

    inner = re.search(r"\(([^)]*)\)", text)
    scope = inner.group(1) if inner else text
    types = [t for t in SIM_TYPES if re.search(re.escape(t), scope, re.IGNORECASE)]

    count = len(types)
    word = re.search(r"\b(single|dual|triple)\b", text, re.IGNORECASE)
    if word:
        count = _SIM_COUNTS[word.group(1).lower()]
    return SimInfo(types, count)


def parse_bluetooth(text: str | None) -> str | None:
    if not text:
        return None
    match = re.search(r"Bluetooth\s*([\d.]+)", text, re.IGNORECASE) or re.match(
        r"\s*(\d+(?:\.\d+)?)", text
    )
    return f"Bluetooth {match.group(1)}" if match else None


def parse_usb(text: str | None) -> UsbType:
    """A proprietary connector on this site means Lightning, otherwise USB-C."""
    if text and "Yes" in text:
        return "Lightning"
    return "USB-C"


def parse_battery_capacity(text: str | None) -> int | None:
    if not text:
        return None
    match = re.match(r"\s*(\d+)", text)
    return int(match.group(1)) if match else None


def parse_battery_wattage(text: str | None) -> float | None:
    return _first_float(r"(\d+(?:\.\d+)?)\s*w\b", text, re.IGNORECASE)


# =============================================================================
# Cameras and images
# =============================================================================


def _node_text(node: Selector) -> str:
    return "".join(node.xpath(".//text()").getall()).strip()


def _camera_fields(block: Selector) -> dict[str, str]:
    fields: dict[str, str] = {}
    tag = block.root.tag if hasattr(block.root, "tag") else ""

    if tag == "table":
        for row in block.xpath(".//tr"):
            header = row.xpath("./th")
            value = row.xpath("./td")
            if header and value:
                key, text = _node_text(header[0]), _node_text(value[0])
                if key and text:
                    fields[key] = text
    elif tag == "dl":
        key = ""
        for item in block.xpath(".//dt | .//dd"):
            if item.root.tag == "dt":
                key = _node_text(item)
            elif key:
                fields[key] = _node_text(item)

    return fields


def parse_camera_block(html: str) -> Camera | None:
    """Parse one camera block, either a th/td table or a dt/dd list.

    The resolution is the first decimal number in the Resolution row, so
    "50 Mpx (8160x6144)" gives 50.0. Blocks without a resolution are skipped.
    """
    selector = Selector(text=html)
    blocks = selector.xpath("//body/*[self::table or self::dl] | //body/*/*[self::table or self::dl]")
    if not blocks:
        return None
    block = blocks[0]

    fields = _camera_fields(block)

    head = block.css(".k-head")
    camera_type = (_node_text(head[0]) if head else "") or "Selfie"

    resolution_mp = _first_float(r"\b(\d+\.?\d*)\b", fields.get("Resolution", ""))
    if resolution_mp is None:
        return None

    aperture: str | None = fields.get("Aperture", "").replace("ƒ/", "").replace("f/", "").strip()
    if not aperture or aperture == "Unknown":
        aperture = None

    sensor = fields.get("Sensor")
    if sensor == "--" or not sensor:
        sensor = None

    return Camera(
        resolution_mp=resolution_mp,
        aperture_fstop=aperture,
        sensor=sensor,
        type=camera_type,
    )


def fix_image_url(url: str) -> str:
    """Protocol-relative URLs ("//cdn...") become https URLs."""
    if url.startswith("//"):
        return f"https:{url}"
    return url


def parse_device_title(text: str | None) -> tuple[str, str] | None:
    """Split a page title into (brand, name).

    Example:
        parse_device_title("Price and specifications on Samsung Galaxy S24")
        # ("Samsung", "Galaxy S24")
    """
    if not text:
        return None

    cleaned = text.replace("Price and specifications on", "")
    cleaned = re.split(r"\s[|–-]\s", cleaned)[0].strip()
    words = cleaned.split()
    if not words:
        return None
    return words[0], " ".join(words[1:])

