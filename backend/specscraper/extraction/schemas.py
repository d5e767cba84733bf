"""
Pydantic schemas for extracted and normalized device data.

RawPhoneData is what the field extractors produce from a page, before any
AI processing. PhoneData is the normalized record persisted by the full
scrape path. Both serialize to JSON for the phone data store.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

CpuCoreRole = Literal["performance", "efficiency", "balanced", "unknown"]

UsbType = Literal["USB-A", "USB-C", "Lightning"]

FingerprintPosition = Literal["screen", "side", "back"]

# Normalized camera roles the AI normalizer may assign
CameraType = Literal["main", "wide", "zoom", "selfie", "macro", "lidar", "infrared"]

CameraFeature = Literal["macro", "monochrome"]


class CpuCoreCluster(BaseModel):
    """One group of identical CPU cores, e.g. the "4x2.8GHz" in "4x2.8GHz + 4x2.0GHz"."""

    count: int = Field(..., ge=1, description="Number of cores in the cluster")
    max_freq_mhz: int | None = Field(
        default=None,
        description="Maximum frequency in MHz, None when the group states none",
    )
    label: str | None = Field(
        default=None,
        description="Core name following the frequency, e.g. 'Cortex-X4'",
    )
    role: CpuCoreRole = "unknown"
    raw_group: str = Field(..., description="The input fragment this cluster was parsed from")
    index: int = Field(..., ge=0, description="Position of the cluster in the input")


class Sku(BaseModel):
    """A memory configuration and the markets it is sold in."""

    market_ids: list[str] = Field(default_factory=list)
    ram_gb: float
    storage_gb: float


class Benchmark(BaseModel):
    name: str
    score: float


class Camera(BaseModel):
    """A single camera as read from the page."""

    resolution_mp: float
    aperture_fstop: str | None = None
    sensor: str | None = None
    type: str = "Selfie"
    features: list[str] = Field(default_factory=list)


class NormalizedCamera(BaseModel):
    resolution_mp: float
    aperture_fstop: str | None = None
    sensor: str | None = None
    type: CameraType
    features: list[CameraFeature] = Field(default_factory=list)


class _PhoneFields(BaseModel):
    """Attributes shared by the raw and normalized device records."""

    model_config = ConfigDict(extra="ignore")

    slug: str
    name: str
    brand: str
    aliases: list[str] = Field(default_factory=list)
    release_date: datetime | None = None
    images: list[str] | None = None

    # Design
    height_mm: float | None = None
    width_mm: float | None = None
    thickness_mm: float | None = None
    weight_g: float | None = None
    materials: list[str] = Field(default_factory=list)
    ip_rating: str | None = None
    colors: list[str] = Field(default_factory=list)

    # Display
    size_in: float | None = None
    display_type: str | None = None
    resolution: str | None = None
    aspect_ratio: str | None = None
    ppi: int | None = None
    display_features: list[str] = Field(default_factory=list)

    # Hardware
    cpu: str | None = None
    cpu_manufacturer: str | None = None
    cpu_cores: list[str] | None = None
    cpu_core_clusters: list[CpuCoreCluster] | None = None
    gpu: str | None = None
    sd_slot: bool | None = None
    skus: list[Sku] = Field(default_factory=list)
    fingerprint_position: FingerprintPosition | None = None
    benchmarks: list[Benchmark] = Field(default_factory=list)

    # Connectivity
    nfc: bool | None = None
    bluetooth: str | None = None
    sim: list[str] = Field(default_factory=list)
    sim_count: int = 0
    usb: UsbType | None = None
    headphone_jack: bool | None = None

    # Battery
    battery_capacity_mah: int | None = None
    battery_fast_charging: bool | None = None
    battery_wattage: float | None = None

    # Camera
    camera_features: list[str] = Field(default_factory=list)

    # Software
    os: str | None = None
    os_skin: str | None = None

    # Misc
    scores: str | None = Field(
        default=None,
        description="Pros and cons joined with '|'",
    )
    others: list[str] | None = None


class RawPhoneData(_PhoneFields):
    """Device record exactly as extracted from the page."""

    cameras: list[Camera] = Field(default_factory=list)

    @property
    def summary(self) -> str:
        return f"{len(self.cameras)} cameras, {len(self.skus)} SKUs"


class PhoneData(_PhoneFields):
    """Device record after AI normalization."""

    cameras: list[NormalizedCamera] = Field(default_factory=list)
