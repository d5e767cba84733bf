"""
Base types for strategy-based field extraction.

A field is extracted by trying an ordered list of strategies against a
rendered page. Each strategy either returns a value, returns None when the
value is absent, or raises StrategyError when its DOM query itself failed.
Absent and failed are distinct outcomes: only failures become issues.
"""

from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class FieldName(str, Enum):
    """Every attribute the extractors know how to pull from a device page."""

    NAME = "name"
    BRAND = "brand"
    ALIASES = "aliases"
    RELEASE_DATE = "release_date"
    IMAGES = "images"
    DIMENSIONS = "dimensions"
    WEIGHT = "weight"
    MATERIALS = "materials"
    IP_RATING = "ip_rating"
    COLORS = "colors"
    DISPLAY = "display"
    DISPLAY_FEATURES = "display_features"
    CPU = "cpu"
    CPU_CORES = "cpu_cores"
    GPU = "gpu"
    SKUS = "skus"
    SD_SLOT = "sd_slot"
    FINGERPRINT = "fingerprint"
    BENCHMARKS = "benchmarks"
    NFC = "nfc"
    BLUETOOTH = "bluetooth"
    SIM = "sim"
    USB = "usb"
    HEADPHONE_JACK = "headphone_jack"
    BATTERY = "battery"
    CAMERAS = "cameras"
    CAMERA_FEATURES = "camera_features"
    OS = "os"
    SCORES = "scores"
    OTHERS = "others"


@dataclass(frozen=True)
class ExtractionIssue:
    """A non-fatal record that one strategy failed to produce a value."""

    field: FieldName
    selector: str
    strategy: str
    message: str


@dataclass(frozen=True)
class StrategyOutcome(Generic[T]):
    """Result of running one field's strategy list."""

    value: T | None
    issues: list[ExtractionIssue] = dataclass_field(default_factory=list)


@dataclass
class ExtractionResult(Generic[T]):
    """Best-effort record plus the advisory issues collected while building it."""

    data: T
    issues: list[ExtractionIssue] = dataclass_field(default_factory=list)


@dataclass
class ExtractionContext:
    """Per-invocation handle on the page being extracted.

    Attributes:
        page: Playwright page (or any object exposing the same query API)
        slug: Device identifier the page belongs to
    """

    page: Any
    slug: str


class ExtractionStrategy(Protocol[T_co]):
    """One named tactic for extracting a single field.

    Strategies only read from the page and must not mutate shared state.
    """

    name: str
    selector: str

    async def run(self, ctx: ExtractionContext) -> T_co | None:
        """Return the value, or None when it is absent.

        Raises:
            StrategyError: If the DOM query itself failed.
            PageClosedError: If the page went away mid-extraction.
        """
        ...


class ExtractionError(Exception):
    """Base exception for extraction errors.

    Attributes:
        field: Field being extracted when the error occurred
        selector: Selector of the strategy involved
        strategy: Name of the strategy involved
        message: Human-readable error message
    """

    def __init__(
        self,
        field: FieldName,
        selector: str,
        strategy: str,
        message: str,
    ):
        super().__init__(message)
        self.field = field
        self.selector = selector
        self.strategy = strategy
        self.message = message

    def __str__(self) -> str:
        return f"[{self.field.value}/{self.strategy}] {self.message}"

    def to_issue(self) -> ExtractionIssue:
        return ExtractionIssue(
            field=self.field,
            selector=self.selector,
            strategy=self.strategy,
            message=self.message,
        )


class StrategyError(ExtractionError):
    """A single strategy's query failed (timeout, detached frame, bad data)."""


class RequiredFieldError(ExtractionError):
    """A required field produced no value after every strategy was tried."""


class PageClosedError(ExtractionError):
    """The page handle was closed mid-extraction. Never recorded as an issue."""
