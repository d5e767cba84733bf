"""
Scrape event stream types.

Each scrape invocation yields a finite, ordered sequence of events ending in
exactly one terminal event: ScrapeResult or FastScrapeResult on success,
ScrapeFailed on failure. Events are discriminated by their ``type`` field so
a transport layer can serialize them with model_dump(mode="json").
"""

import time
from collections.abc import Callable
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from specscraper.extraction.schemas import PhoneData, RawPhoneData

LogLevel = Literal["debug", "info", "warn", "error"]


class ProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    stage: str
    percent: int = Field(ge=0, le=100)
    duration_ms: int | None = None


class LogEvent(BaseModel):
    type: Literal["log"] = "log"
    level: LogLevel = "info"
    message: str


class RetryEvent(BaseModel):
    type: Literal["retry"] = "retry"
    attempt: int
    max_attempts: int
    delay_seconds: float
    reason: str


class ScrapeResult(BaseModel):
    """Terminal event of a full scrape: the normalized record."""

    type: Literal["result"] = "result"
    slug: str
    data: PhoneData


class FastScrapeResult(BaseModel):
    """Terminal event of a fast scrape.

    ``cached`` is True when the HTML was already cached and nothing was
    fetched; ``data`` is then None.
    """

    type: Literal["fast_result"] = "fast_result"
    slug: str
    cached: bool
    data: RawPhoneData | None = None


class ScrapeFailed(BaseModel):
    """Terminal event of a failed scrape."""

    type: Literal["error"] = "error"
    slug: str
    message: str
    retryable: bool = False


ScrapeEvent = Annotated[
    Union[ProgressEvent, LogEvent, RetryEvent, ScrapeResult, FastScrapeResult, ScrapeFailed],
    Field(discriminator="type"),
]

TERMINAL_EVENTS = (ScrapeResult, FastScrapeResult, ScrapeFailed)


class EventEmitter:
    """Builds events for one invocation and times its steps.

    Progress never goes backwards within an invocation: a percent lower than
    the last one emitted is raised to it.

    Example:
        emitter = EventEmitter()
        yield emitter.progress("Checking cache", 1)
        ...
        yield emitter.progress("Cache found", 3, duration_ms=emitter.elapsed_ms())
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._started = clock()
        self._step_started = self._started
        self._percent = 0

    @property
    def percent(self) -> int:
        return self._percent

    def elapsed_ms(self) -> int:
        """Milliseconds since the last call (or creation); restarts the step timer."""
        now = self._clock()
        duration = int((now - self._step_started) * 1000)
        self._step_started = now
        return duration

    def total_ms(self) -> int:
        return int((self._clock() - self._started) * 1000)

    def progress(self, stage: str, percent: int, duration_ms: int | None = None) -> ProgressEvent:
        self._percent = max(self._percent, min(100, percent))
        return ProgressEvent(stage=stage, percent=self._percent, duration_ms=duration_ms)

    def log(self, message: str, level: LogLevel = "info") -> LogEvent:
        return LogEvent(level=level, message=message)

    def retry(self, attempt: int, max_attempts: int, delay_seconds: float, reason: str) -> RetryEvent:
        return RetryEvent(
            attempt=attempt,
            max_attempts=max_attempts,
            delay_seconds=delay_seconds,
            reason=reason,
        )
