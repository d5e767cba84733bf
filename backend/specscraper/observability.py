"""
Observability instrumentation for the device spec scraper.

1. **Structured Logging**
   - JSON logs with trace context correlation (trace_id, span_id)
   - Test mode support for clean pytest output

2. **OpenTelemetry Distributed Tracing**
   - Spans around every scrape invocation
   - Optional export via OTLP gRPC when OTEL_ENABLED is set

3. **Prometheus Metrics**
   - Scrape outcome counters and duration histograms per mode
   - Cache tier decisions, retries and background refresh outcomes

Environment Variables:
    OTEL_SERVICE_NAME: Service name for traces and logs (default: "specscraper")
    OTEL_EXPORTER_OTLP_ENDPOINT: OTLP endpoint (default: "http://tempo:4317")
    OTEL_ENABLED: Set to "true" to export spans
    TESTING: Set to "true" to use plain text logs

Usage:
    from specscraper.observability import tracer, scrapes_total

    with tracer.start_as_current_span("scrape") as span:
        span.set_attribute("scrape.slug", slug)
"""

import logging
import os
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Histogram
from pythonjsonlogger import jsonlogger

from specscraper.core.config import settings

# =============================================================================
# Configuration
# =============================================================================

SERVICE_NAME_VAL = os.getenv("OTEL_SERVICE_NAME", settings.OTEL_SERVICE_NAME)
OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", settings.OTEL_EXPORTER_OTLP_ENDPOINT)


# =============================================================================
# Logging Configuration
# =============================================================================

# Standard LogRecord attributes plus our trace fields; everything else
# on a record came from extra={...}
RESERVED_LOG_ATTRS = frozenset({
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module", "msecs",
    "message", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "thread", "threadName", "taskName",
    "trace_id", "span_id", "service",
})


class StructuredJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that includes OpenTelemetry trace context and extra fields.

    Each record carries level, logger, service, the active span's
    trace_id/span_id, and all fields passed via
    logger.info("msg", extra={...}).
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(
            *args,
            **kwargs,
            timestamp=True,
        )
        self.service_name = SERVICE_NAME_VAL

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        """Add custom fields to the JSON log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = self.service_name

        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            log_record["trace_id"] = format(ctx.trace_id, '032x')
            log_record["span_id"] = format(ctx.span_id, '016x')

        for key, value in record.__dict__.items():
            if key not in RESERVED_LOG_ATTRS and not key.startswith('_'):
                if key not in log_record:
                    log_record[key] = value


def configure_logging() -> None:
    """
    Configure structured JSON logging with trace context.

    In test mode (TESTING=true), uses a simplified text format to avoid
    noise during pytest.

    Example JSON output:
        {"timestamp": "2025-01-15T10:30:00Z", "level": "WARNING",
         "logger": "specscraper.scraping.service", "message": "Fast scrape attempt blocked",
         "service": "specscraper", "slug": "apple-iphone-15", "attempt": 1}
    """
    is_testing = os.getenv("TESTING", "false").lower() == "true"
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if is_testing:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        logging.basicConfig(
            level=level,
            format=log_format,
            force=True
        )
    else:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        handler.setFormatter(StructuredJsonFormatter())

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()
        root_logger.addHandler(handler)


# =============================================================================
# OpenTelemetry Tracing Setup
# =============================================================================

def _create_trace_provider() -> TracerProvider:
    """
    Create and configure the OpenTelemetry TracerProvider.

    Spans are exported over OTLP gRPC only when OTEL_ENABLED is set.
    The BatchSpanProcessor exports asynchronously, so an unreachable
    collector drops spans without affecting scrapes.
    """
    resource = Resource(attributes={
        SERVICE_NAME: SERVICE_NAME_VAL
    })
    provider = TracerProvider(resource=resource)

    if settings.OTEL_ENABLED:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        trace_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            insecure=True
        )
        provider.add_span_processor(BatchSpanProcessor(trace_exporter))

    return provider


def setup_tracing() -> TracerProvider:
    """Install the tracer provider globally and return it."""
    provider = _create_trace_provider()
    trace.set_tracer_provider(provider)
    logging.getLogger(__name__).info(
        f"Tracing configured for service '{SERVICE_NAME_VAL}' "
        f"(export {'enabled' if settings.OTEL_ENABLED else 'disabled'})"
    )
    return provider


_tracing_installed = False


def setup_observability() -> None:
    """Install tracing once per process. Logging is configured at import."""
    global _tracing_installed
    if _tracing_installed:
        return
    setup_tracing()
    _tracing_installed = True


# =============================================================================
# Prometheus Metrics Definitions
# =============================================================================

# Counter: scrape invocations by mode (full, fast) and outcome (success, cached, failed)
scrapes_total = Counter(
    name="specscraper_scrapes_total",
    documentation="Total number of scrape invocations",
    labelnames=["mode", "outcome"]
)

# Histogram: wall-clock duration of a whole scrape invocation
scrape_duration_seconds = Histogram(
    name="specscraper_scrape_duration_seconds",
    documentation="Scrape invocation duration in seconds",
    labelnames=["mode"],
    buckets=(0.5, 1, 2.5, 5, 10, 20, 30, 60, 120, 300),
)

# Counter: cache tier chosen for full scrapes (fresh, stale, miss)
cache_decisions_total = Counter(
    name="specscraper_cache_decisions_total",
    documentation="Cache tier decisions made by the scrape orchestrator",
    labelnames=["tier"]
)

# Counter: fast-path retries by the classified reason
scrape_retries_total = Counter(
    name="specscraper_scrape_retries_total",
    documentation="Fast-path retries after bot-block failures",
    labelnames=["reason"]
)

# Counter: stale-while-revalidate refresh outcomes (success, failed)
background_refreshes_total = Counter(
    name="specscraper_background_refreshes_total",
    documentation="Background cache refreshes by outcome",
    labelnames=["outcome"]
)


# =============================================================================
# Tracer for Custom Instrumentation
# =============================================================================

tracer = trace.get_tracer(__name__)


# Initialize logging configuration at module load
configure_logging()
