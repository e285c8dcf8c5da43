from __future__ import annotations

import logging
import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from msa_gateway.observability.logging import get_logger

from .config import TelemetryConfig

logger = logging.getLogger(__name__)


def configure_telemetry(config: TelemetryConfig) -> TracerProvider | None:
    """Install the tracer provider and trace-aware logging.

    Returns the SDK provider, or None when tracing is not configured. Calling
    it again reuses an SDK provider that is already installed.
    """

    if not config.enabled:
        return None

    provider = None
    if config.tracing_enabled:
        provider = _configure_tracing(config)
    if config.logging_enabled:
        configure_logging(config)
    return provider


def _configure_tracing(config: TelemetryConfig) -> TracerProvider:
    current_provider = trace.get_tracer_provider()
    if isinstance(current_provider, TracerProvider):
        return current_provider

    provider = TracerProvider(resource=Resource.create({"service.name": config.service_name}))

    endpoint = config.otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        except ImportError:
            logger.error("Please install opentelemetry-exporter-otlp-proto-http to export traces.")
            raise RuntimeError("Please install opentelemetry-exporter-otlp-proto-http to export traces.")
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    if config.console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    logger.info("Tracing configured for %s (otlp=%s)", config.service_name, endpoint or "-")
    return provider


class TraceContextFilter(logging.Filter):
    """Stamps the current trace and span ids onto log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            # A trace id bound through LogContext or extra= wins over the active span.
            if getattr(record, "trace_id", None) in (None, "-"):
                record.trace_id = format(span_context.trace_id, "032x")
            if getattr(record, "span_id", None) is None:
                record.span_id = format(span_context.span_id, "016x")
        return True


def configure_logging(config: TelemetryConfig) -> logging.Logger:
    """Attach the structured handler to the package logger."""

    package_logger = get_logger("msa_gateway", log_format=config.log_format, level=config.log_level)
    # Handler filters also see records propagated from child loggers.
    for handler in package_logger.handlers:
        if not any(isinstance(f, TraceContextFilter) for f in handler.filters):
            handler.addFilter(TraceContextFilter())
    return package_logger
