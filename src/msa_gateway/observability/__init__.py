from __future__ import annotations

from msa_gateway.observability.logging import (
    LEVEL_NAME_TO_INT,
    LOG_FORMAT_CONSOLE,
    LOG_FORMAT_ENV,
    LOG_FORMAT_JSON,
    LogContext,
    StructuredConsoleFormatter,
    StructuredJSONFormatter,
    get_logger,
)
from msa_gateway.observability.metrics import (
    ClientMetrics,
    Counter,
    Gauge,
    Histogram,
    MetricLabels,
)

__all__ = [
    "LEVEL_NAME_TO_INT",
    "LOG_FORMAT_CONSOLE",
    "LOG_FORMAT_ENV",
    "LOG_FORMAT_JSON",
    "LogContext",
    "StructuredConsoleFormatter",
    "StructuredJSONFormatter",
    "get_logger",
    "ClientMetrics",
    "Counter",
    "Gauge",
    "Histogram",
    "MetricLabels",
]
