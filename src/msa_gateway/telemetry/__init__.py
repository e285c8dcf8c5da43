"""OpenTelemetry bootstrap for the gateway process.

Provides a single `configure_telemetry()` entrypoint that installs the SDK
tracer provider used by the client tracing interceptors and wires trace ids
into structured logs.
"""

from .config import TelemetryConfig
from .setup import TraceContextFilter, configure_logging, configure_telemetry

__all__ = [
    "TelemetryConfig",
    "TraceContextFilter",
    "configure_logging",
    "configure_telemetry",
]
