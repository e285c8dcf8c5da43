from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TelemetryConfig:
    """Settings for ``configure_telemetry()``.

    Attributes:
        enabled: Master switch; when False nothing is installed.
        service_name: ``service.name`` resource attribute of exported spans.
        otlp_endpoint: OTLP/HTTP traces endpoint such as
            ``http://collector:4318/v1/traces``. Falls back to
            ``OTEL_EXPORTER_OTLP_ENDPOINT``; no OTLP export when both are unset.
        console_export: Also print finished spans to stdout.
        tracing_enabled: Install the SDK tracer provider.
        logging_enabled: Attach the structured handler to the ``msa_gateway`` logger.
        log_level: Level name for that logger.
        log_format: ``json`` or ``console``.
    """

    enabled: bool = True
    service_name: str = "api-gateway"
    otlp_endpoint: str | None = None
    console_export: bool = False
    tracing_enabled: bool = True
    logging_enabled: bool = True
    log_level: str = "INFO"
    log_format: str = "json"
