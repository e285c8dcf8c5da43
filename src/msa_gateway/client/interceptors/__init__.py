"""Client interceptors for cross-cutting concerns."""

from __future__ import annotations

from msa_gateway.client.interceptors.otel_client import (
    OTelRequestInterceptor,
    OTelResponseInterceptor,
    tracing_interceptors,
)
from msa_gateway.client.midwares import (
    ClientContext,
    ClientRequestInterceptor,
    ClientResponseInterceptor,
)

__all__ = [
    "ClientContext",
    "ClientRequestInterceptor",
    "ClientResponseInterceptor",
    "OTelRequestInterceptor",
    "OTelResponseInterceptor",
    "tracing_interceptors",
]
