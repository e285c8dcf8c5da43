"""Public API for msa_gateway.

The gateway fans one inbound request out to a fixed set of downstream
greeting services. Each call is traced as a child of the inbound span and
isolated behind a per-service circuit breaker that answers with a fallback.
"""

from msa_gateway.client import (
    GREETING_SERVICES,
    BreakerHttpInvoker,
    ClientRegistry,
    RemoteCall,
    ResolvedEndpoint,
    ServiceDescriptor,
    TypedClient,
    get_client_registry,
    reset_client_registry,
    resolve_endpoint,
)
from msa_gateway.config import GatewayConfig, load_config
from msa_gateway.exceptions import (
    CallTimeoutError,
    CircuitBreakerOpenError,
    DecodeError,
    GatewayError,
    RemoteFailureError,
    TransportError,
)
from msa_gateway.resilience import CircuitBreaker, CircuitBreakerConfig, CircuitState
from msa_gateway.telemetry import TelemetryConfig, configure_telemetry

__all__ = [
    # clients
    "BreakerHttpInvoker",
    "ClientRegistry",
    "GREETING_SERVICES",
    "RemoteCall",
    "ResolvedEndpoint",
    "ServiceDescriptor",
    "TypedClient",
    "get_client_registry",
    "reset_client_registry",
    "resolve_endpoint",
    # resilience
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    # errors
    "GatewayError",
    "TransportError",
    "CallTimeoutError",
    "RemoteFailureError",
    "CircuitBreakerOpenError",
    "DecodeError",
    # config / telemetry
    "GatewayConfig",
    "load_config",
    "TelemetryConfig",
    "configure_telemetry",
]
