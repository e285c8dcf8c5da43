from .config import ClientConfig
from .invoker import BreakerHttpInvoker
from .midwares import ClientContext, ClientRequestInterceptor, ClientResponseInterceptor
from .registry import (
    GREETING_SERVICES,
    ClientRegistry,
    GreetingService,
    get_client_registry,
    reset_client_registry,
)
from .service_resolver import ResolvedEndpoint, resolve_endpoint
from .transport import LoopBoundClients
from .typed_client import RemoteCall, ServiceDescriptor, TypedClient

__all__ = [
    "BreakerHttpInvoker",
    "ClientConfig",
    "ClientContext",
    "ClientRegistry",
    "ClientRequestInterceptor",
    "ClientResponseInterceptor",
    "GREETING_SERVICES",
    "GreetingService",
    "LoopBoundClients",
    "RemoteCall",
    "ResolvedEndpoint",
    "ServiceDescriptor",
    "TypedClient",
    "get_client_registry",
    "reset_client_registry",
    "resolve_endpoint",
]
