from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import httpx
from opentelemetry.trace import Span, Tracer

from msa_gateway.client.interceptors.otel_client import tracing_interceptors
from msa_gateway.client.invoker import BreakerHttpInvoker
from msa_gateway.client.transport import LoopBoundClients
from msa_gateway.client.typed_client import RemoteCall, TypedClient
from msa_gateway.config.loader import get_default_config_path, load_config
from msa_gateway.config.models import GatewayConfig
from msa_gateway.resilience.circuit_breaker import BreakerSnapshot, CircuitBreakerRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GreetingService:
    """A downstream greeting service answering ``GET /api/{name}`` with text."""

    name: str

    @property
    def fallback(self) -> str:
        return f"{self.name.capitalize()} response (fallback)"

    @property
    def remote_call(self) -> RemoteCall:
        return RemoteCall(method="GET", path=f"/api/{self.name}")


GREETING_SERVICES: tuple[GreetingService, ...] = (
    GreetingService("aloha"),
    GreetingService("bonjour"),
    GreetingService("hola"),
    GreetingService("ola"),
)


class ClientRegistry:
    """Ordered, lazily built collection of typed clients, one per service.

    The first ``list_clients()`` call builds the clients together with the
    breakers; later calls return the same tuple. Unless the config supplies
    an http client, each event loop gets its own pooled client, so the
    registry can serve several ``asyncio.run()`` calls or threads.

    Args:
        config: Gateway configuration; defaults apply when omitted.
        tracer: Tracer for client spans; defaults to the global provider.
        environ: Environment snapshot for endpoint resolution.
        services: Services to publish, in order.
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        tracer: Tracer | None = None,
        environ: Mapping[str, str] | None = None,
        services: Sequence[GreetingService] = GREETING_SERVICES,
    ) -> None:
        self._config = config or GatewayConfig()
        self._tracer = tracer
        self._environ = environ
        self._services = tuple(services)
        self._clients: tuple[TypedClient[str], ...] | None = None
        self._invoker: BreakerHttpInvoker | None = None
        self._lock = threading.Lock()

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def list_clients(self) -> tuple[TypedClient[str], ...]:
        clients = self._clients
        if clients is None:
            with self._lock:
                if self._clients is None:
                    self._clients = self._build_clients()
                clients = self._clients
        return clients

    async def invoke_all(
        self,
        parent_span: Span | None = None,
        *,
        concurrent: bool = True,
        deadline: float | None = None,
    ) -> list[str]:
        """Invoke every client and return the replies in registry order."""

        clients = self.list_clients()
        if concurrent:
            return list(await asyncio.gather(*(c.invoke(parent_span, deadline=deadline) for c in clients)))
        return [await c.invoke(parent_span, deadline=deadline) for c in clients]

    def breaker_snapshots(self) -> dict[str, BreakerSnapshot]:
        if self._invoker is None:
            return {}
        return self._invoker.breakers.snapshots()

    async def aclose(self) -> None:
        """Close the http clients this registry created."""

        invoker = self._invoker
        if invoker is not None and isinstance(invoker.transport, LoopBoundClients):
            await invoker.transport.aclose()

    def _build_clients(self) -> tuple[TypedClient[str], ...]:
        client_config = self._config.client
        transport: httpx.AsyncClient | LoopBoundClients
        if client_config.httpx_client is not None:
            transport = client_config.httpx_client
        else:
            transport = LoopBoundClients(client_config.build_httpx_client)

        request_interceptor, response_interceptor = tracing_interceptors(self._tracer)
        self._invoker = BreakerHttpInvoker(
            transport,
            CircuitBreakerRegistry(self._config.circuit_breaker, self._config.breaker_overrides()),
            request_interceptors=[request_interceptor],
            response_interceptors=[response_interceptor],
            failure_on_4xx=client_config.failure_on_4xx,
        )
        clients = tuple(
            TypedClient(
                str,
                service.name,
                service.fallback,
                service.remote_call,
                invoker=self._invoker,
                environ=self._environ,
            )
            for service in self._services
        )
        logger.info("Client registry built with services: %s", ", ".join(c.name for c in clients))
        return clients


_default_registry: ClientRegistry | None = None
_default_lock = threading.Lock()


def get_client_registry() -> ClientRegistry:
    """Return the process-wide registry, built on first access.

    The default configuration file is loaded when one exists.
    """

    global _default_registry
    registry = _default_registry
    if registry is None:
        with _default_lock:
            if _default_registry is None:
                path = get_default_config_path()
                config = load_config(path) if path is not None else GatewayConfig()
                _default_registry = ClientRegistry(config)
            registry = _default_registry
    return registry


def reset_client_registry() -> None:
    """Drop the process-wide registry; the next access builds a new one."""

    global _default_registry
    with _default_lock:
        _default_registry = None
