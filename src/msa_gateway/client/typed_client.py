from __future__ import annotations

import functools
import os
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import httpx
from opentelemetry.trace import Span
from pydantic import TypeAdapter

from msa_gateway.client.midwares import ClientContext
from msa_gateway.client.service_resolver import ResolvedEndpoint, resolve_endpoint

if TYPE_CHECKING:
    from msa_gateway.client.invoker import BreakerHttpInvoker

T = TypeVar("T")


@functools.lru_cache(maxsize=None)
def _type_adapter(result_type: Any) -> TypeAdapter:
    return TypeAdapter(result_type)


@dataclass(frozen=True)
class RemoteCall:
    """Description of one remote operation: HTTP method, relative path and decoding.

    Without a custom ``decoder``, ``str`` results are the UTF-8 body verbatim
    and any other result type is validated from the JSON body.
    """

    method: str = "GET"
    path: str = ""
    decoder: Callable[[httpx.Response], Any] | None = field(default=None, compare=False)

    def decode(self, response: httpx.Response, result_type: Any) -> Any:
        if self.decoder is not None:
            return self.decoder(response)
        if result_type is str:
            return response.content.decode("utf-8")
        return _type_adapter(result_type).validate_json(response.content)


@dataclass(frozen=True)
class ServiceDescriptor(Generic[T]):
    """Immutable identity of a downstream service and how to call it."""

    name: str
    result_type: type[T]
    fallback: T
    remote_call: RemoteCall

    def __post_init__(self) -> None:
        if not self.name or self.name != self.name.lower():
            raise ValueError(f"service name must be a non-empty lowercase identifier, got {self.name!r}")
        if self.fallback is None:
            raise ValueError(f"service {self.name!r} needs a fallback value")
        if isinstance(self.result_type, type) and not isinstance(self.fallback, self.result_type):
            raise TypeError(
                f"fallback for {self.name!r} must be a {self.result_type.__name__}, "
                f"got {type(self.fallback).__name__}"
            )


class TypedClient(Generic[T]):
    """Per-service client with a total ``invoke`` operation.

    ``invoke`` never raises for downstream failures: transport errors,
    timeouts, failing statuses, decode errors and open breakers all yield the
    descriptor's fallback. The endpoint is resolved from the environment
    snapshot taken at construction, on first use, and cached.

    Args:
        result_type: Type of the decoded response.
        name: Lowercase service name, used for endpoint resolution and tracing.
        fallback: Value returned whenever the call cannot complete.
        remote_call: HTTP method, relative path and decoding rule.
        invoker: Shared breaker-wrapped invoker.
        environ: Environment to resolve the endpoint from; defaults to os.environ.
    """

    def __init__(
        self,
        result_type: type[T],
        name: str,
        fallback: T,
        remote_call: RemoteCall,
        *,
        invoker: BreakerHttpInvoker,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._descriptor = ServiceDescriptor(
            name=name,
            result_type=result_type,
            fallback=fallback,
            remote_call=remote_call,
        )
        self._invoker = invoker
        self._environ = dict(os.environ if environ is None else environ)
        self._endpoint: ResolvedEndpoint | None = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._descriptor.name

    @property
    def descriptor(self) -> ServiceDescriptor[T]:
        return self._descriptor

    @property
    def endpoint(self) -> ResolvedEndpoint:
        endpoint = self._endpoint
        if endpoint is None:
            with self._lock:
                if self._endpoint is None:
                    self._endpoint = resolve_endpoint(self.name, self._environ)
                endpoint = self._endpoint
        return endpoint

    async def invoke(self, parent_span: Span | None = None, *, deadline: float | None = None) -> T:
        """Call the service and return its decoded reply or the fallback.

        Args:
            parent_span: Span of the inbound request; the client span is its child.
            deadline: Optional absolute ``time.monotonic()`` deadline of the caller.
        """
        context = ClientContext(
            service_name=self.name,
            endpoint=self.endpoint,
            parent_span=parent_span,
            deadline=deadline,
        )
        return await self._invoker.invoke(self._descriptor, context)

    def __repr__(self) -> str:
        return f"TypedClient(name={self.name!r}, result_type={self._descriptor.result_type!r})"
