from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
from opentelemetry.trace import Span

from msa_gateway.client.service_resolver import ResolvedEndpoint


@dataclass
class ClientContext:
    """Per-invocation state handed down the interceptor chain.

    The request interceptors store the child span here so the response
    interceptors can finish it whatever the outcome was.
    """

    service_name: str
    endpoint: ResolvedEndpoint
    parent_span: Span | None = None
    deadline: float | None = None
    """Absolute ``time.monotonic()`` deadline inherited from the caller."""

    request: httpx.Request | None = None
    response: httpx.Response | None = None
    error: BaseException | None = None
    span: Span | None = None
    state: dict[str, Any] = field(default_factory=dict)


class ClientRequestInterceptor(ABC):
    """Runs before the outbound request leaves the process."""

    @abstractmethod
    async def intercept_request(self, request: httpx.Request, context: ClientContext) -> httpx.Request:
        """Inspect or modify the outbound request.

        Args:
            request: The request about to be sent.
            context: The per-invocation call context.
        Returns:
            The request to send.
        """


class ClientResponseInterceptor(ABC):
    """Runs exactly once per invocation, after the response or the failure."""

    @abstractmethod
    async def intercept_response(self, context: ClientContext) -> None:
        """Observe ``context.response`` and ``context.error``.

        Implementations must not clear ``context.error``.
        """
