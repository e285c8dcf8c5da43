"""OpenTelemetry tracing interceptors for outbound downstream calls.

The request interceptor starts a CLIENT span as a child of the caller's span
and injects its context into the outbound headers through the global text-map
propagator. The response interceptor annotates the span with the outcome and
always ends it.
"""

from __future__ import annotations

import httpx
from opentelemetry import propagate, trace
from opentelemetry.trace import SpanKind, Status, StatusCode, Tracer

from msa_gateway.client.midwares import (
    ClientContext,
    ClientRequestInterceptor,
    ClientResponseInterceptor,
)
from msa_gateway.exceptions import CallTimeoutError, CircuitBreakerOpenError, GatewayError

TRACER_NAME = "msa_gateway.client"


class OTelRequestInterceptor(ClientRequestInterceptor):
    """Starts the client span and injects it into the request headers.

    Args:
        tracer: Tracer to use; defaults to the global provider's tracer,
            looked up on every call.
    """

    def __init__(self, tracer: Tracer | None = None) -> None:
        self._tracer = tracer

    @property
    def tracer(self) -> Tracer:
        return self._tracer or trace.get_tracer(TRACER_NAME)

    async def intercept_request(self, request: httpx.Request, context: ClientContext) -> httpx.Request:
        parent = None
        if context.parent_span is not None:
            parent = trace.set_span_in_context(context.parent_span)

        span = self.tracer.start_span(
            context.service_name,
            context=parent,
            kind=SpanKind.CLIENT,
            attributes={
                "span.kind": "client",
                "http.method": request.method,
                "http.url": str(request.url),
                "peer.service": context.service_name,
            },
        )
        context.span = span
        propagate.inject(request.headers, context=trace.set_span_in_context(span))
        return request


class OTelResponseInterceptor(ClientResponseInterceptor):
    """Tags the client span with status and failure details, then ends it."""

    async def intercept_response(self, context: ClientContext) -> None:
        span = context.span
        if span is None:
            return
        try:
            if context.response is not None:
                span.set_attribute("http.status_code", context.response.status_code)
            error = context.error
            if error is not None:
                kind = error.kind.value if isinstance(error, GatewayError) and error.kind else type(error).__name__
                span.set_attribute("error", True)
                if isinstance(error, CircuitBreakerOpenError):
                    span.set_attribute("breaker", "open")
                if isinstance(error, CallTimeoutError):
                    span.set_attribute("timeout", True)
                span.add_event("error", {"event": "error", "error.kind": kind, "message": str(error)})
                span.set_status(Status(StatusCode.ERROR, str(error)))
        finally:
            span.end()


def tracing_interceptors(
    tracer: Tracer | None = None,
) -> tuple[OTelRequestInterceptor, OTelResponseInterceptor]:
    """Return the request/response interceptor pair sharing one tracer."""
    return OTelRequestInterceptor(tracer), OTelResponseInterceptor()
