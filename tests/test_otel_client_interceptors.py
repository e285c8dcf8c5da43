from __future__ import annotations

import httpx
import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import SpanKind, StatusCode, Tracer

from msa_gateway.client.interceptors.otel_client import tracing_interceptors
from msa_gateway.client.midwares import ClientContext
from msa_gateway.client.service_resolver import ResolvedEndpoint
from msa_gateway.exceptions import CallTimeoutError, CircuitBreakerOpenError


def _context(parent_span=None) -> ClientContext:
    return ClientContext(
        service_name="aloha",
        endpoint=ResolvedEndpoint("aloha", "http://aloha:8080/"),
        parent_span=parent_span,
    )


@pytest.mark.asyncio
async def test_client_span_is_child_of_parent_and_injected(
    tracer: Tracer, span_exporter: InMemorySpanExporter
) -> None:
    request_interceptor, response_interceptor = tracing_interceptors(tracer)
    parent = tracer.start_span("inbound")
    context = _context(parent)

    request = await request_interceptor.intercept_request(
        httpx.Request("GET", "http://aloha:8080/api/aloha"), context
    )
    context.response = httpx.Response(200, text="Aloha")
    await response_interceptor.intercept_response(context)

    (span,) = span_exporter.get_finished_spans()
    assert span.name == "aloha"
    assert span.kind == SpanKind.CLIENT
    assert span.parent is not None
    assert span.parent.span_id == parent.get_span_context().span_id
    assert span.context.trace_id == parent.get_span_context().trace_id
    assert dict(span.attributes) == {
        "span.kind": "client",
        "http.method": "GET",
        "http.url": "http://aloha:8080/api/aloha",
        "peer.service": "aloha",
        "http.status_code": 200,
    }
    assert span.status.status_code == StatusCode.UNSET
    assert request.headers["traceparent"] == (
        f"00-{span.context.trace_id:032x}-{span.context.span_id:016x}-{int(span.context.trace_flags):02x}"
    )
    assert span.context.trace_flags.sampled


@pytest.mark.asyncio
async def test_without_parent_span_starts_a_root_span(
    tracer: Tracer, span_exporter: InMemorySpanExporter
) -> None:
    request_interceptor, response_interceptor = tracing_interceptors(tracer)
    context = _context()

    await request_interceptor.intercept_request(httpx.Request("GET", "http://aloha:8080/api/aloha"), context)
    await response_interceptor.intercept_response(context)

    (span,) = span_exporter.get_finished_spans()
    assert span.parent is None


@pytest.mark.asyncio
async def test_breaker_rejection_is_tagged(tracer: Tracer, span_exporter: InMemorySpanExporter) -> None:
    request_interceptor, response_interceptor = tracing_interceptors(tracer)
    context = _context()
    await request_interceptor.intercept_request(httpx.Request("GET", "http://aloha:8080/api/aloha"), context)
    context.error = CircuitBreakerOpenError(data={"name": "aloha"})

    await response_interceptor.intercept_response(context)

    (span,) = span_exporter.get_finished_spans()
    assert span.attributes["error"] is True
    assert span.attributes["breaker"] == "open"
    assert "timeout" not in span.attributes
    assert "http.status_code" not in span.attributes
    assert span.status.status_code == StatusCode.ERROR
    (event,) = span.events
    assert event.name == "error"
    assert event.attributes["event"] == "error"
    assert event.attributes["error.kind"] == "breaker_open"
    assert event.attributes["message"] == "Circuit breaker open"


@pytest.mark.asyncio
async def test_timeout_is_tagged(tracer: Tracer, span_exporter: InMemorySpanExporter) -> None:
    request_interceptor, response_interceptor = tracing_interceptors(tracer)
    context = _context()
    await request_interceptor.intercept_request(httpx.Request("GET", "http://aloha:8080/api/aloha"), context)
    context.error = CallTimeoutError()

    await response_interceptor.intercept_response(context)

    (span,) = span_exporter.get_finished_spans()
    assert span.attributes["timeout"] is True
    assert span.attributes["error"] is True
    assert span.events[0].attributes["error.kind"] == "timeout"


@pytest.mark.asyncio
async def test_unexpected_error_kind_uses_exception_type(
    tracer: Tracer, span_exporter: InMemorySpanExporter
) -> None:
    request_interceptor, response_interceptor = tracing_interceptors(tracer)
    context = _context()
    await request_interceptor.intercept_request(httpx.Request("GET", "http://aloha:8080/api/aloha"), context)
    context.error = KeyError("missing")

    await response_interceptor.intercept_response(context)

    (span,) = span_exporter.get_finished_spans()
    assert span.events[0].attributes["error.kind"] == "KeyError"


@pytest.mark.asyncio
async def test_response_interceptor_without_span_is_a_noop(span_exporter: InMemorySpanExporter) -> None:
    _, response_interceptor = tracing_interceptors()

    await response_interceptor.intercept_response(_context())

    assert span_exporter.get_finished_spans() == ()
