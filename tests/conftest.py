from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Iterator

import httpx
import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Tracer

from msa_gateway.client.registry import reset_client_registry
from msa_gateway.observability.logging import LogContext
from msa_gateway.observability.metrics import ClientMetrics


class FakeClock:
    """Controllable clock for deterministic time-based tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += float(seconds)


@dataclass
class Route:
    status: int = 200
    text: str = ""
    delay: float = 0.0
    error: type[httpx.RequestError] | None = None


class StubDownstream:
    """Programmable downstream services served through httpx.MockTransport.

    Every request that reaches the wire is recorded in ``requests``.
    Unknown paths answer 404.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[str, Route] = {}

    def route(self, path: str, **kwargs) -> None:
        self._routes[path] = Route(**kwargs)

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self._routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not found")
        if route.delay:
            await asyncio.sleep(route.delay)
        if route.error is not None:
            raise route.error("stubbed transport failure", request=request)
        return httpx.Response(route.status, text=route.text)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def downstream() -> StubDownstream:
    return StubDownstream()


@pytest.fixture()
def httpx_client(downstream: StubDownstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(downstream))


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture()
def tracer(span_exporter: InMemorySpanExporter) -> Tracer:
    """Tracer backed by a private SDK provider; the global provider is untouched."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("tests")


@pytest.fixture(autouse=True)
def isolate_process_state() -> Iterator[None]:
    ClientMetrics.reset()
    LogContext.clear()
    reset_client_registry()
    yield
    ClientMetrics.reset()
    LogContext.clear()
    reset_client_registry()
