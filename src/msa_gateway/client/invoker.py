"""Breaker-wrapped HTTP invoker shared by all typed clients.

One invocation runs in this order:
  1. build the outbound request from the resolved endpoint
  2. request interceptors (client span start, header injection)
  3. circuit breaker admission, then the wire call under the effective deadline
  4. response interceptors (span annotation and end), on every exit path

Every failure is recorded on the call context and replaced by the
descriptor's fallback; callers never see an exception for a failed call.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import Any, TypeVar

import httpx
from pydantic import ValidationError

from msa_gateway.client.call_options import resolve_timeout_s
from msa_gateway.client.midwares import (
    ClientContext,
    ClientRequestInterceptor,
    ClientResponseInterceptor,
)
from msa_gateway.client.transport import LoopBoundClients
from msa_gateway.client.typed_client import ServiceDescriptor
from msa_gateway.exceptions import (
    CallTimeoutError,
    DecodeError,
    GatewayError,
    RemoteFailureError,
    TransportError,
)
from msa_gateway.observability.logging import LogContext
from msa_gateway.observability.metrics import ClientMetrics
from msa_gateway.resilience.circuit_breaker import CircuitBreakerRegistry

T = TypeVar("T")

logger = logging.getLogger(__name__)

_BUILD_ERROR_KEY = "build_error"


class BreakerHttpInvoker:
    """Executes typed HTTP calls through per-service circuit breakers.

    Args:
        transport: A caller-owned client used as is, or per-loop clients
            picked from the running event loop on every call.
        breakers: Registry holding one breaker per service name.
        request_interceptors: Run in order before the wire send.
        response_interceptors: Run in order once per invocation.
        failure_on_4xx: Count 4xx responses as remote failures.
    """

    def __init__(
        self,
        transport: httpx.AsyncClient | LoopBoundClients,
        breakers: CircuitBreakerRegistry | None = None,
        *,
        request_interceptors: Sequence[ClientRequestInterceptor] | None = None,
        response_interceptors: Sequence[ClientResponseInterceptor] | None = None,
        failure_on_4xx: bool = False,
    ) -> None:
        self._transport = transport
        self._breakers = breakers or CircuitBreakerRegistry()
        self._request_interceptors = list(request_interceptors or [])
        self._response_interceptors = list(response_interceptors or [])
        self._failure_on_4xx = failure_on_4xx

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        return self._breakers

    @property
    def transport(self) -> httpx.AsyncClient | LoopBoundClients:
        return self._transport

    def _client(self) -> httpx.AsyncClient:
        if isinstance(self._transport, LoopBoundClients):
            return self._transport.current()
        return self._transport

    async def invoke(self, descriptor: ServiceDescriptor[T], context: ClientContext) -> T:
        """Run one call and return the decoded result or the fallback."""

        breaker = self._breakers.get(descriptor.name)
        method = descriptor.remote_call.method.upper()
        status = "success"
        result: T
        started = time.perf_counter()

        with LogContext(peer_service=descriptor.name, trace_id=_trace_id_of(context)):
            try:
                request = self._build_request(descriptor, context)
                request = context.request = await self._apply_request_interceptors(request, context)
                result = await breaker.call(self._execute, descriptor, context, request, breaker.config.call_timeout)
            except GatewayError as exc:
                context.error = exc
                status = exc.kind.value if exc.kind else "error"
                result = descriptor.fallback
                logger.warning(
                    "Call to %s failed (%s: %s), returning fallback",
                    descriptor.name,
                    status,
                    exc.message,
                )
            except Exception as exc:  # noqa: BLE001
                context.error = exc
                status = "error"
                result = descriptor.fallback
                logger.exception("Unexpected failure calling %s, returning fallback", descriptor.name)
            finally:
                await self._apply_response_interceptors(context)

            await ClientMetrics.record_call(
                descriptor.name,
                method,
                status,
                time.perf_counter() - started,
                fallback=context.error is not None,
                breaker_state=breaker.state.code,
            )
        return result

    def _build_request(self, descriptor: ServiceDescriptor[Any], context: ClientContext) -> httpx.Request:
        call = descriptor.remote_call
        url = context.endpoint.url_for(call.path)
        try:
            return self._client().build_request(call.method.upper(), url)
        except httpx.InvalidURL as exc:
            # Surfaces inside the breaker so the call is still traced and counted.
            context.state[_BUILD_ERROR_KEY] = TransportError(
                message=f"Invalid URL {url!r} for {descriptor.name}: {exc}",
                data={"url": url},
                cause=exc,
            )
            return httpx.Request(call.method.upper(), call.path or "/")

    async def _apply_request_interceptors(
        self, request: httpx.Request, context: ClientContext
    ) -> httpx.Request:
        for interceptor in self._request_interceptors:
            request = await interceptor.intercept_request(request, context)
        return request

    async def _apply_response_interceptors(self, context: ClientContext) -> None:
        for interceptor in self._response_interceptors:
            try:
                await interceptor.intercept_response(context)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Response interceptor %s failed for %s",
                    type(interceptor).__name__,
                    context.service_name,
                )

    async def _execute(
        self,
        descriptor: ServiceDescriptor[T],
        context: ClientContext,
        request: httpx.Request,
        call_timeout: float | None,
    ) -> T:
        build_error = context.state.pop(_BUILD_ERROR_KEY, None)
        if build_error is not None:
            raise build_error
        if context.endpoint.port_missing:
            raise TransportError(
                message=f"Endpoint {context.endpoint.base_url!r} for {descriptor.name} has an empty port",
                data={"url": context.endpoint.base_url},
            )

        timeout = resolve_timeout_s(call_timeout_s=call_timeout, deadline=context.deadline, now=time.monotonic())
        if timeout is not None and timeout <= 0:
            raise CallTimeoutError(
                message=f"Deadline for {descriptor.name} elapsed before the call was sent",
                data={"timeout_s": timeout},
            )

        logger.debug("--> %s %s", request.method, request.url)
        sent = time.perf_counter()
        try:
            response = await asyncio.wait_for(self._client().send(request), timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise CallTimeoutError(
                message=f"{descriptor.name} did not answer within {timeout}s",
                data={"timeout_s": timeout},
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            raise TransportError(
                message=f"{type(exc).__name__} calling {descriptor.name}: {exc}",
                data={"url": str(request.url)},
                cause=exc,
            ) from exc

        context.response = response
        logger.debug(
            "<-- %s %s %s (%.1fms)",
            response.status_code,
            request.method,
            request.url,
            (time.perf_counter() - sent) * 1000.0,
        )
        if self._is_failure_status(response.status_code):
            raise RemoteFailureError(
                message=f"{descriptor.name} answered HTTP {response.status_code}",
                data={"status_code": response.status_code},
            )

        try:
            return descriptor.remote_call.decode(response, descriptor.result_type)
        except (ValidationError, ValueError) as exc:
            raise DecodeError(
                message=f"Cannot decode {descriptor.name} response as {descriptor.result_type!r}",
                data={"status_code": response.status_code},
                cause=exc,
            ) from exc

    def _is_failure_status(self, status_code: int) -> bool:
        if status_code >= 500:
            return True
        return self._failure_on_4xx and 400 <= status_code < 500


def _trace_id_of(context: ClientContext) -> str | None:
    if context.parent_span is None:
        return None
    span_context = context.parent_span.get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x")
