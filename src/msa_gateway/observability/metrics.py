"""In-process metrics for downstream calls.

Series are keyed by ``MetricLabels``. Recording methods are coroutines so
callers on the event loop can await them uniformly; reads are synchronous.
"""

from __future__ import annotations

import bisect
import itertools
import threading
from dataclasses import dataclass
from typing import Generic, TypeVar

__all__ = [
    "ClientMetrics",
    "Counter",
    "Gauge",
    "Histogram",
    "MetricLabels",
]

V = TypeVar("V")


@dataclass(frozen=True)
class MetricLabels:
    service: str = ""
    method: str = ""
    status: str = ""


class _Metric(Generic[V]):
    """Thread-safe mapping from label sets to per-series state."""

    def __init__(self, name: str, description: str) -> None:
        self.name = name
        self.description = description
        self._series: dict[MetricLabels, V] = {}
        self._lock = threading.Lock()

    def labels(self) -> list[MetricLabels]:
        with self._lock:
            return list(self._series)

    def clear(self) -> None:
        with self._lock:
            self._series.clear()


class Counter(_Metric[float]):
    """Monotonic counter."""

    async def inc(self, labels: MetricLabels, value: float = 1.0) -> None:
        if value < 0:
            raise ValueError("counters only go up")
        with self._lock:
            self._series[labels] = self._series.get(labels, 0.0) + value

    def get(self, labels: MetricLabels) -> float:
        with self._lock:
            return self._series.get(labels, 0.0)


@dataclass
class _HistogramSeries:
    counts: list[int]
    total: float = 0.0
    observations: int = 0
    largest: float = 0.0


class Histogram(_Metric[_HistogramSeries]):
    """Fixed-bucket histogram; a series holds per-bucket counts, sum and count.

    Observations above the top bound go to an overflow bucket. Percentiles
    are estimated by linear interpolation inside the bucket holding the rank.
    """

    DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

    def __init__(self, name: str, description: str, buckets: tuple[float, ...] | None = None) -> None:
        super().__init__(name, description)
        self.buckets = tuple(sorted(buckets or self.DEFAULT_BUCKETS))

    async def record(self, value: float, labels: MetricLabels) -> None:
        index = bisect.bisect_left(self.buckets, value)
        with self._lock:
            series = self._series.get(labels)
            if series is None:
                series = self._series[labels] = _HistogramSeries(counts=[0] * (len(self.buckets) + 1))
            series.counts[index] += 1
            series.total += value
            series.observations += 1
            series.largest = max(series.largest, value)

    def count(self, labels: MetricLabels) -> int:
        with self._lock:
            series = self._series.get(labels)
            return series.observations if series else 0

    def sum(self, labels: MetricLabels) -> float:
        with self._lock:
            series = self._series.get(labels)
            return series.total if series else 0.0

    def bucket_counts(self, labels: MetricLabels) -> dict[float, int]:
        """Cumulative counts of observations <= each bucket bound."""
        with self._lock:
            series = self._series.get(labels)
            counts = list(series.counts) if series else [0] * (len(self.buckets) + 1)
        return dict(zip(self.buckets, itertools.accumulate(counts)))

    def get_percentile(self, labels: MetricLabels, percentile: float) -> float:
        with self._lock:
            series = self._series.get(labels)
            if series is None or not series.observations:
                return 0.0
            counts, largest, observations = list(series.counts), series.largest, series.observations

        rank = observations * min(max(percentile, 0.0), 100.0) / 100
        below = 0
        for index, in_bucket in enumerate(counts):
            if in_bucket and below + in_bucket >= rank:
                lower = self.buckets[index - 1] if index else 0.0
                upper = self.buckets[index] if index < len(self.buckets) else largest
                estimate = lower + (upper - lower) * (rank - below) / in_bucket
                return min(estimate, largest)
            below += in_bucket
        return largest


class Gauge(_Metric[float]):
    """Last value per service; method and status labels are ignored."""

    async def set(self, value: float, labels: MetricLabels) -> None:
        with self._lock:
            self._series[MetricLabels(service=labels.service)] = value

    def get(self, labels: MetricLabels) -> float | None:
        with self._lock:
            return self._series.get(MetricLabels(service=labels.service))


class ClientMetrics:
    """Process-wide metrics emitted by the breaker-wrapped invoker."""

    calls_total = Counter(
        "msa_gateway_client_calls_total",
        "Downstream calls by service, HTTP method and outcome",
    )
    call_duration = Histogram(
        "msa_gateway_client_call_duration_seconds",
        "Downstream call duration in seconds, fallbacks included",
    )
    fallbacks_total = Counter(
        "msa_gateway_client_fallbacks_total",
        "Calls answered with the service fallback",
    )
    circuit_breaker_state = Gauge(
        "msa_gateway_circuit_breaker_state",
        "Breaker state per service: 0 closed, 1 open, 2 half-open",
    )

    @classmethod
    async def record_call(
        cls,
        service: str,
        method: str,
        outcome: str,
        elapsed_s: float,
        *,
        fallback: bool,
        breaker_state: int,
    ) -> None:
        """Record one finished invocation, whether it succeeded or fell back."""
        labels = MetricLabels(service=service, method=method, status=outcome)
        await cls.calls_total.inc(labels)
        await cls.call_duration.record(elapsed_s, labels)
        if fallback:
            await cls.fallbacks_total.inc(MetricLabels(service=service, method=method))
        await cls.circuit_breaker_state.set(float(breaker_state), labels)

    @classmethod
    def reset(cls) -> None:
        for metric in (cls.calls_total, cls.call_duration, cls.fallbacks_total, cls.circuit_breaker_state):
            metric.clear()
