"""Circuit breaker guarding calls to a single downstream service.

The breaker keeps a count-based sliding window of recent call outcomes and
opens when the failure ratio inside the window crosses a threshold. While
open, calls are rejected immediately with CircuitBreakerOpenError. After a
cool-down the breaker admits a bounded number of probe calls to decide
whether the service has recovered.

State transitions:
  - CLOSED -> OPEN: at least minimum_samples outcomes are in the window and
    failures / samples >= failure_ratio_threshold.
  - OPEN -> HALF_OPEN: open_state_duration elapses since the breaker opened.
  - HALF_OPEN -> CLOSED: all half_open_probe_count probes succeed.
  - HALF_OPEN -> OPEN: any probe fails; the cool-down restarts.

Typical usage:
    breaker = CircuitBreaker("aloha")
    result = await breaker.call(fetch_greeting, request)

Concurrency notes:
    - Bookkeeping is guarded by a threading.Lock so a breaker can be shared
      between event loops and threads. Critical sections never block.
    - User callables run outside the lock.
    - OPEN -> HALF_OPEN is evaluated lazily on incoming calls.

Rejected calls are counted as short-circuited but never recorded as new
failures in the window.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import threading
import time
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from msa_gateway.exceptions import CircuitBreakerOpenError
from msa_gateway.utils.constant import BreakerStateCode

T = TypeVar("T")
CallableResult = Callable[..., T | Awaitable[T]]

logger = logging.getLogger(__name__)


class CircuitState(str, enum.Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    @property
    def code(self) -> BreakerStateCode:
        return BreakerStateCode[self.name]


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Configuration for CircuitBreaker.

    Attributes:
        failure_ratio_threshold: Failure ratio in (0, 1] that trips the breaker.
        window_size: Number of most recent outcomes kept in the window.
        minimum_samples: Outcomes required in the window before it may trip.
        open_state_duration: Seconds the breaker stays open before probing.
        half_open_probe_count: Probe calls admitted while half-open.
        call_timeout: Per-attempt deadline in seconds, enforced by the invoker.
        excluded_exceptions: Exception types that do not count as failures.
    """

    failure_ratio_threshold: float = 0.5
    window_size: int = 20
    minimum_samples: int = 10
    open_state_duration: float = 5.0
    half_open_probe_count: int = 1
    call_timeout: float | None = 1.0
    excluded_exceptions: tuple[type[BaseException], ...] = ()

    def __post_init__(self) -> None:
        if not 0.0 < self.failure_ratio_threshold <= 1.0:
            raise ValueError("failure_ratio_threshold must be in (0, 1]")
        if self.window_size < 1:
            raise ValueError("window_size must be >= 1")
        if self.minimum_samples < 1:
            raise ValueError("minimum_samples must be >= 1")
        if self.minimum_samples > self.window_size:
            raise ValueError("minimum_samples must be <= window_size")
        if self.open_state_duration < 0:
            raise ValueError("open_state_duration must be >= 0")
        if self.half_open_probe_count < 1:
            raise ValueError("half_open_probe_count must be >= 1")
        if self.call_timeout is not None and self.call_timeout <= 0:
            raise ValueError("call_timeout must be > 0")


@dataclass(frozen=True, slots=True)
class BreakerSnapshot:
    """Point-in-time view of a breaker, taken under its lock."""

    name: str
    state: CircuitState
    successes: int
    failures: int
    short_circuited: int
    open_until: float | None


class CircuitBreaker:
    """Sliding-window circuit breaker for sync and async callables.

    Args:
        name: Service name the breaker is keyed by.
        config: Optional CircuitBreakerConfig. Defaults are used when omitted.
    """

    def __init__(self, name: str, config: CircuitBreakerConfig | None = None) -> None:
        self.name = name
        self.config = config or CircuitBreakerConfig()

        # True marks a failure, False a success.
        self._window: deque[bool] = deque(maxlen=self.config.window_size)
        self._state = CircuitState.CLOSED
        self._opened_at: float | None = None
        self._short_circuited = 0
        self._probes_admitted = 0
        self._probe_successes = 0

        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Return the current state; an elapsed open period reads as half-open."""

        with self._lock:
            self._maybe_transition_to_half_open_locked(self._now())
            return self._state

    def snapshot(self) -> BreakerSnapshot:
        """Return a consistent view of state and counters."""

        with self._lock:
            self._maybe_transition_to_half_open_locked(self._now())
            failures = sum(self._window)
            open_until = None
            if self._state == CircuitState.OPEN and self._opened_at is not None:
                open_until = self._opened_at + self.config.open_state_duration
            return BreakerSnapshot(
                name=self.name,
                state=self._state,
                successes=len(self._window) - failures,
                failures=failures,
                short_circuited=self._short_circuited,
                open_until=open_until,
            )

    async def call(self, func: CallableResult[T], *args: Any, **kwargs: Any) -> T:
        """Execute a callable through the circuit breaker.

        Args:
            func: Callable or coroutine function to execute.
            *args: Positional arguments for func.
            **kwargs: Keyword arguments for func.

        Returns:
            The result of func.

        Raises:
            CircuitBreakerOpenError: If the breaker rejects the call.
            Exception: Any exception raised by func.
        """

        if not callable(func):
            raise TypeError("func must be callable")

        call_state = self._before_call()

        try:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            self._record_ignored(call_state)
            raise
        except Exception as exc:
            if isinstance(exc, self.config.excluded_exceptions):
                self._record_ignored(call_state)
            else:
                self._record_failure(call_state)
            raise

        self._record_success(call_state)
        return result

    def reset(self) -> None:
        """Reset the breaker to the CLOSED state and clear counters."""

        with self._lock:
            self._enter_closed_locked()

    def _before_call(self) -> CircuitState:
        with self._lock:
            now = self._now()
            self._maybe_transition_to_half_open_locked(now)

            if self._state == CircuitState.OPEN:
                self._short_circuited += 1
                raise self._build_open_error(now)

            if self._state == CircuitState.HALF_OPEN:
                if self._probes_admitted >= self.config.half_open_probe_count:
                    self._short_circuited += 1
                    raise self._build_open_error(now)
                self._probes_admitted += 1
                return CircuitState.HALF_OPEN

            return CircuitState.CLOSED

    def _record_success(self, call_state: CircuitState) -> None:
        with self._lock:
            if call_state == CircuitState.HALF_OPEN:
                if self._state != CircuitState.HALF_OPEN:
                    return
                self._probe_successes += 1
                if self._probe_successes >= self.config.half_open_probe_count:
                    self._enter_closed_locked()
                return

            if self._state == CircuitState.CLOSED:
                self._window.append(False)

    def _record_failure(self, call_state: CircuitState) -> None:
        with self._lock:
            if call_state == CircuitState.HALF_OPEN:
                if self._state == CircuitState.HALF_OPEN:
                    self._enter_open_locked(self._now())
                return

            if self._state != CircuitState.CLOSED:
                return

            self._window.append(True)
            if self._should_trip_locked():
                self._enter_open_locked(self._now())

    def _record_ignored(self, call_state: CircuitState) -> None:
        with self._lock:
            if call_state == CircuitState.HALF_OPEN and self._state == CircuitState.HALF_OPEN:
                # The probe slot is handed back so another call can decide.
                self._probes_admitted = max(0, self._probes_admitted - 1)

    def _now(self) -> float:
        """Return a monotonic timestamp."""

        return time.monotonic()

    def _should_trip_locked(self) -> bool:
        samples = len(self._window)
        if samples < self.config.minimum_samples:
            return False
        return sum(self._window) / samples >= self.config.failure_ratio_threshold

    def _maybe_transition_to_half_open_locked(self, now: float) -> None:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return
        if now - self._opened_at >= self.config.open_state_duration:
            self._state = CircuitState.HALF_OPEN
            self._opened_at = None
            self._probes_admitted = 0
            self._probe_successes = 0
            logger.info("Circuit breaker %s is half-open, admitting probes", self.name)

    def _enter_open_locked(self, now: float) -> None:
        previous = self._state
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._probes_admitted = 0
        self._probe_successes = 0
        logger.warning(
            "Circuit breaker %s opened (was %s) for %.3fs",
            self.name,
            previous.value,
            self.config.open_state_duration,
        )

    def _enter_closed_locked(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info("Circuit breaker %s closed", self.name)
        self._state = CircuitState.CLOSED
        self._opened_at = None
        self._window.clear()
        self._short_circuited = 0
        self._probes_admitted = 0
        self._probe_successes = 0

    def _build_open_error(self, now: float) -> CircuitBreakerOpenError:
        retry_after_ms = 0
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            remaining = max(0.0, self.config.open_state_duration - (now - self._opened_at))
            retry_after_ms = int(remaining * 1000.0)

        data: dict[str, Any] = {
            "name": self.name,
            "state": self._state.value,
            "retry_after_ms": retry_after_ms,
        }
        return CircuitBreakerOpenError(data=data)


class CircuitBreakerRegistry:
    """Process-wide set of breakers, one per service name.

    Args:
        default_config: Configuration for services without an override.
        overrides: Per-service configuration keyed by service name.
    """

    def __init__(
        self,
        default_config: CircuitBreakerConfig | None = None,
        overrides: Mapping[str, CircuitBreakerConfig] | None = None,
    ) -> None:
        self._default_config = default_config or CircuitBreakerConfig()
        self._overrides = dict(overrides or {})
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def config_for(self, name: str) -> CircuitBreakerConfig:
        return self._overrides.get(name, self._default_config)

    def get(self, name: str) -> CircuitBreaker:
        """Return the breaker for a service, creating it on first use."""

        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name, self.config_for(name))
                self._breakers[name] = breaker
            return breaker

    def snapshots(self) -> dict[str, BreakerSnapshot]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {breaker.name: breaker.snapshot() for breaker in breakers}
