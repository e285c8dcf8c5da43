from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from msa_gateway.utils.constant import FailureKind


@dataclass(frozen=True)
class GatewayError(Exception):
    """Base class for downstream call failures with a canonical error shape."""

    code: int
    message: str
    data: Any | None = None
    cause: Exception | None = None

    kind: ClassVar[FailureKind | None] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", (self.message,))
        if self.cause is not None:
            object.__setattr__(self, "__cause__", self.cause)
            object.__setattr__(self, "__suppress_context__", True)

    def to_error_dict(self) -> dict[str, Any]:
        """Return a dict with the error code, message and data."""
        return {"code": self.code, "message": self.message, "data": self.data}


@dataclass(frozen=True)
class TransportError(GatewayError):
    """Raised on TCP, DNS or TLS failures and connection resets."""

    code: int = 6002
    message: str = "Downstream unreachable"

    kind: ClassVar[FailureKind] = FailureKind.TRANSPORT


@dataclass(frozen=True)
class CallTimeoutError(GatewayError):
    """Raised when the per-call deadline elapses."""

    code: int = 6001
    message: str = "Downstream call timed out"

    kind: ClassVar[FailureKind] = FailureKind.TIMEOUT


@dataclass(frozen=True)
class RemoteFailureError(GatewayError):
    """Raised when the downstream answers with a failing HTTP status."""

    code: int = 6000
    message: str = "Downstream returned a failure status"

    kind: ClassVar[FailureKind] = FailureKind.REMOTE_FAILURE


@dataclass(frozen=True)
class CircuitBreakerOpenError(GatewayError):
    """Raised when a circuit breaker short-circuits the call."""

    code: int = 5010
    message: str = "Circuit breaker open"

    kind: ClassVar[FailureKind] = FailureKind.BREAKER_OPEN


@dataclass(frozen=True)
class DecodeError(GatewayError):
    """Raised when the response body does not match the expected result type."""

    code: int = 1003
    message: str = "Response body could not be decoded"

    kind: ClassVar[FailureKind] = FailureKind.DECODE
