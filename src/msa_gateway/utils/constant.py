from enum import StrEnum, IntEnum

SERVER_URL_ENV_SUFFIX = "_SERVER_URL"
SERVICE_HOST_ENV_SUFFIX = "_SERVICE_HOST"
SERVICE_PORT_ENV_SUFFIX = "_SERVICE_PORT"
DEFAULT_SERVICE_PORT = 8080


class FailureKind(StrEnum):
    """Kinds of failure a downstream call can end with.

    Every kind is recovered locally and replaced by the service fallback.
    """
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    REMOTE_FAILURE = "remote_failure"
    BREAKER_OPEN = "breaker_open"
    DECODE = "decode"


class BreakerStateCode(IntEnum):
    """Numeric encoding of breaker states for gauges."""
    CLOSED = 0
    OPEN = 1
    HALF_OPEN = 2
