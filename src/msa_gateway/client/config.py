import dataclasses

import httpx


@dataclasses.dataclass
class ClientConfig:
    """Shared transport and classification settings for typed clients."""

    # If provided, caller owns lifecycle and the registry never closes it.
    httpx_client: httpx.AsyncClient | None = None
    """Http client shared by every typed client; it must only be used from one event loop.

    When unset, the registry builds one client per event loop from the settings below.
    """

    http_timeout: float | None = 10.0
    """Transport-level timeout (seconds); the breaker call_timeout is applied on top."""

    max_connections: int = 100
    """Upper bound on open connections in the shared pool."""

    max_keepalive_connections: int = 20
    """Idle connections kept alive in the shared pool."""

    failure_on_4xx: bool = False
    """Whether 4xx responses count as remote failures instead of successes."""

    def __post_init__(self) -> None:
        if self.http_timeout is not None and self.http_timeout <= 0:
            raise ValueError("client.http_timeout must be > 0")
        if self.max_connections < 1:
            raise ValueError("client.max_connections must be >= 1")
        if self.max_keepalive_connections < 0:
            raise ValueError("client.max_keepalive_connections must be >= 0")

    def build_httpx_client(self) -> httpx.AsyncClient:
        """Create a pooled client from these settings."""
        return httpx.AsyncClient(
            timeout=self.http_timeout,
            limits=httpx.Limits(
                max_connections=self.max_connections,
                max_keepalive_connections=self.max_keepalive_connections,
            ),
        )
