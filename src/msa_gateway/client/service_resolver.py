import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from msa_gateway.utils.constant import (
    DEFAULT_SERVICE_PORT,
    SERVER_URL_ENV_SUFFIX,
    SERVICE_HOST_ENV_SUFFIX,
    SERVICE_PORT_ENV_SUFFIX,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedEndpoint:
    """Base URL of one downstream service, as derived from the environment."""

    service_name: str
    base_url: str
    port_missing: bool = False
    """True when a host was configured without a port; calls fail as transport errors."""

    def url_for(self, path: str) -> str:
        """Join a relative path onto the base URL with exactly one slash."""
        if not path:
            return self.base_url
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


def resolve_endpoint(service_name: str, environ: Mapping[str, str] | None = None) -> ResolvedEndpoint:
    """Resolve a service name to its base URL.

    Resolution order, first hit wins:
    - ``{NAME}_SERVER_URL`` if non-empty, verbatim.
    - ``{NAME}_SERVICE_HOST`` if non-empty, as ``http://{host}:{port}`` with
      the port from ``{NAME}_SERVICE_PORT`` and no trailing slash.
    - ``http://{name}:8080/``.

    Boundary:
    - Pure function of the name and the environment mapping; no DNS lookup.
    - Never raises. A host without a port yields ``http://{host}:`` flagged
      ``port_missing``.
    """
    env = os.environ if environ is None else environ
    prefix = service_name.upper()

    url = env.get(f"{prefix}{SERVER_URL_ENV_SUFFIX}")
    if url:
        return ResolvedEndpoint(service_name=service_name, base_url=url)

    host = env.get(f"{prefix}{SERVICE_HOST_ENV_SUFFIX}")
    if host:
        port = env.get(f"{prefix}{SERVICE_PORT_ENV_SUFFIX}") or ""
        if not port:
            logger.warning(
                "%s%s is set but %s%s is empty; calls to %s will fail",
                prefix, SERVICE_HOST_ENV_SUFFIX, prefix, SERVICE_PORT_ENV_SUFFIX, service_name,
            )
        return ResolvedEndpoint(
            service_name=service_name,
            base_url=f"http://{host}:{port}",
            port_missing=not port,
        )

    return ResolvedEndpoint(service_name=service_name, base_url=f"http://{service_name}:{DEFAULT_SERVICE_PORT}/")
