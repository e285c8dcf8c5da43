"""Typed gateway configuration built from plain mappings.

Each section has a schema mapping option names to parsers. Parsing rejects
unknown options, so a typo in a YAML file fails loudly instead of silently
falling back to a default.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

from msa_gateway.client.config import ClientConfig as _ClientConfig
from msa_gateway.resilience.circuit_breaker import CircuitBreakerConfig
from msa_gateway.telemetry.config import TelemetryConfig

Parser = Callable[[Any, str], Any]

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


def _as_bool(value: Any, label: str) -> bool:
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUTHY:
            return True
        if word in _FALSY:
            return False
    elif isinstance(value, int):
        return bool(value)
    raise TypeError(f"{label} must be a boolean, got {value!r}")


def _as_number(kind: type[int] | type[float]) -> Parser:
    def parse(value: Any, label: str) -> Any:
        # bool is an int subclass; YAML `yes` must not become 1.
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise TypeError(f"{label} must be a number, got {value!r}")
        if isinstance(value, str):
            value = float(value) if kind is float else int(value.strip())
        if kind is int and isinstance(value, float):
            if not value.is_integer():
                raise TypeError(f"{label} must be a whole number, got {value!r}")
        return kind(value)

    return parse


def _as_text(value: Any, label: str) -> str:
    return value if isinstance(value, str) else str(value)


def _nullable(parser: Parser) -> Parser:
    return lambda value, label: None if value is None else parser(value, label)


_as_int = _as_number(int)
_as_float = _as_number(float)

CIRCUIT_BREAKER_SCHEMA: dict[str, Parser] = {
    "failure_ratio_threshold": _as_float,
    "window_size": _as_int,
    "minimum_samples": _as_int,
    "open_state_duration": _as_float,
    "half_open_probe_count": _as_int,
    "call_timeout": _nullable(_as_float),
}

CLIENT_SCHEMA: dict[str, Parser] = {
    "http_timeout": _nullable(_as_float),
    "max_connections": _as_int,
    "max_keepalive_connections": _as_int,
    "failure_on_4xx": _as_bool,
}

TELEMETRY_SCHEMA: dict[str, Parser] = {
    "enabled": _as_bool,
    "service_name": _as_text,
    "otlp_endpoint": _nullable(_as_text),
    "console_export": _as_bool,
    "tracing_enabled": _as_bool,
    "logging_enabled": _as_bool,
    "log_level": _as_text,
    "log_format": _as_text,
}

_SECTIONS = ("client", "circuit_breaker", "telemetry", "services")


def _require_mapping(value: Any, label: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"{label} must be a mapping, got {type(value).__name__}")
    return value


def parse_section(value: Any, schema: Mapping[str, Parser], label: str) -> dict[str, Any]:
    """Validate one config section against its schema and coerce its values.

    Raises:
        TypeError: The section is not a mapping or a value has the wrong type.
        ValueError: The section holds options the schema does not know.
    """
    section = _require_mapping(value, label)
    unknown = sorted(set(section) - set(schema))
    if unknown:
        raise ValueError(f"Unknown {label} options: {', '.join(map(str, unknown))}")
    return {name: schema[name](raw, f"{label}.{name}") for name, raw in section.items()}


def build_circuit_breaker_config(
    value: Any,
    label: str = "circuit_breaker",
    base: CircuitBreakerConfig | None = None,
) -> CircuitBreakerConfig:
    """Build a breaker config, layering the given options over ``base``."""
    if isinstance(value, CircuitBreakerConfig):
        return value
    base = base or CircuitBreakerConfig()
    if value is None:
        return base
    return replace(base, **parse_section(value, CIRCUIT_BREAKER_SCHEMA, label))


def build_telemetry_config(value: Any) -> TelemetryConfig:
    """Build telemetry settings; a bare boolean toggles ``enabled``."""
    if isinstance(value, TelemetryConfig):
        return value
    if value is None:
        return TelemetryConfig()
    if isinstance(value, bool):
        return TelemetryConfig(enabled=value)
    return TelemetryConfig(**parse_section(value, TELEMETRY_SCHEMA, "telemetry"))


@dataclass
class ClientConfig(_ClientConfig):
    """ClientConfig that can also be read from a config section."""

    @classmethod
    def from_dict(cls, data: Any) -> ClientConfig:
        if isinstance(data, cls):
            return data
        if isinstance(data, _ClientConfig):
            return cls(**{f.name: getattr(data, f.name) for f in fields(_ClientConfig)})
        if data is None:
            return cls()
        return cls(**parse_section(data, CLIENT_SCHEMA, "client"))


@dataclass(frozen=True)
class ServiceOverride:
    """Settings that apply to a single downstream service."""

    circuit_breaker: CircuitBreakerConfig | None = None


@dataclass
class GatewayConfig:
    """Root configuration of the gateway client layer.

    Attributes:
        client: Shared transport settings.
        circuit_breaker: Breaker settings for every service without an override.
        telemetry: Tracing and logging bootstrap settings.
        services: Per-service overrides keyed by service name.
    """

    client: ClientConfig = field(default_factory=ClientConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    services: dict[str, ServiceOverride] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.client = ClientConfig.from_dict(self.client)
        self.circuit_breaker = build_circuit_breaker_config(self.circuit_breaker)
        self.telemetry = build_telemetry_config(self.telemetry)

    @classmethod
    def from_dict(cls, data: Any) -> GatewayConfig:
        if isinstance(data, cls):
            return data
        if data is None:
            return cls()
        root = _require_mapping(data, "config")
        unknown = sorted(set(root) - set(_SECTIONS))
        if unknown:
            raise ValueError(f"Unknown config sections: {', '.join(map(str, unknown))}")

        breaker = build_circuit_breaker_config(root.get("circuit_breaker"))
        return cls(
            client=ClientConfig.from_dict(root.get("client")),
            circuit_breaker=breaker,
            telemetry=build_telemetry_config(root.get("telemetry")),
            services=_parse_services(root.get("services"), breaker),
        )

    def breaker_overrides(self) -> dict[str, CircuitBreakerConfig]:
        """Return per-service breaker configs for services that override it."""
        return {
            name.lower(): override.circuit_breaker
            for name, override in self.services.items()
            if override.circuit_breaker is not None
        }


def _parse_services(value: Any, default_breaker: CircuitBreakerConfig) -> dict[str, ServiceOverride]:
    if value is None:
        return {}
    overrides: dict[str, ServiceOverride] = {}
    for name, section in _require_mapping(value, "services").items():
        label = f"services.{name}"
        options = parse_section(section or {}, {"circuit_breaker": lambda raw, _: raw}, label)
        breaker = None
        if options.get("circuit_breaker") is not None:
            breaker = build_circuit_breaker_config(
                options["circuit_breaker"], f"{label}.circuit_breaker", base=default_breaker
            )
        overrides[str(name)] = ServiceOverride(circuit_breaker=breaker)
    return overrides
