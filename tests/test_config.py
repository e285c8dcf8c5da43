from __future__ import annotations

from pathlib import Path

import pytest

from msa_gateway.config.loader import (
    ConfigError,
    get_default_config_path,
    load_config,
    load_config_with_overloads,
)
from msa_gateway.config.models import ClientConfig, GatewayConfig
from msa_gateway.resilience.circuit_breaker import CircuitBreakerConfig
from msa_gateway.telemetry.config import TelemetryConfig


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults() -> None:
    config = GatewayConfig()

    assert config.circuit_breaker == CircuitBreakerConfig(
        failure_ratio_threshold=0.5,
        window_size=20,
        minimum_samples=10,
        open_state_duration=5.0,
        half_open_probe_count=1,
        call_timeout=1.0,
    )
    assert config.client.http_timeout == 10.0
    assert config.client.failure_on_4xx is False
    assert config.telemetry == TelemetryConfig()
    assert config.services == {}
    assert config.breaker_overrides() == {}


def test_from_dict_coerces_values() -> None:
    config = GatewayConfig.from_dict(
        {
            "client": {"failure_on_4xx": "yes", "max_connections": "50"},
            "circuit_breaker": {"window_size": "30", "call_timeout": "0.5"},
            "telemetry": False,
        }
    )

    assert isinstance(config.client, ClientConfig)
    assert config.client.failure_on_4xx is True
    assert config.client.max_connections == 50
    assert config.circuit_breaker.window_size == 30
    assert config.circuit_breaker.call_timeout == 0.5
    assert config.circuit_breaker.minimum_samples == 10
    assert config.telemetry.enabled is False


def test_service_overrides_layer_on_root_breaker() -> None:
    config = GatewayConfig.from_dict(
        {
            "circuit_breaker": {"call_timeout": 2.0},
            "services": {"ola": {"circuit_breaker": {"minimum_samples": 3}}, "hola": None},
        }
    )

    overrides = config.breaker_overrides()
    assert set(overrides) == {"ola"}
    assert overrides["ola"].minimum_samples == 3
    assert overrides["ola"].call_timeout == 2.0


def test_null_call_timeout_disables_it() -> None:
    config = GatewayConfig.from_dict({"circuit_breaker": {"call_timeout": None}})

    assert config.circuit_breaker.call_timeout is None


@pytest.mark.parametrize(
    "data",
    [
        {"unknown": {}},
        {"client": {"retries": 3}},
        {"circuit_breaker": {"failure_threshold": 3}},
        {"telemetry": {"sampling": 1.0}},
    ],
)
def test_unknown_options_are_rejected(data: dict) -> None:
    with pytest.raises(ValueError, match="Unknown"):
        GatewayConfig.from_dict(data)


@pytest.mark.parametrize(
    "data",
    [
        {"circuit_breaker": {"window_size": 5, "minimum_samples": 6}},
        {"circuit_breaker": {"failure_ratio_threshold": 0}},
        {"client": {"max_connections": 0}},
    ],
)
def test_invalid_values_are_rejected(data: dict) -> None:
    with pytest.raises(ValueError):
        GatewayConfig.from_dict(data)


def test_wrong_types_are_rejected() -> None:
    with pytest.raises(TypeError):
        GatewayConfig.from_dict({"circuit_breaker": {"window_size": True}})
    with pytest.raises(TypeError):
        GatewayConfig.from_dict({"client": "fast"})


def test_load_config_expands_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GATEWAY_CALL_TIMEOUT", "0.25")
    monkeypatch.delenv("GATEWAY_OTLP", raising=False)
    path = _write(
        tmp_path / "gateway.yaml",
        """
msa_gateway:
  circuit_breaker:
    call_timeout: ${GATEWAY_CALL_TIMEOUT}
    minimum_samples: ${GATEWAY_MIN_SAMPLES:-4}
  telemetry:
    service_name: api-gateway
    otlp_endpoint: ${GATEWAY_OTLP:-http://collector:4318/v1/traces}
""",
    )

    config = load_config(path)

    assert config.circuit_breaker.call_timeout == 0.25
    assert config.circuit_breaker.minimum_samples == 4
    assert config.telemetry.otlp_endpoint == "http://collector:4318/v1/traces"


def test_load_config_requires_unset_variables_to_have_defaults(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("GATEWAY_UNSET", raising=False)
    path = _write(tmp_path / "gateway.yaml", "circuit_breaker:\n  window_size: ${GATEWAY_UNSET}\n")

    with pytest.raises(ConfigError, match="GATEWAY_UNSET"):
        load_config(path)


def test_load_config_wraps_invalid_values(tmp_path: Path) -> None:
    path = _write(tmp_path / "gateway.yml", "circuit_breaker:\n  half_open_probe_count: 0\n")

    with pytest.raises(ConfigError, match="Invalid config"):
        load_config(path)


@pytest.mark.parametrize(
    ("name", "text", "message"),
    [
        ("gateway.toml", "", "Unsupported config file type"),
        ("gateway.yaml", "- a\n- b\n", "must contain a mapping"),
        ("gateway.yaml", "key: [unclosed\n", "Failed to load"),
    ],
)
def test_load_config_rejects_bad_files(tmp_path: Path, name: str, text: str, message: str) -> None:
    path = _write(tmp_path / name, text)

    with pytest.raises(ConfigError, match=message):
        load_config(path)


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.yaml")


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    assert load_config(_write(tmp_path / "gateway.yaml", "")) == GatewayConfig()


def test_overloads_are_deep_merged(tmp_path: Path) -> None:
    base = _write(
        tmp_path / "base.yaml",
        "circuit_breaker:\n  window_size: 40\n  minimum_samples: 20\nclient:\n  failure_on_4xx: true\n",
    )
    prod = _write(tmp_path / "prod.yaml", "msa_gateway:\n  circuit_breaker:\n    minimum_samples: 30\n")

    config = load_config_with_overloads(base, prod)

    assert config.circuit_breaker.window_size == 40
    assert config.circuit_breaker.minimum_samples == 30
    assert config.client.failure_on_4xx is True


def test_default_config_path_prefers_working_directory(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    path = _write(tmp_path / "msa_gateway.yml", "")
    found = get_default_config_path()
    assert found is not None and found.resolve() == path.resolve()
