"""YAML loading for GatewayConfig.

Files may keep their options at the top level or under an ``msa_gateway:``
section. String values may reference environment variables as ``${NAME}``
or ``${NAME:-default}``; an unset or empty variable without a default is an
error.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .models import GatewayConfig

ROOT_SECTION = "msa_gateway"
SUPPORTED_SUFFIXES = (".yaml", ".yml")

_ENV_REFERENCE = re.compile(r"\$\{(?P<name>[A-Za-z_]\w*)(?::-(?P<default>[^}]*))?\}")


class ConfigError(RuntimeError):
    """Raised when a config file cannot be read or is invalid."""


def default_config_candidates() -> list[Path]:
    """Locations searched for a config file, in order."""
    return [
        Path.cwd() / "msa_gateway.yaml",
        Path.cwd() / "msa_gateway.yml",
        Path.home() / ".msa_gateway.yaml",
        Path("/etc/msa_gateway/config.yaml"),
    ]


def get_default_config_path() -> Path | None:
    return next((path for path in default_config_candidates() if path.is_file()), None)


def load_config(path: str | Path) -> GatewayConfig:
    """Read one YAML file into a GatewayConfig.

    Raises:
        ConfigError: The file is missing, unreadable, not a mapping, refers
            to an unset variable, or holds invalid options.
    """
    return _to_config(_read_mapping(path), path)


def load_config_with_overloads(base_path: str | Path, *overload_paths: str | Path) -> GatewayConfig:
    """Read a base file and deep-merge each overload onto it, left to right."""
    merged = _read_mapping(base_path)
    for path in overload_paths:
        merged = _deep_merge(merged, _read_mapping(path))
    return _to_config(merged, base_path)


def _to_config(data: Mapping[str, Any], source: str | Path) -> GatewayConfig:
    try:
        return GatewayConfig.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config in {source}: {exc}") from exc


def _read_mapping(path: str | Path) -> dict[str, Any]:
    file = Path(path).expanduser()
    if file.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise ConfigError(f"Unsupported config file type {file.suffix!r}; use one of {SUPPORTED_SUFFIXES}")
    if not file.is_file():
        raise ConfigError(f"Config file not found: {file}")
    try:
        with file.open(encoding="utf-8") as stream:
            document = yaml.safe_load(stream)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to load config file {file}: {exc}") from exc
    if document is None:
        return {}
    if not isinstance(document, Mapping):
        raise ConfigError(f"{file} must contain a mapping at the top level")
    return _unwrap_root(_substitute_env(document))


def _substitute_env(node: Any) -> Any:
    if isinstance(node, Mapping):
        return {key: _substitute_env(value) for key, value in node.items()}
    if isinstance(node, list):
        return list(map(_substitute_env, node))
    if isinstance(node, str) and "${" in node:
        return _ENV_REFERENCE.sub(_env_value, node)
    return node


def _env_value(match: re.Match[str]) -> str:
    name, default = match.group("name"), match.group("default")
    value = os.environ.get(name)
    if value:
        return value
    if default is None:
        raise ConfigError(f"Environment variable {name!r} is not set and has no default")
    return default


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            value = _deep_merge(current, value)
        result[key] = value
    return result


def _unwrap_root(data: Mapping[str, Any]) -> dict[str, Any]:
    if ROOT_SECTION not in data:
        return dict(data)
    section = data[ROOT_SECTION]
    if not isinstance(section, Mapping):
        raise ConfigError(f"{ROOT_SECTION!r} section must be a mapping")
    siblings = {key: value for key, value in data.items() if key != ROOT_SECTION}
    return {**siblings, **section}
