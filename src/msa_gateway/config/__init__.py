"""Configuration models and the YAML loader."""

from .loader import (
    ConfigError,
    get_default_config_path,
    load_config,
    load_config_with_overloads,
)
from .models import ClientConfig, GatewayConfig, ServiceOverride

__all__ = [
    "ClientConfig",
    "ConfigError",
    "GatewayConfig",
    "ServiceOverride",
    "get_default_config_path",
    "load_config",
    "load_config_with_overloads",
]
