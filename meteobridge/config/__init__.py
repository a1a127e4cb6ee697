"""Configuration schemas and loading helpers for the bridge."""

from .schema import AppConfig, BluetoothSettings, ConfigurationError, InfluxSettings, MetricsSettings
from .store import DEFAULT_CONFIG_PATH, apply_env_overrides, load_app_config, load_env_file

__all__ = [
    "AppConfig",
    "BluetoothSettings",
    "ConfigurationError",
    "DEFAULT_CONFIG_PATH",
    "InfluxSettings",
    "MetricsSettings",
    "apply_env_overrides",
    "load_app_config",
    "load_env_file",
]
