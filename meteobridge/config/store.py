"""Helpers to load and validate the bridge configuration file."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .schema import AppConfig, ConfigurationError

DEFAULT_CONFIG_PATH = Path("config.yaml")

# Environment variable -> key inside the ``influx`` block.
INFLUX_ENV_KEYS = {
    "INFLUX_URL": "url",
    "INFLUX_DATABASE": "database",
    "INFLUX_USERNAME": "username",
    "INFLUX_PASSWORD": "password",
    "INFLUX_ORG": "org",
    "INFLUX_BUCKET": "bucket",
    "INFLUX_TOKEN": "token",
    "INFLUX_MEASUREMENT": "measurement",
}


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"No existe el archivo de configuración {path}")
    with path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"YAML inválido en {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping at {path}, found {type(data).__name__}")
    return data


def load_env_file(path: Path) -> Mapping[str, str]:
    """Load key/value pairs from a dotenv file."""

    values = dotenv_values(str(path))
    return {k: v for k, v in values.items() if v is not None}


def apply_env_overrides(raw: Mapping[str, Any], env: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``raw`` where ``INFLUX_*`` variables replace the file values."""

    payload = dict(raw)
    influx = dict(payload.get("influx") or {})
    for env_name, key in INFLUX_ENV_KEYS.items():
        value = env.get(env_name)
        if value not in (None, ""):
            influx[key] = value
    if influx:
        payload["influx"] = influx
    return payload


def load_app_config(
    path: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> AppConfig:
    """Read, merge and validate the configuration.

    Precedence, lowest first: YAML file, environment variables, ``overrides``
    (the CLI flags).
    """

    cfg_path = path or DEFAULT_CONFIG_PATH
    payload = _read_yaml(cfg_path)
    if env is not None:
        payload = apply_env_overrides(payload, env)
    if overrides:
        payload.update({key: value for key, value in overrides.items() if value is not None})
    return AppConfig.from_mapping(payload)
