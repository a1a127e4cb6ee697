"""Typed configuration models implemented with dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from meteobridge.ble.events import normalize_address

INFLUX_DRIVERS = {"influxdb_v1", "influxdb_v2"}


class ConfigurationError(ValueError):
    """Configuración inválida o incompleta."""


def _as_str(value: Any, field_name: str, *, optional: bool = False) -> Optional[str]:
    if value is None:
        if optional:
            return None
        raise ConfigurationError(f"'{field_name}' es obligatorio")
    text = str(value).strip()
    if not text and not optional:
        raise ConfigurationError(f"'{field_name}' no puede estar vacío")
    return text or None


def _as_int(value: Any, field_name: str) -> int:
    if value is None:
        raise ConfigurationError(f"'{field_name}' es obligatorio")
    if isinstance(value, bool):
        raise ConfigurationError(f"'{field_name}' debe ser un entero válido")
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{field_name}' debe ser un entero válido") from exc
    return result


def _as_float(value: Any, field_name: str) -> float:
    if value is None:
        raise ConfigurationError(f"'{field_name}' es obligatorio")
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{field_name}' debe ser numérico") from exc
    return result


def _as_optional_float(value: Any, field_name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    return _as_float(value, field_name)


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "si", "sí"}:
        return True
    if text in {"0", "false", "no"}:
        return False
    return default


@dataclass
class InfluxSettings:
    driver: str = "influxdb_v1"
    url: str = "http://localhost:8086"
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    org: Optional[str] = None
    bucket: Optional[str] = None
    token: Optional[str] = None
    measurement: str = "meteo"
    timeout_s: float = 5.0
    verify_ssl: bool = True

    @property
    def credentials(self) -> Optional[tuple[str, str]]:
        if self.username and self.password:
            return self.username, self.password
        return None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "InfluxSettings":
        if not data:
            return cls()
        driver = (_as_str(data.get("driver", "influxdb_v1"), "influx.driver") or "influxdb_v1").lower()
        if driver not in INFLUX_DRIVERS:
            raise ConfigurationError("influx.driver debe ser 'influxdb_v1' o 'influxdb_v2'")
        url = _as_str(data.get("url", "http://localhost:8086"), "influx.url")
        database = _as_str(data.get("database"), "influx.database", optional=True)
        username = _as_str(data.get("username"), "influx.username", optional=True)
        password = _as_str(data.get("password"), "influx.password", optional=True)
        if (username is None) != (password is None):
            raise ConfigurationError("influx.username e influx.password deben indicarse juntos")
        org = _as_str(data.get("org"), "influx.org", optional=True)
        bucket = _as_str(data.get("bucket"), "influx.bucket", optional=True)
        token = _as_str(data.get("token"), "influx.token", optional=True)
        measurement = _as_str(data.get("measurement", "meteo"), "influx.measurement")
        timeout_s = _as_float(data.get("timeout_s", 5.0), "influx.timeout_s")
        if timeout_s <= 0:
            raise ConfigurationError("influx.timeout_s debe ser > 0")
        verify_ssl = _as_bool(data.get("verify_ssl"), True)
        return cls(
            driver=driver,
            url=url,
            database=database,
            username=username,
            password=password,
            org=org,
            bucket=bucket,
            token=token,
            measurement=measurement,
            timeout_s=timeout_s,
            verify_ssl=verify_ssl,
        )

    def validate_for_writes(self) -> None:
        """Check that the settings are enough to reach the server."""

        if self.driver == "influxdb_v1":
            if not self.database:
                raise ConfigurationError("influx.database es obligatorio con influxdb_v1")
            return
        missing = [
            name
            for name, value in (("org", self.org), ("bucket", self.bucket), ("token", self.token))
            if not value
        ]
        if missing:
            raise ConfigurationError(
                "Faltan configuraciones obligatorias para influxdb_v2: " + ", ".join(f"influx.{m}" for m in missing)
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "driver": self.driver,
            "url": self.url,
            "database": self.database,
            "username": self.username,
            "password": self.password,
            "org": self.org,
            "bucket": self.bucket,
            "token": self.token,
            "measurement": self.measurement,
            "timeout_s": self.timeout_s,
            "verify_ssl": self.verify_ssl,
        }


@dataclass
class BluetoothSettings:
    adapter: Optional[str] = None
    device_timeout_s: Optional[float] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "BluetoothSettings":
        if not data:
            return cls()
        adapter = _as_str(data.get("adapter"), "bluetooth.adapter", optional=True)
        timeout = _as_optional_float(data.get("device_timeout_s"), "bluetooth.device_timeout_s")
        if timeout is not None and timeout <= 0:
            raise ConfigurationError("bluetooth.device_timeout_s debe ser > 0")
        return cls(adapter=adapter, device_timeout_s=timeout)

    def to_dict(self) -> Dict[str, Any]:
        return {"adapter": self.adapter, "device_timeout_s": self.device_timeout_s}


@dataclass
class MetricsSettings:
    log_interval_s: float = 300.0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "MetricsSettings":
        if not data:
            return cls()
        interval = _as_float(data.get("log_interval_s", 300.0), "metrics.log_interval_s")
        if interval < 0:
            raise ConfigurationError("metrics.log_interval_s debe ser >= 0")
        return cls(log_interval_s=interval)

    def to_dict(self) -> Dict[str, float]:
        return {"log_interval_s": self.log_interval_s}


@dataclass
class AppConfig:
    sensors: Dict[str, str]
    influx: InfluxSettings = field(default_factory=InfluxSettings)
    dry_run: bool = False
    verbose: bool = False
    mailbox_size: int = 16
    bluetooth: BluetoothSettings = field(default_factory=BluetoothSettings)
    metrics: MetricsSettings = field(default_factory=MetricsSettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AppConfig":
        sensors_payload = data.get("sensors")
        if not isinstance(sensors_payload, Mapping) or not sensors_payload:
            raise ConfigurationError("El bloque 'sensors' es obligatorio (dirección -> habitación)")
        sensors: Dict[str, str] = {}
        for raw_address, raw_room in sensors_payload.items():
            try:
                address = normalize_address(raw_address)
            except ValueError as exc:
                raise ConfigurationError(str(exc)) from exc
            if address in sensors:
                raise ConfigurationError(f"sensor duplicado: {address}")
            sensors[address] = _as_str(raw_room, f"sensors.{address}")

        influx = InfluxSettings.from_mapping(data.get("influx"))
        dry_run = _as_bool(data.get("dry_run"), False)
        verbose = _as_bool(data.get("verbose"), False)
        mailbox_size = _as_int(data.get("mailbox_size", 16), "mailbox_size")
        if mailbox_size < 1:
            raise ConfigurationError("mailbox_size debe ser >= 1")
        bluetooth = BluetoothSettings.from_mapping(data.get("bluetooth"))
        metrics = MetricsSettings.from_mapping(data.get("metrics"))
        if not dry_run:
            influx.validate_for_writes()
        return cls(
            sensors=sensors,
            influx=influx,
            dry_run=dry_run,
            verbose=verbose,
            mailbox_size=mailbox_size,
            bluetooth=bluetooth,
            metrics=metrics,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sensors": dict(self.sensors),
            "influx": self.influx.to_dict(),
            "dry_run": self.dry_run,
            "verbose": self.verbose,
            "mailbox_size": self.mailbox_size,
            "bluetooth": self.bluetooth.to_dict(),
            "metrics": self.metrics.to_dict(),
        }
