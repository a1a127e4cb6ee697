"""Unit tests for the configuration schema and loader."""

from __future__ import annotations

import pytest
import yaml

from meteobridge.config import AppConfig, ConfigurationError, load_app_config
from meteobridge.config.schema import BluetoothSettings, InfluxSettings
from meteobridge.config.store import apply_env_overrides, load_env_file


def build_payload(**overrides):
    payload = {
        "sensors": {"a4:c1:38:00:11:22": "Salon", "A4-C1-38-00-33-44": "Cocina"},
        "influx": {"url": "http://localhost:8086", "database": "casa"},
    }
    payload.update(overrides)
    return payload


def write_config(tmp_path, payload):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return path


def test_sensor_addresses_are_normalised():
    config = AppConfig.from_mapping(build_payload())

    assert config.sensors == {"A4:C1:38:00:11:22": "Salon", "A4:C1:38:00:33:44": "Cocina"}
    assert config.influx.measurement == "meteo"
    assert config.mailbox_size == 16


def test_duplicate_sensor_after_normalisation_is_rejected():
    payload = build_payload(sensors={"a4:c1:38:00:11:22": "Salon", "A4:C1:38:00:11:22": "Otra"})

    with pytest.raises(ConfigurationError, match="sensor duplicado"):
        AppConfig.from_mapping(payload)


def test_invalid_sensor_address_is_rejected():
    with pytest.raises(ConfigurationError, match="dirección BLE inválida"):
        AppConfig.from_mapping(build_payload(sensors={"no-es-mac": "Salon"}))


def test_sensors_block_is_required():
    with pytest.raises(ConfigurationError, match="sensors"):
        AppConfig.from_mapping(build_payload(sensors={}))


def test_v1_database_required_unless_dry_run():
    payload = build_payload(influx={"url": "http://localhost:8086"})

    with pytest.raises(ConfigurationError, match="influx.database"):
        AppConfig.from_mapping(payload)

    payload["dry_run"] = True
    assert AppConfig.from_mapping(payload).dry_run is True


def test_v2_lists_missing_fields():
    payload = build_payload(influx={"driver": "influxdb_v2", "org": "demo"})

    with pytest.raises(ConfigurationError, match="influx.bucket, influx.token"):
        AppConfig.from_mapping(payload)


def test_influx_credentials_must_come_together():
    with pytest.raises(ConfigurationError, match="juntos"):
        InfluxSettings.from_mapping({"database": "casa", "username": "pi"})

    settings = InfluxSettings.from_mapping({"database": "casa", "username": "pi", "password": "x"})
    assert settings.credentials == ("pi", "x")


def test_unknown_driver_is_rejected():
    with pytest.raises(ConfigurationError, match="influx.driver"):
        InfluxSettings.from_mapping({"driver": "postgres"})


def test_mailbox_size_must_be_positive():
    with pytest.raises(ConfigurationError, match="mailbox_size"):
        AppConfig.from_mapping(build_payload(mailbox_size=0))


def test_bluetooth_timeout_validation():
    assert BluetoothSettings.from_mapping({"device_timeout_s": ""}).device_timeout_s is None
    with pytest.raises(ConfigurationError, match="device_timeout_s"):
        BluetoothSettings.from_mapping({"device_timeout_s": -5})


def test_to_dict_round_trips_through_from_mapping():
    config = AppConfig.from_mapping(build_payload(bluetooth={"adapter": "hci1"}))

    assert AppConfig.from_mapping(config.to_dict()) == config


def test_load_app_config_reads_yaml(tmp_path):
    path = write_config(tmp_path, build_payload(verbose=True))

    config = load_app_config(path)

    assert config.verbose is True
    assert config.influx.database == "casa"


def test_load_app_config_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="No existe"):
        load_app_config(tmp_path / "nada.yaml")


def test_load_app_config_rejects_non_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- solo\n- una lista\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Expected a mapping"):
        load_app_config(path)


def test_env_overrides_replace_influx_values(tmp_path):
    path = write_config(tmp_path, build_payload())
    env = {"INFLUX_DATABASE": "otra", "INFLUX_URL": "", "INFLUX_TOKEN": "tok", "HOME": "/root"}

    config = load_app_config(path, env=env)

    assert config.influx.database == "otra"
    assert config.influx.url == "http://localhost:8086"
    assert config.influx.token == "tok"


def test_apply_env_overrides_does_not_mutate_input():
    raw = {"influx": {"database": "casa"}}

    merged = apply_env_overrides(raw, {"INFLUX_DATABASE": "otra"})

    assert raw == {"influx": {"database": "casa"}}
    assert merged["influx"]["database"] == "otra"


def test_cli_overrides_win_and_none_is_ignored(tmp_path):
    path = write_config(tmp_path, build_payload(influx={}, dry_run=True, verbose=True))

    config = load_app_config(path, overrides={"dry_run": None, "verbose": False})

    assert config.dry_run is True
    assert config.verbose is False


def test_load_env_file(tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("INFLUX_DATABASE=desde_env\nVACIA\n", encoding="utf-8")

    assert load_env_file(env_path) == {"INFLUX_DATABASE": "desde_env"}
