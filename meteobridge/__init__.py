"""Bridge between BTHome BLE thermometers and InfluxDB."""

__version__ = "0.1.0"

__all__ = [
    "aggregator",
    "ble",
    "classify",
    "config",
    "dispatch",
    "mailbox",
    "main",
    "metrics",
    "router",
    "sinks",
    "streams",
]
