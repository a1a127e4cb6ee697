"""Event model shared by the BLE source and the dispatch loop."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

_ADDRESS_RE = re.compile(r"^[0-9A-F]{2}(:[0-9A-F]{2}){5}$")


def normalize_address(value: Any) -> str:
    """Return the canonical ``AA:BB:CC:DD:EE:FF`` form of a BLE address."""

    text = str(value).strip().upper().replace("-", ":")
    if not _ADDRESS_RE.match(text):
        raise ValueError(f"dirección BLE inválida: {value!r}")
    return text


@dataclass(frozen=True)
class DeviceAdded:
    address: str


@dataclass(frozen=True)
class DeviceRemoved:
    address: str


@dataclass(frozen=True)
class AdapterPropertyChanged:
    name: str
    value: Any = None


AdapterEvent = Union[DeviceAdded, DeviceRemoved, AdapterPropertyChanged]


@dataclass(frozen=True)
class ServiceData:
    """Service data advertised by a device, keyed by service UUID string."""

    entries: Mapping[str, bytes] = field(default_factory=dict)


@dataclass(frozen=True)
class OtherProperty:
    name: str
    value: Any = None


DeviceProperty = Union[ServiceData, OtherProperty]


@dataclass(frozen=True)
class DevicePropertyChanged:
    prop: DeviceProperty


DeviceEvent = DevicePropertyChanged
