"""Adaptador sobre ``bthome-ble`` para el service data BTHome v2.

The parsing itself (object table, sizes, signedness and scaling factors) is
done by ``bthome_ble``. This module only rejects payloads the bridge cannot
use and flattens the parser's sensor update into an ordered element list.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple, Union

from bthome_ble import BTHomeBluetoothDeviceData
from home_assistant_bluetooth import BluetoothServiceInfo

BTHOME_SERVICE_UUID = "0000fcd2-0000-1000-8000-00805f9b34fb"

_ENCRYPTION_FLAG = 0x01
_VERSION_SHIFT = 5
SUPPORTED_VERSION = 2

# Placeholder identity handed to the parser; only encrypted payloads use it.
_ANONYMOUS_ADDRESS = "00:00:00:00:00:00"


class DecodeError(ValueError):
    """Payload BTHome mal formado o no soportado."""


class ElementKind(str, Enum):
    """Sensor keys reported by the parser that the bridge understands."""

    PACKET_ID = "packet_id"
    BATTERY = "battery"
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    VOLTAGE = "voltage"


@dataclass(frozen=True)
class Element:
    """Medición decodificada, ya escalada a su unidad (°C, %, V...)."""

    key: str
    value: Union[int, float]

    @property
    def kind(self) -> ElementKind | None:
        try:
            return ElementKind(self.key)
        except ValueError:
            return None


def _split_key(key: str) -> Tuple[str, int]:
    # Repeated objects of one type come back as "temperature_2", "temperature_3"...
    base, _, suffix = key.rpartition("_")
    if base and suffix.isdigit():
        return base, int(suffix)
    return key, 0


def _check_header(data: bytes) -> None:
    if not data:
        raise DecodeError("payload vacío")
    device_info = data[0]
    if device_info & _ENCRYPTION_FLAG:
        raise DecodeError("payloads cifrados no soportados")
    version = device_info >> _VERSION_SHIFT
    if version != SUPPORTED_VERSION:
        raise DecodeError(f"versión BTHome {version} no soportada")


def decode(payload: bytes, address: str = _ANONYMOUS_ADDRESS) -> List[Element]:
    """Decode a BTHome v2 service data payload into its measurements.

    A payload with objects of which none could be parsed (unknown first object
    id, truncated object) raises :class:`DecodeError`. Objects after an
    unparseable one are ignored by the parser.
    """

    data = bytes(payload)
    _check_header(data)

    service_info = BluetoothServiceInfo(
        name=address,
        address=address,
        rssi=-127,
        manufacturer_data={},
        service_data={BTHOME_SERVICE_UUID: data},
        service_uuids=[BTHOME_SERVICE_UUID],
        source="meteobridge",
    )
    update = BTHomeBluetoothDeviceData().update(service_info)

    indexed = []
    for device_key, sensor_value in update.entity_values.items():
        base, index = _split_key(device_key.key)
        if base == "signal_strength" or sensor_value.native_value is None:
            continue
        indexed.append((index, Element(key=base, value=sensor_value.native_value)))
    indexed.sort(key=lambda item: item[0])
    elements = [element for _, element in indexed]

    if not elements and len(data) > 1:
        raise DecodeError(f"ningún objeto BTHome reconocible en {data.hex()}")
    return elements
