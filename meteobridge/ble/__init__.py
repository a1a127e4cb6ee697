"""BLE side of the bridge: BTHome decoding, event model and discovery source."""

from .bthome import DecodeError, Element, ElementKind, decode
from .events import (
    AdapterEvent,
    AdapterPropertyChanged,
    DeviceAdded,
    DeviceEvent,
    DeviceProperty,
    DevicePropertyChanged,
    DeviceRemoved,
    OtherProperty,
    ServiceData,
    normalize_address,
)
from .scanner import AdvertisementSource, BleakAdvertisementSource, DeviceSubscription

__all__ = [
    "AdapterEvent",
    "AdapterPropertyChanged",
    "AdvertisementSource",
    "BleakAdvertisementSource",
    "DecodeError",
    "DeviceAdded",
    "DeviceEvent",
    "DeviceProperty",
    "DevicePropertyChanged",
    "DeviceRemoved",
    "DeviceSubscription",
    "Element",
    "ElementKind",
    "OtherProperty",
    "ServiceData",
    "decode",
    "normalize_address",
]
