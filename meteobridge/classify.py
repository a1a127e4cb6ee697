"""Clasificación de elementos BTHome en muestras meteorológicas o de voltaje."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from .ble.bthome import Element, ElementKind


@dataclass(frozen=True)
class MeteoSample:
    temperature: float
    humidity: float
    battery_level: int


@dataclass(frozen=True)
class VoltageSample:
    battery_voltage: float


@dataclass(frozen=True)
class Unrecognized:
    reason: str


ClassifiedSample = Union[MeteoSample, VoltageSample, Unrecognized]


def classify(elements: Iterable[Element]) -> ClassifiedSample:
    """Classify a decoded element set.

    Element values arrive already scaled by the BTHome factors (centi-degrees
    and centi-percent x0.01, millivolts x0.001). The last occurrence of each
    field wins. A meteo reading needs temperature, humidity and battery level
    together and is checked before the voltage reading.
    """

    temperature: Optional[float] = None
    humidity: Optional[float] = None
    battery_level: Optional[int] = None
    battery_voltage: Optional[float] = None

    for element in elements:
        kind = element.kind
        if kind is ElementKind.TEMPERATURE:
            temperature = float(element.value)
        elif kind is ElementKind.HUMIDITY:
            humidity = float(element.value)
        elif kind is ElementKind.BATTERY:
            battery_level = int(element.value)
        elif kind is ElementKind.VOLTAGE:
            battery_voltage = float(element.value)

    if temperature is not None and humidity is not None and battery_level is not None:
        return MeteoSample(temperature=temperature, humidity=humidity, battery_level=battery_level)
    if battery_voltage is not None:
        return VoltageSample(battery_voltage=battery_voltage)

    missing = [
        name
        for name, value in (
            ("temperature", temperature),
            ("humidity", humidity),
            ("battery_level", battery_level),
        )
        if value is None
    ]
    return Unrecognized(reason="faltan campos: " + ", ".join(missing) + " (sin battery_voltage)")
