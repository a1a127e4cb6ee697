"""Interfaces y modelos comunes para los sinks de registros."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable


class SinkError(RuntimeError):
    """La escritura en el sink falló (red, autenticación o servidor)."""


@dataclass(frozen=True)
class CompletedRecord:
    """Medición completa de un sensor: meteo emparejada con el último voltaje."""

    timestamp: datetime
    sensor: str
    room: str
    temperature: float
    humidity: float
    battery_voltage: float
    battery_level: int


@runtime_checkable
class RecordSink(Protocol):
    """Contrato mínimo para los sinks de registros."""

    async def emit(self, record: CompletedRecord, measurement: str) -> None:
        """Escribe un registro; lanza SinkError si falla."""

    def close(self) -> None:
        """Libera los recursos asociados al sink."""
