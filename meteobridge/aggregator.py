"""Per-sensor worker pairing voltage and meteo readings into complete records."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .classify import ClassifiedSample, MeteoSample, Unrecognized, VoltageSample
from .mailbox import Mailbox
from .metrics import IngestMetrics
from .sinks.base import CompletedRecord, RecordSink, SinkError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SensorAggregator:
    """Consume one sensor's mailbox and emit a record for every paired meteo sample.

    The most recent voltage sample is latched with no expiry and is only
    replaced by a newer one. Meteo samples that arrive before any voltage
    sample are dropped.
    """

    def __init__(
        self,
        address: str,
        room: str,
        mailbox: Mailbox[ClassifiedSample],
        sink: RecordSink,
        measurement: str,
        *,
        metrics: Optional[IngestMetrics] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.address = address
        self.room = room
        self.mailbox = mailbox
        self.sink = sink
        self.measurement = measurement
        self.metrics = metrics
        self._clock = clock
        self.last_voltage: Optional[VoltageSample] = None

    async def run(self) -> None:
        """Process samples until the mailbox is closed."""

        async for sample in self.mailbox:
            await self.handle(sample)
        logger.debug("Habitación %s: worker finalizado.", self.room)

    async def handle(self, sample: ClassifiedSample) -> Optional[CompletedRecord]:
        if isinstance(sample, VoltageSample):
            logger.info("Habitación %s: %r", self.room, sample)
            self._count("voltage_samples")
            self.last_voltage = sample
            return None

        if isinstance(sample, MeteoSample):
            logger.info("Habitación %s: %r", self.room, sample)
            self._count("meteo_samples")
            if self.last_voltage is None:
                logger.info("Habitación %s: sin voltaje previo, se descarta la muestra meteo.", self.room)
                self._count("records_skipped_no_voltage")
                return None
            record = self._pair(sample, self.last_voltage)
            await self._emit(record)
            return record

        if isinstance(sample, Unrecognized):
            logger.info("Habitación %s: no se puede interpretar la muestra (%s)", self.room, sample.reason)
            self._count("unrecognized_samples")
            return None

        raise TypeError(f"Muestra no soportada: {type(sample).__name__}")

    def _pair(self, meteo: MeteoSample, voltage: VoltageSample) -> CompletedRecord:
        return CompletedRecord(
            timestamp=self._clock(),
            sensor=self.address,
            room=self.room,
            temperature=meteo.temperature,
            humidity=meteo.humidity,
            battery_voltage=voltage.battery_voltage,
            battery_level=meteo.battery_level,
        )

    async def _emit(self, record: CompletedRecord) -> None:
        logger.info("Habitación %s: envío %r", self.room, record)
        try:
            await self.sink.emit(record, self.measurement)
        except SinkError as exc:
            logger.error("Habitación %s: no se pudo escribir el registro: %s", self.room, exc)
            self._count("sink_failures")
            return
        self._count("records_emitted")

    def _count(self, name: str) -> None:
        if self.metrics is not None:
            self.metrics.increment(name, room=self.room)
