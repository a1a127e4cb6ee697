"""Sinks disponibles y utilidades de construcción."""

from __future__ import annotations

import logging

from meteobridge.config.schema import AppConfig

from .base import CompletedRecord, RecordSink, SinkError
from .dryrun import DryRunSink
from .influx import InfluxSink, record_to_line

logger = logging.getLogger(__name__)

__all__ = [
    "CompletedRecord",
    "DryRunSink",
    "InfluxSink",
    "RecordSink",
    "SinkError",
    "build_sink",
    "record_to_line",
]


def build_sink(config: AppConfig) -> RecordSink:
    """Inicializa el sink indicado en la configuración."""

    if config.dry_run:
        logger.info("Modo dry-run: los registros no se enviarán a InfluxDB.")
        return DryRunSink()
    influx = config.influx
    logger.info("Enviando registros a %s (%s, measurement=%s)", influx.url, influx.driver, influx.measurement)
    return InfluxSink(influx)
