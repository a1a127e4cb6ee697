"""Sink de prueba que solo registra los registros en el log."""

from __future__ import annotations

import logging

from .base import CompletedRecord

logger = logging.getLogger(__name__)


class DryRunSink:
    def __init__(self) -> None:
        self.emitted = 0

    async def emit(self, record: CompletedRecord, measurement: str) -> None:
        self.emitted += 1
        logger.info("Habitación %s: dry-run %s=%r", record.room, measurement, record)

    def close(self) -> None:
        logger.debug("DryRunSink cerrado tras %d registros.", self.emitted)
