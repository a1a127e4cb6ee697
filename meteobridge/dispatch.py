"""Top-level loop merging adapter discovery with the per-device event streams."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from .ble.events import (
    AdapterEvent,
    AdapterPropertyChanged,
    DeviceAdded,
    DevicePropertyChanged,
    DeviceRemoved,
)
from .ble.scanner import AdvertisementSource
from .metrics import IngestMetrics
from .router import DeviceRouter
from .streams import StreamSet

logger = logging.getLogger(__name__)


class _AdapterKey:
    def __repr__(self) -> str:
        return "<adapter>"


ADAPTER = _AdapterKey()


class DispatchLoop:
    """Drive the device router from the adapter and device event streams.

    Configured devices are subscribed when discovered and unsubscribed when
    removed; the loop returns once the adapter stream and every device stream
    are exhausted.
    """

    def __init__(
        self,
        source: AdvertisementSource,
        sensors: Mapping[str, str],
        router: DeviceRouter,
        *,
        metrics: Optional[IngestMetrics] = None,
    ) -> None:
        self.source = source
        self.sensors = sensors
        self.router = router
        self.metrics = metrics
        self.streams: StreamSet = StreamSet()

    async def run(self) -> None:
        await self.streams.add(ADAPTER, self.source.adapter_events())
        try:
            async for key, event in self.streams:
                if key is ADAPTER:
                    await self.handle_adapter_event(event)
                elif isinstance(event, DevicePropertyChanged):
                    await self.router.route(event, key)
        finally:
            await self.streams.aclose()
        logger.info("Fuentes de eventos agotadas; fin del dispatch loop.")

    async def handle_adapter_event(self, event: AdapterEvent) -> None:
        if isinstance(event, DeviceAdded):
            room = self.sensors.get(event.address)
            if room is None:
                return
            logger.info("Dispositivo %s encontrado (habitación: %s)", event.address, room)
            self._count("devices_discovered")
            await self.streams.add(event.address, self.source.device_events(event.address))
        elif isinstance(event, DeviceRemoved):
            room = self.sensors.get(event.address)
            if room is None:
                return
            logger.info("Dispositivo %s eliminado (habitación: %s)", event.address, room)
            self._count("devices_removed")
            await self.streams.discard(event.address)
        elif isinstance(event, AdapterPropertyChanged):
            return

    def _count(self, name: str) -> None:
        if self.metrics is not None:
            self.metrics.increment(name)
