"""Fuente de eventos BLE basada en ``bleak``."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Callable, Dict, Iterable, Mapping, Optional, Protocol, runtime_checkable

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from .events import (
    AdapterEvent,
    DeviceAdded,
    DeviceEvent,
    DevicePropertyChanged,
    DeviceRemoved,
    ServiceData,
    normalize_address,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class AdvertisementSource(Protocol):
    """Contrato de la capa de descubrimiento consumida por el dispatch loop."""

    def adapter_events(self) -> AsyncIterator[AdapterEvent]:
        """Stream of discovery events for the whole adapter."""

    def device_events(self, address: str) -> AsyncIterator[DeviceEvent]:
        """Stream of property changes for one device."""


class BleakAdvertisementSource:
    """Translate bleak detection callbacks into adapter and device event streams.

    The scanner runs only while :meth:`adapter_events` is being iterated. A
    device is reported as added on its first advertisement and, when
    ``device_timeout_s`` is set, as removed once it has been silent for that
    long. Service data is forwarded to subscribers only when it changed since
    the previous advertisement of the same device.

    When ``addresses`` is given, every other device is ignored and no state is
    kept for it, so the bookkeeping stays bounded by the configured sensors.
    """

    def __init__(
        self,
        *,
        addresses: Optional[Iterable[str]] = None,
        adapter: Optional[str] = None,
        device_timeout_s: Optional[float] = None,
        queue_size: int = 16,
        scanner_factory: Callable[..., BleakScanner] = BleakScanner,
    ) -> None:
        self.addresses = None if addresses is None else frozenset(normalize_address(a) for a in addresses)
        self.adapter = adapter
        self.device_timeout_s = device_timeout_s
        self.queue_size = queue_size
        self._scanner_factory = scanner_factory
        self._adapter_queue: "asyncio.Queue[AdapterEvent]" = asyncio.Queue()
        self._subscribers: Dict[str, "asyncio.Queue[DeviceEvent]"] = {}
        self._last_seen: Dict[str, float] = {}
        self._last_service_data: Dict[str, Mapping[str, bytes]] = {}
        self._clock = time.monotonic

    async def adapter_events(self) -> AsyncIterator[AdapterEvent]:
        kwargs = {"detection_callback": self._on_detection}
        if self.adapter:
            kwargs["adapter"] = self.adapter
        scanner = self._scanner_factory(**kwargs)
        await scanner.start()
        logger.info("Descubriendo dispositivos con el adaptador Bluetooth %s", self.adapter or "por defecto")
        try:
            while True:
                if self.device_timeout_s is None:
                    yield await self._adapter_queue.get()
                    continue
                try:
                    yield await asyncio.wait_for(self._adapter_queue.get(), timeout=self.device_timeout_s / 2)
                except asyncio.TimeoutError:
                    pass
                for event in self._expire_devices():
                    yield event
        finally:
            await scanner.stop()
            logger.info("Escaneo BLE detenido.")

    def device_events(self, address: str) -> "DeviceSubscription":
        """Subscribe to ``address`` right away; events queue up until iterated."""

        address = normalize_address(address)
        queue: "asyncio.Queue[DeviceEvent]" = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[address] = queue
        # Next advertisement is delivered even if it repeats what was seen unsubscribed.
        self._last_service_data.pop(address, None)
        return DeviceSubscription(self, address, queue)

    def _unsubscribe(self, address: str, queue: "asyncio.Queue[DeviceEvent]") -> None:
        if self._subscribers.get(address) is queue:
            del self._subscribers[address]

    # Lógica interna ----------------------------------------------------------
    def _on_detection(self, device: BLEDevice, advertisement: AdvertisementData) -> None:
        try:
            address = normalize_address(device.address)
        except ValueError:
            # macOS backends report UUIDs instead of hardware addresses.
            return
        if self.addresses is not None and address not in self.addresses:
            return

        first_seen = address not in self._last_seen
        self._last_seen[address] = self._clock()
        if first_seen:
            self._adapter_queue.put_nowait(DeviceAdded(address))

        service_data = dict(advertisement.service_data or {})
        if not service_data or self._last_service_data.get(address) == service_data:
            return
        self._last_service_data[address] = service_data

        queue = self._subscribers.get(address)
        if queue is None:
            return
        self._put_with_overflow_policy(queue, address, DevicePropertyChanged(ServiceData(service_data)))

    def _expire_devices(self) -> list[AdapterEvent]:
        if self.device_timeout_s is None:
            return []
        deadline = self._clock() - self.device_timeout_s
        expired = [address for address, seen in self._last_seen.items() if seen < deadline]
        for address in expired:
            del self._last_seen[address]
            self._last_service_data.pop(address, None)
        return [DeviceRemoved(address) for address in expired]

    @staticmethod
    def _put_with_overflow_policy(
        queue: "asyncio.Queue[DeviceEvent]", address: str, event: DeviceEvent
    ) -> None:
        while True:
            try:
                queue.put_nowait(event)
                return
            except asyncio.QueueFull:
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:  # pragma: no cover - carrera improbable
                    logger.error("Cola del dispositivo %s saturada; se descarta el evento.", address)
                    return
                logger.warning("Cola del dispositivo %s llena; se descarta el evento más antiguo.", address)


class DeviceSubscription:
    """Async iterator over one device's queued events.

    The queue is registered with the source when the subscription is created,
    not on first iteration, so nothing advertised in between is lost.
    """

    def __init__(
        self,
        source: BleakAdvertisementSource,
        address: str,
        queue: "asyncio.Queue[DeviceEvent]",
    ) -> None:
        self.address = address
        self._source = source
        self._queue = queue
        self._closed = False

    def __aiter__(self) -> "DeviceSubscription":
        return self

    async def __anext__(self) -> DeviceEvent:
        if self._closed:
            raise StopAsyncIteration
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._source._unsubscribe(self.address, self._queue)
