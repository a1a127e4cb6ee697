"""Filter device property changes down to weather advertisements and route them."""

from __future__ import annotations

import logging
import uuid
from typing import Callable, List, Mapping, Optional

from .ble.bthome import DecodeError, Element, decode
from .ble.events import DeviceEvent, DevicePropertyChanged, ServiceData
from .classify import ClassifiedSample, classify
from .mailbox import Mailbox, MailboxClosed
from .metrics import IngestMetrics

logger = logging.getLogger(__name__)

# First 32 bits of the BTHome service UUID (0xFCD2) used by the pvvx custom firmware.
WEATHER_SAMPLE_UUID_HEADER = 0x0000FCD2


def uuid_header(key: str) -> Optional[int]:
    """First 32 bits of a service UUID, accepting 16/32-bit short forms too."""

    text = str(key).strip()
    try:
        if len(text) in (4, 8):
            return int(text, 16)
        return uuid.UUID(text).fields[0]
    except ValueError:
        return None


class DeviceRouter:
    """Decode matching service data entries and forward them to the sensor's mailbox."""

    def __init__(
        self,
        mailboxes: Mapping[str, Mailbox[ClassifiedSample]],
        *,
        decoder: Callable[[bytes], List[Element]] = decode,
        metrics: Optional[IngestMetrics] = None,
    ) -> None:
        self.mailboxes = mailboxes
        self._decode = decoder
        self.metrics = metrics

    async def route(self, event: DeviceEvent, address: str) -> int:
        """Return how many samples were forwarded for ``event``."""

        if not isinstance(event, DevicePropertyChanged) or not isinstance(event.prop, ServiceData):
            return 0

        forwarded = 0
        for key, payload in event.prop.entries.items():
            if uuid_header(key) != WEATHER_SAMPLE_UUID_HEADER:
                continue
            try:
                elements = self._decode(payload)
            except DecodeError as exc:
                logger.warning("Dispositivo %s: payload BTHome inválido: %s", address, exc)
                self._count("decode_errors")
                continue

            mailbox = self.mailboxes.get(address)
            if mailbox is None:
                logger.debug("Dispositivo %s sin mailbox registrado; se descarta.", address)
                continue
            try:
                await mailbox.send(classify(elements))
            except MailboxClosed:
                logger.debug("Mailbox de %s cerrado; se descarta la muestra.", address)
                continue
            self._count("advertisements_routed")
            forwarded += 1
        return forwarded

    def _count(self, name: str) -> None:
        if self.metrics is not None:
            self.metrics.increment(name)
