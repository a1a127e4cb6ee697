"""Bounded, closable FIFO used to hand samples to one sensor worker."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Generic, Optional, TypeVar

T = TypeVar("T")

DEFAULT_MAILBOX_SIZE = 16

_CLOSED = object()


class MailboxClosed(RuntimeError):
    """Raised when sending to a mailbox that has been closed."""


class Mailbox(Generic[T]):
    """Single-consumer mailbox.

    ``send`` suspends while the mailbox is full. After ``close`` the consumer
    still drains every pending item before ``receive`` returns ``None``.
    """

    def __init__(self, maxsize: int = DEFAULT_MAILBOX_SIZE) -> None:
        if maxsize < 1:
            raise ValueError("maxsize debe ser >= 1")
        self.maxsize = maxsize
        # One extra slot so the close marker never waits behind a full mailbox.
        self._queue: "asyncio.Queue[object]" = asyncio.Queue(maxsize + 1)
        self._slots = asyncio.Semaphore(maxsize)
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    async def send(self, item: T) -> None:
        if self._closed:
            raise MailboxClosed("mailbox cerrado")
        await self._slots.acquire()
        if self._closed:
            self._slots.release()
            raise MailboxClosed("mailbox cerrado")
        self._queue.put_nowait(item)

    async def receive(self) -> Optional[T]:
        if self._drained:
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            self._drained = True
            return None
        self._slots.release()
        return item  # type: ignore[return-value]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            item = await self.receive()
            if item is None:
                return
            yield item
