"""Fan-in de un conjunto dinámico de streams asíncronos."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, AsyncIterator, Deque, Dict, Generic, Hashable, Tuple, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class StreamSet(Generic[K, T]):
    """Merge a keyed, growing set of async iterators into one ``(key, item)`` stream.

    Each member has at most one pending ``__anext__`` at a time, so nothing is
    read ahead of the consumer. No member has priority over another. Iteration
    ends once every member is exhausted or discarded.
    """

    def __init__(self) -> None:
        self._streams: Dict[K, AsyncIterator[T]] = {}
        self._pending: Dict[K, "asyncio.Future[T]"] = {}
        self._ready: Deque[Tuple[K, "asyncio.Future[T]"]] = deque()

    def __len__(self) -> int:
        return len(self._streams)

    def __contains__(self, key: object) -> bool:
        return key in self._streams

    def keys(self) -> list[K]:
        return list(self._streams)

    async def add(self, key: K, stream: AsyncIterator[T]) -> None:
        """Insert ``stream`` under ``key``, replacing any previous member."""

        if key in self._streams:
            logger.debug("Reemplazando stream existente para %s", key)
            await self.discard(key)
        self._streams[key] = stream.__aiter__()

    async def discard(self, key: K) -> bool:
        """Remove and close the member registered under ``key``."""

        stream = self._streams.pop(key, None)
        if stream is None:
            return False
        pending = self._pending.pop(key, None)
        if pending is not None:
            if not pending.done():
                pending.cancel()
            try:
                await pending
            except (asyncio.CancelledError, StopAsyncIteration):
                pass
            except Exception:
                logger.exception("El stream %s falló antes de ser descartado", key)
        aclose = getattr(stream, "aclose", None)
        if callable(aclose):
            await aclose()
        return True

    async def aclose(self) -> None:
        for key in list(self._streams):
            await self.discard(key)
        self._ready.clear()

    def __aiter__(self) -> "StreamSet[K, T]":
        return self

    async def __anext__(self) -> Tuple[K, T]:
        while True:
            while self._ready:
                key, future = self._ready.popleft()
                if self._pending.get(key) is not future:
                    # Discarded while its item was waiting to be consumed.
                    continue
                del self._pending[key]
                try:
                    item = future.result()
                except StopAsyncIteration:
                    self._streams.pop(key, None)
                    continue
                except BaseException:
                    self._streams.pop(key, None)
                    raise
                return key, item

            if not self._streams:
                raise StopAsyncIteration

            for key, stream in self._streams.items():
                if key not in self._pending:
                    self._pending[key] = asyncio.ensure_future(self._next_item(stream))
            done, _ = await asyncio.wait(set(self._pending.values()), return_when=asyncio.FIRST_COMPLETED)
            for key, future in self._pending.items():
                if future in done:
                    self._ready.append((key, future))

    @staticmethod
    async def _next_item(stream: AsyncIterator[Any]) -> Any:
        return await stream.__anext__()
