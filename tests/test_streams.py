"""Unit tests covering the dynamic stream fan-in."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, List

import pytest

from meteobridge.streams import StreamSet


async def _items(values, delay: float = 0.0) -> AsyncIterator:
    for value in values:
        if delay:
            await asyncio.sleep(delay)
        yield value


class ClosableStream:
    """Async iterator fed by a queue, recording whether it was closed."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        return await self.queue.get()

    async def aclose(self) -> None:
        self.closed = True


def test_stream_set_merges_all_members_until_exhausted():
    async def scenario():
        streams: StreamSet = StreamSet()
        await streams.add("a", _items([1, 2, 3]))
        await streams.add("b", _items(["x", "y"]))
        return [pair async for pair in streams]

    pairs = asyncio.run(scenario())

    assert sorted(pair for pair in pairs if pair[0] == "a") == [("a", 1), ("a", 2), ("a", 3)]
    assert [pair for pair in pairs if pair[0] == "b"] == [("b", "x"), ("b", "y")]


def test_stream_set_keeps_per_stream_order():
    async def scenario():
        streams: StreamSet = StreamSet()
        await streams.add("slow", _items(range(5), delay=0.002))
        await streams.add("fast", _items(range(5)))
        collected: dict = {"slow": [], "fast": []}
        async for key, value in streams:
            collected[key].append(value)
        return collected

    collected = asyncio.run(scenario())

    assert collected == {"slow": list(range(5)), "fast": list(range(5))}


def test_empty_stream_set_ends_immediately():
    async def scenario():
        return [pair async for pair in StreamSet()]

    assert asyncio.run(scenario()) == []


def test_stream_set_accepts_members_added_while_iterating():
    async def scenario():
        streams: StreamSet = StreamSet()
        await streams.add("root", _items(["spawn", "done"]))
        seen: List[tuple] = []
        async for key, value in streams:
            seen.append((key, value))
            if value == "spawn":
                await streams.add("child", _items([10, 20]))
        return seen

    seen = asyncio.run(scenario())

    assert ("child", 10) in seen
    assert ("child", 20) in seen
    assert seen[0] == ("root", "spawn")


def test_discard_closes_member_and_stops_its_items():
    async def scenario():
        streams: StreamSet = StreamSet()
        device = ClosableStream()
        await streams.add("device", device)
        await streams.add("adapter", _items(["tick"], delay=0.01))
        await device.queue.put("first")

        seen = []
        async for key, value in streams:
            seen.append((key, value))
            if key == "device":
                assert await streams.discard("device") is True
                await device.queue.put("late")
        return seen, device.closed, "device" in streams

    seen, closed, still_member = asyncio.run(scenario())

    assert seen == [("device", "first"), ("adapter", "tick")]
    assert closed is True
    assert still_member is False


def test_discard_unknown_key_returns_false():
    async def scenario():
        return await StreamSet().discard("missing")

    assert asyncio.run(scenario()) is False


def test_add_replaces_existing_member():
    async def scenario():
        streams: StreamSet = StreamSet()
        old = ClosableStream()
        await streams.add("device", old)
        await streams.add("device", _items(["new"]))
        return [pair async for pair in streams], old.closed, len(streams)

    pairs, old_closed, remaining = asyncio.run(scenario())

    assert pairs == [("device", "new")]
    assert old_closed is True
    assert remaining == 0


def test_member_errors_propagate_to_consumer():
    async def failing():
        yield 1
        raise RuntimeError("adapter gone")

    async def scenario():
        streams: StreamSet = StreamSet()
        await streams.add("adapter", failing())
        return [pair async for pair in streams]

    with pytest.raises(RuntimeError, match="adapter gone"):
        asyncio.run(scenario())
