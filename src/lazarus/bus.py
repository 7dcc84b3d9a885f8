"""In-process message bus feeding raw messages to a worker and collecting its batches."""

from __future__ import annotations

import asyncio
from typing import Protocol, TypeVar

from lazarus.types import Envelope, WireObject


class BusProtocol(Protocol):
    """Async contract for bus providers."""

    async def submit(self, message: Envelope) -> None: ...

    async def next_inbound(self, timeout_seconds: float | None = None) -> Envelope | None: ...

    async def publish_batch(self, batch: WireObject) -> None: ...

    async def next_batch(self, timeout_seconds: float | None = None) -> WireObject | None: ...


class MessageBus:
    """Two FIFO queues: raw inbound messages and wire-shaped outbound batches."""

    def __init__(self) -> None:
        self._inbound: asyncio.Queue[Envelope] = asyncio.Queue()
        self._batches: asyncio.Queue[WireObject] = asyncio.Queue()

    async def submit(self, message: Envelope) -> None:
        await self._inbound.put(message)

    async def next_inbound(self, timeout_seconds: float | None = None) -> Envelope | None:
        return await _take(self._inbound, timeout_seconds)

    async def publish_batch(self, batch: WireObject) -> None:
        await self._batches.put(batch)

    async def next_batch(self, timeout_seconds: float | None = None) -> WireObject | None:
        return await _take(self._batches, timeout_seconds)

    def drain_batches(self) -> list[WireObject]:
        """Return every batch published so far without waiting."""
        drained: list[WireObject] = []
        while not self._batches.empty():
            drained.append(self._batches.get_nowait())
        return drained


T = TypeVar("T")


async def _take(queue: asyncio.Queue[T], timeout_seconds: float | None) -> T | None:
    if timeout_seconds is None:
        return await queue.get()
    try:
        return await asyncio.wait_for(queue.get(), timeout=timeout_seconds)
    except TimeoutError:
        return None
