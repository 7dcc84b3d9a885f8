"""Batch delivery back to the client."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol

from lazarus.bus import BusProtocol
from lazarus.errors import TransportError
from lazarus.messages import OutboundBatch

PostToConnection = Callable[[str, str], Awaitable[object]]


class Transport(Protocol):
    """Deliver one response batch; raise TransportError when delivery fails."""

    async def send_batch(self, batch: OutboundBatch) -> None: ...


class BusTransport:
    """Publish batches as outbound envelopes on a message bus."""

    def __init__(self, bus: BusProtocol) -> None:
        self._bus = bus

    async def send_batch(self, batch: OutboundBatch) -> None:
        await self._bus.publish_batch(batch.to_wire())


class ConnectionTransport:
    """Post batches to one gateway connection through a host-supplied coroutine."""

    def __init__(self, post: PostToConnection, connection_id: str) -> None:
        self._post = post
        self._connection_id = connection_id

    async def send_batch(self, batch: OutboundBatch) -> None:
        try:
            await self._post(self._connection_id, batch.to_json())
        except Exception as exc:
            # Gateway clients raise their own error types; normalize at this boundary.
            raise TransportError(f"post to connection {self._connection_id} failed: {exc!s}") from exc
