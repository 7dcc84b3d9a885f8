"""Ordered response batching and the send-then-save finalization sequence."""

from __future__ import annotations

from loguru import logger

from lazarus.errors import BatchAlreadySentError, ResponseCode, TransportError
from lazarus.messages import InboundMessage, OutboundBatch, OutputEvent
from lazarus.session import Session
from lazarus.snapshot import SnapshotPolicy
from lazarus.store import SnapshotStore
from lazarus.transport import Transport


class ResponseAggregator:
    """Collect one invocation's output and emit it as a single batch."""

    def __init__(self, session: Session, message: InboundMessage, transport: Transport) -> None:
        self._session = session
        self._message = message
        self._transport = transport
        self._sent = False
        self._saved = False
        self._batch: OutboundBatch | None = None

    @property
    def sent(self) -> bool:
        return self._sent

    @property
    def saved(self) -> bool:
        return self._saved

    @property
    def batch(self) -> OutboundBatch | None:
        """The batch handed to the transport, once finalized."""
        return self._batch

    def append(self, event: OutputEvent) -> None:
        if self._sent:
            logger.warning("aggregator.late_output worker={} kind={}", self._session.worker_id, event.kind)
            return
        self._session.outbox.append(event)

    def build_batch(self) -> OutboundBatch:
        return OutboundBatch(
            worker_id=self._session.worker_id,
            counter=self._session.counter,
            items=tuple(self._session.outbox),
            client_id=self._message.client_id,
            server_id=self._message.server_id,
        )

    async def finalize(self, policy: SnapshotPolicy, store: SnapshotStore) -> ResponseCode:
        """Send the batch, then persist if asked, then report the invocation's outcome.

        The save is attempted only after the transport accepted the batch; a failed
        save is logged and does not change the outcome because the client already
        has its response.
        """

        if self._sent:
            raise BatchAlreadySentError(f"batch already sent for counter {self._session.counter}")
        batch = self._batch = self.build_batch()
        self._sent = True
        try:
            await self._transport.send_batch(batch)
        except TransportError:
            logger.opt(exception=True).error(
                "aggregator.send_failed worker={} items={}", batch.worker_id, len(batch.items)
            )
            return ResponseCode.BAD_GATEWAY
        finally:
            self._session.outbox = []
        logger.info("aggregator.sent worker={} counter={} items={}", batch.worker_id, batch.counter, len(batch.items))

        if policy.should_save(self._session):
            await self._save(policy, store)
        return ResponseCode.OK

    async def _save(self, policy: SnapshotPolicy, store: SnapshotStore) -> None:
        key = policy.key_for(self._session.worker_id)
        try:
            blob = policy.build(self._session).to_blob()
        except Exception:
            # Engine export is opaque; a failure here must not fail an answered invocation.
            logger.opt(exception=True).error("snapshot.export_failed worker={}", self._session.worker_id)
            return
        try:
            await store.put(key, blob)
        except Exception:
            # Stores come from plugins and may raise their own error types.
            logger.opt(exception=True).error("snapshot.save_failed worker={} key={}", self._session.worker_id, key)
            return
        self._saved = True
        logger.info("snapshot.saved worker={} key={} bytes={}", self._session.worker_id, key, len(blob))
