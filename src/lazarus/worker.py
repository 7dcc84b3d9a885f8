"""Per-invocation orchestration: sequence, run, batch, persist."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, assert_never

import pluggy
from loguru import logger

from lazarus.aggregator import ResponseAggregator
from lazarus.bus import BusProtocol
from lazarus.config import Settings, get_settings
from lazarus.engine import EngineFactory
from lazarus.errors import ConfigurationError, RequestError, ResponseCode
from lazarus.hook_runtime import HookRuntime
from lazarus.hookspecs import LAZARUS_HOOK_NAMESPACE, LazarusHookSpecs
from lazarus.logging_utils import invocation_scope
from lazarus.messages import InboundMessage, OutboundBatch, OutputEvent, WorkerOp, parse_inbound
from lazarus.scheduler import ExecutionScheduler
from lazarus.sequencer import Decision, decide
from lazarus.session import Session, SessionRegistry
from lazarus.snapshot import SnapshotPolicy
from lazarus.store import SnapshotStore
from lazarus.transport import BusTransport, Transport

PLUGIN_ENTRY_POINT_GROUP = "lazarus"


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of one inbound message."""

    code: ResponseCode
    decision: Decision | None = None
    batch: OutboundBatch | None = None
    saved: bool = False


class Worker:
    """Serve one worker identity at a time from a possibly short-lived process.

    Each ``handle`` call is one invocation: the message is validated, the sequencer
    picks continue/resurrect/reset, the scheduler runs the engine to quiescence, and
    the aggregator sends exactly one batch before any snapshot is written.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: SnapshotStore | None = None,
        engine_factory: EngineFactory | None = None,
        load_plugins: bool = True,
    ) -> None:
        self.settings = settings or get_settings()
        self._plugin_manager = pluggy.PluginManager(LAZARUS_HOOK_NAMESPACE)
        self._plugin_manager.add_hookspecs(LazarusHookSpecs)
        self._hook_runtime = HookRuntime(self._plugin_manager)
        if load_plugins:
            self.load_plugins()

        self.store = store or self._provide("provide_store")
        self.policy = SnapshotPolicy(
            key_template=self.settings.snapshot_key_template,
            min_version=self.settings.min_format_version,
        )
        self.registry = SessionRegistry(
            engine_factory or self._provide("provide_engine_factory"),
            self.policy,
            init_script=self.settings.read_init_script(),
        )

    def load_plugins(self) -> None:
        """Register the builtin plugin, then any installed through entry points."""

        from lazarus.builtin.plugin import plugin as builtin_plugin

        if not self._plugin_manager.is_registered(builtin_plugin):
            self._plugin_manager.register(builtin_plugin, name="builtin")
        try:
            self._plugin_manager.load_setuptools_entrypoints(PLUGIN_ENTRY_POINT_GROUP)
        except Exception:
            logger.opt(exception=True).warning("plugin.load_failed group={}", PLUGIN_ENTRY_POINT_GROUP)

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        self._plugin_manager.register(plugin, name=name)

    def hook_report(self) -> dict[str, list[str]]:
        return self._hook_runtime.hook_report()

    async def handle(
        self,
        raw: str | bytes | Mapping[str, Any],
        transport: Transport,
        *,
        connection_id: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> InvocationResult:
        """Run one inbound message through the worker and return its outcome."""

        try:
            message = parse_inbound(
                raw,
                namespace=self.settings.namespace,
                require_namespace=self.settings.require_namespace,
            )
        except RequestError as exc:
            logger.warning("worker.rejected code={} reason={}", int(exc.code), exc)
            await self._hook_runtime.report_error(stage="parse", error=exc, message=_raw_envelope(raw))
            return InvocationResult(code=exc.code)

        with invocation_scope(message.worker_id, message.counter):
            try:
                return await self._invoke(message, transport, connection_id=connection_id, context=context)
            except Exception as exc:
                await self._hook_runtime.report_error(stage="invocation", error=exc, message=message)
                raise

    async def handle_bus_once(self, bus: BusProtocol, *, timeout_seconds: float | None = None) -> InvocationResult | None:
        """Consume one inbound message from the bus and publish its batch back on it."""

        inbound = await bus.next_inbound(timeout_seconds=timeout_seconds)
        if inbound is None:
            return None
        return await self.handle(inbound, BusTransport(bus))

    async def _invoke(
        self,
        message: InboundMessage,
        transport: Transport,
        *,
        connection_id: str | None,
        context: Mapping[str, Any] | None,
    ) -> InvocationResult:
        decision = decide(message, self.registry.current)
        logger.info("worker.decision op={} decision={}", message.op, decision)
        session = await self._acquire(decision, message)

        aggregator = ResponseAggregator(session, message, transport)
        scheduler = ExecutionScheduler(
            session,
            aggregator,
            idle_delay=self.settings.idle_delay_seconds,
            run_timeout=self.settings.run_timeout_seconds,
        )
        self._apply(message, session, aggregator, scheduler, connection_id=connection_id, context=context)
        await scheduler.run()
        code = await aggregator.finalize(self.policy, self.store)
        return InvocationResult(code=code, decision=decision, batch=aggregator.batch, saved=aggregator.saved)

    async def _acquire(self, decision: Decision, message: InboundMessage) -> Session:
        match decision:
            case Decision.CONTINUE:
                return self.registry.continue_(message.counter)
            case Decision.RESET:
                return self.registry.reset(message.worker_id, message.counter, message.payload.options)
            case Decision.RESURRECT:
                self.registry.discard()
                blob = await self._load_snapshot(message)
                return self.registry.resurrect(message.worker_id, message.counter, blob)
            case _:
                assert_never(decision)

    async def _load_snapshot(self, message: InboundMessage) -> bytes | None:
        key = self.policy.key_for(message.worker_id)
        try:
            blob = await self.store.get(key)
        except Exception as exc:
            # Stores come from plugins and may raise their own error types.
            logger.warning("snapshot.load_failed key={} type={} error={}", key, type(exc).__name__, exc)
            await self._hook_runtime.report_error(stage="snapshot.load", error=exc, message=message)
            return None
        if blob is None:
            logger.info("snapshot.absent key={}", key)
        return blob

    @staticmethod
    def _apply(
        message: InboundMessage,
        session: Session,
        aggregator: ResponseAggregator,
        scheduler: ExecutionScheduler,
        *,
        connection_id: str | None,
        context: Mapping[str, Any] | None,
    ) -> None:
        payload = message.payload
        if message.op is WorkerOp.SPAWN:
            session.options = payload.options
            aggregator.append(OutputEvent.control("started", connectionId=connection_id))
        session.engine.set_context(
            {
                "workerID": message.worker_id,
                "counter": message.counter,
                "connectionId": connection_id,
                "options": session.options,
                **(context or {}),
            }
        )
        if payload.save:
            session.save_requested = True
        if payload.interrupt:
            scheduler.interrupt()
        if payload.text is not None:
            session.queue_input(payload.text, interactive=True)

    def _provide(self, hook_name: str) -> Any:
        provided = self._hook_runtime.provide(hook_name, settings=self.settings)
        if provided is None:
            raise ConfigurationError(f"no plugin implements {hook_name}")
        return provided


def _raw_envelope(raw: str | bytes | Mapping[str, Any]) -> Any:
    if isinstance(raw, Mapping):
        return dict(raw)
    return None
