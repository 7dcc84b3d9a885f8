"""Builtin hook implementations."""

from __future__ import annotations

from loguru import logger

from lazarus.builtin.engine import ReplEngine
from lazarus.config import Settings
from lazarus.engine import EngineFactory
from lazarus.hookspecs import hookimpl
from lazarus.store import FileSnapshotStore, InMemorySnapshotStore, SnapshotStore
from lazarus.types import Envelope


class BuiltinPlugin:
    @hookimpl
    def provide_store(self, settings: Settings) -> SnapshotStore:
        if settings.snapshot_dir is None:
            return InMemorySnapshotStore()
        return FileSnapshotStore(settings.snapshot_dir)

    @hookimpl
    def provide_engine_factory(self, settings: Settings) -> EngineFactory:
        _ = settings
        return ReplEngine

    @hookimpl
    def on_error(self, stage: str, error: Exception, message: Envelope | None) -> None:
        _ = message
        logger.warning("worker.error stage={} type={} error={}", stage, type(error).__name__, error)


plugin = BuiltinPlugin()
