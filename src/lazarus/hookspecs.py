"""Pluggy hook namespace and worker hook specifications."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pluggy

from lazarus.types import Envelope

if TYPE_CHECKING:
    from lazarus.config import Settings
    from lazarus.engine import EngineFactory
    from lazarus.store import SnapshotStore

LAZARUS_HOOK_NAMESPACE = "lazarus"
hookspec = pluggy.HookspecMarker(LAZARUS_HOOK_NAMESPACE)
hookimpl = pluggy.HookimplMarker(LAZARUS_HOOK_NAMESPACE)


class LazarusHookSpecs:
    """Hook contract for Lazarus extensions."""

    @hookspec(firstresult=True)
    def provide_store(self, settings: Settings) -> SnapshotStore | None:
        """Provide the durable snapshot store."""

    @hookspec(firstresult=True)
    def provide_engine_factory(self, settings: Settings) -> EngineFactory | None:
        """Provide a zero-argument callable building a fresh evaluation engine."""

    @hookspec
    def on_error(self, stage: str, error: Exception, message: Envelope | None) -> None:
        """Observe worker errors from any stage."""
