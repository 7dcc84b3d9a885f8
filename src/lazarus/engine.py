"""Evaluation engine contract consumed by the scheduler and session registry."""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable


class EngineEvent(StrEnum):
    """Notifications an engine may emit to its subscribers.

    Handler keyword arguments per event:
        OUTPUT: ``text``
        DEBUG: ``text``, ``level``
        INTERRUPTED: none
        WORK_READY: none
        SAVE_REQUESTED: ``enabled``
    """

    OUTPUT = "output"
    DEBUG = "debug"
    INTERRUPTED = "interrupted"
    WORK_READY = "work_ready"
    SAVE_REQUESTED = "save_requested"


EngineHandler = Callable[..., Any]
Unsubscribe = Callable[[], None]


@runtime_checkable
class Engine(Protocol):
    """Resumable interpreter driven one step at a time."""

    def step(self) -> bool:
        """Run one unit of pending work and report whether more work remains."""
        ...

    def drain_output(self) -> str:
        """Return and clear text produced since the last drain."""
        ...

    def feed_input(self, text: str, interactive: bool) -> None:
        """Queue source text for execution."""
        ...

    def interrupt(self) -> None:
        """Request an escape; completion is reported through ``INTERRUPTED``."""
        ...

    def subscribe(self, event: EngineEvent, handler: EngineHandler) -> Unsubscribe:
        """Register a handler and return a callable that removes it."""
        ...

    def export_state(self) -> str: ...

    def import_state(self, blob: str) -> bool: ...

    def bootstrap_default(self) -> None: ...

    def announce_startup(self) -> None: ...

    def set_context(self, context: dict[str, Any]) -> None:
        """Expose the current invocation's context to running code."""
        ...

    def close(self) -> None:
        """Release the engine; it is never used again afterwards."""
        ...


EngineFactory = Callable[[], Engine]
