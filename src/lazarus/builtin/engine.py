"""Reference evaluation engine: a resumable Python REPL."""

from __future__ import annotations

import asyncio
import codeop
import itertools
import json
import platform
import traceback
from collections import deque
from collections.abc import Callable
from contextlib import redirect_stderr, redirect_stdout
from dataclasses import dataclass
from typing import Any, Literal

from blinker import Signal
from loguru import logger

from lazarus.engine import EngineEvent, EngineHandler, Unsubscribe
from lazarus.logging_utils import engine_log_level

DEFAULT_DEBUG_LEVEL = 2
STATE_SCHEMA = "replay/1"

ChunkMode = Literal["single", "exec"]


@dataclass(frozen=True)
class Chunk:
    """One complete unit of source, executed by a single step."""

    source: str
    mode: ChunkMode


class _Writer:
    """File-like sink that appends to the engine's pending output."""

    def __init__(self, sink: list[str] | None) -> None:
        self._sink = sink

    def write(self, text: str) -> int:
        if self._sink is not None and text:
            self._sink.append(text)
        return len(text)

    def flush(self) -> None:
        return None


class HostBridge:
    """Host services visible to running code as ``host``."""

    def __init__(self, engine: ReplEngine) -> None:
        self._engine = engine
        self.context: dict[str, Any] = {}

    def request_save(self, enabled: bool = True) -> None:
        """Ask for this invocation's state to be persisted once it settles."""
        if self._engine.replaying:
            return
        self._engine.emit(EngineEvent.SAVE_REQUESTED, enabled=bool(enabled))

    def debug(self, text: object, level: int = DEFAULT_DEBUG_LEVEL) -> None:
        if self._engine.replaying:
            return
        self._engine.debug_write(str(text), level)

    def later(self, delay: float, source: str) -> int | None:
        """Run ``source`` after ``delay`` seconds, from the host's event loop."""
        if self._engine.replaying:
            return None
        return self._engine.schedule_later(delay, source)


class ReplEngine:
    """Python REPL exposing the step/drain/interrupt/state engine contract.

    Interactive input is split into complete statements the way the standard
    interactive console does it; each statement runs in ``single`` mode so
    expression values are echoed. Non-interactive input runs as one ``exec``
    chunk. State is exported as the log of executed chunks and restored by
    replaying them with output discarded.

    The log is never compacted: every chunk executed since the last reset is
    stored in each snapshot and re-run on each resurrect, so snapshot size and
    resurrect time grow with the length of the session. Chunks with external
    side effects repeat them on replay.
    """

    def __init__(self) -> None:
        self._signals = {event: Signal(f"lazarus.engine.{event.value}") for event in EngineEvent}
        self._host = HostBridge(self)
        self._namespace: dict[str, Any] = {}
        self._history: list[Chunk] = []
        self._pending: deque[Chunk] = deque()
        self._partial: list[str] = []
        self._buffer: list[str] = []
        self._timers: dict[int, asyncio.TimerHandle] = {}
        self._timer_ids = itertools.count(1)
        self._unsubscribers: list[Unsubscribe] = []
        self._replaying = False
        self._closed = False
        self.bootstrap_default()

    @property
    def replaying(self) -> bool:
        return self._replaying

    @property
    def namespace(self) -> dict[str, Any]:
        return self._namespace

    @property
    def awaiting_input(self) -> bool:
        """True while an interactive statement is still incomplete."""
        return bool(self._partial)

    def subscribe(self, event: EngineEvent, handler: EngineHandler) -> Unsubscribe:
        signal = self._signals[event]

        def _receiver(sender: Any, **kwargs: Any) -> None:
            handler(**kwargs)

        signal.connect(_receiver, weak=False)

        def _unsubscribe() -> None:
            signal.disconnect(_receiver)
            if _unsubscribe in self._unsubscribers:
                self._unsubscribers.remove(_unsubscribe)

        self._unsubscribers.append(_unsubscribe)
        return _unsubscribe

    def emit(self, event: EngineEvent, **kwargs: Any) -> None:
        self._signals[event].send(self, **kwargs)

    def step(self) -> bool:
        if self._closed or not self._pending:
            return False
        chunk = self._pending.popleft()
        self._execute(chunk, sink=self._buffer)
        self._history.append(chunk)
        return bool(self._pending)

    def drain_output(self) -> str:
        text = "".join(self._buffer)
        self._buffer.clear()
        return text

    def feed_input(self, text: str, interactive: bool) -> None:
        if not interactive:
            if text.strip():
                self._pending.append(Chunk(text, "exec"))
            return

        for line in text.splitlines():
            self._partial.append(line)
            source = "\n".join(self._partial)
            try:
                compiled = codeop.compile_command(source, "<input>", "single")
            except (SyntaxError, OverflowError, ValueError):
                # Complete but invalid; the step reports the error.
                compiled = True
            if compiled is None:
                continue
            self._partial.clear()
            if source.strip():
                self._pending.append(Chunk(source, "single"))

    def interrupt(self) -> None:
        self._pending.clear()
        self._partial.clear()
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._call_soon(self._finish_interrupt)

    def export_state(self) -> str:
        chunks = [{"source": chunk.source, "mode": chunk.mode} for chunk in self._history]
        return json.dumps({"schema": STATE_SCHEMA, "chunks": chunks}, ensure_ascii=False)

    def import_state(self, blob: str) -> bool:
        chunks = _parse_state(blob)
        if chunks is None:
            return False

        self.bootstrap_default()
        self._replaying = True
        try:
            for chunk in chunks:
                self._execute(chunk, sink=None)
                self._history.append(chunk)
        finally:
            self._replaying = False
        logger.debug("engine.state_imported chunks={}", len(chunks))
        return True

    def bootstrap_default(self) -> None:
        self._namespace = {"__name__": "__console__", "__doc__": None, "host": self._host}
        self._history = []
        self._pending.clear()
        self._partial.clear()

    def announce_startup(self) -> None:
        self._buffer.append(f"Lazarus REPL (Python {platform.python_version()})\n")

    def set_context(self, context: dict[str, Any]) -> None:
        self._host.context = dict(context)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for unsubscribe in list(self._unsubscribers):
            unsubscribe()
        self._unsubscribers.clear()

    def debug_write(self, text: str, level: int) -> None:
        logger.log(engine_log_level(level), "engine.debug {}", text)
        self._flush_buffer()
        self.emit(EngineEvent.DEBUG, text=text, level=level)

    def schedule_later(self, delay: float, source: str) -> int:
        loop = asyncio.get_running_loop()
        token = next(self._timer_ids)
        self._timers[token] = loop.call_later(max(0.0, float(delay)), self._deliver_later, token, source)
        return token

    def _deliver_later(self, token: int, source: str) -> None:
        self._timers.pop(token, None)
        if self._closed:
            return
        self.feed_input(source, interactive=False)
        self.emit(EngineEvent.WORK_READY)

    def _finish_interrupt(self) -> None:
        if self._closed:
            return
        self._buffer.append("KeyboardInterrupt\n")
        self.emit(EngineEvent.INTERRUPTED)

    def _flush_buffer(self) -> None:
        # Keeps text written before a debug line ahead of it in the client's stream.
        text = self.drain_output()
        if text:
            self.emit(EngineEvent.OUTPUT, text=text)

    def _execute(self, chunk: Chunk, *, sink: list[str] | None) -> None:
        writer = _Writer(sink)
        with redirect_stdout(writer), redirect_stderr(writer):  # type: ignore[type-var]
            try:
                code = compile(chunk.source, "<input>", chunk.mode)
                exec(code, self._namespace)  # noqa: S102
            except SystemExit:
                writer.write("SystemExit ignored\n")
            except Exception as exc:
                writer.write("".join(traceback.format_exception_only(exc)))

    @staticmethod
    def _call_soon(callback: Callable[[], None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            callback()
            return
        loop.call_soon(callback)


def _parse_state(blob: str) -> list[Chunk] | None:
    try:
        data = json.loads(blob)
    except (TypeError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict) or data.get("schema") != STATE_SCHEMA:
        return None
    raw_chunks = data.get("chunks")
    if not isinstance(raw_chunks, list):
        return None

    chunks: list[Chunk] = []
    for raw in raw_chunks:
        if not isinstance(raw, dict):
            return None
        source = raw.get("source")
        mode = raw.get("mode")
        if not isinstance(source, str) or mode not in ("single", "exec"):
            return None
        chunks.append(Chunk(source, mode))
    return chunks
