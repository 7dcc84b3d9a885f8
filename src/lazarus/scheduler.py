"""Cooperative run-to-quiescence loop for one invocation."""

from __future__ import annotations

import asyncio
import time
from enum import StrEnum
from typing import TYPE_CHECKING

from loguru import logger

from lazarus.engine import EngineEvent
from lazarus.messages import OutputEvent
from lazarus.session import Session

if TYPE_CHECKING:
    from lazarus.aggregator import ResponseAggregator

DEFAULT_IDLE_DELAY_SECONDS = 0.01


class SchedulerState(StrEnum):
    RUNNING = "running"
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"
    FINALIZING = "finalizing"


class ExecutionScheduler:
    """Drive the session's engine until it has nothing left to do.

    Every tick drains output, runs one engine step, and hands queued input to the
    engine once it runs dry. Between ticks control goes back to the event loop so
    host I/O started by the engine can complete. Idleness is only accepted after
    ``idle_delay`` passes with no wake-up: interrupts and background work surface
    asynchronously and pull the loop back into ``RUNNING``.

    Engine event handlers never drive the loop themselves. They append to the
    aggregator and set the wake-up event; the loop does the rest.
    """

    def __init__(
        self,
        session: Session,
        aggregator: ResponseAggregator,
        *,
        idle_delay: float = DEFAULT_IDLE_DELAY_SECONDS,
        run_timeout: float | None = None,
    ) -> None:
        self._session = session
        self._aggregator = aggregator
        self._idle_delay = idle_delay
        self._run_timeout = run_timeout
        self._state = SchedulerState.IDLE
        self._wakeup = asyncio.Event()
        self._in_tick = False
        self._timed_out = False
        self._ticks = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def ticks(self) -> int:
        return self._ticks

    def interrupt(self) -> None:
        """Forward an escape to the engine; the loop keeps going until it settles."""
        logger.info("scheduler.interrupt worker={}", self._session.worker_id)
        self._session.engine.interrupt()

    async def run(self) -> None:
        engine = self._session.engine
        unsubscribers = [
            engine.subscribe(EngineEvent.OUTPUT, self._on_output),
            engine.subscribe(EngineEvent.DEBUG, self._on_debug),
            engine.subscribe(EngineEvent.INTERRUPTED, self._on_wake),
            engine.subscribe(EngineEvent.WORK_READY, self._on_wake),
            engine.subscribe(EngineEvent.SAVE_REQUESTED, self._on_save_requested),
        ]
        started = time.monotonic()
        self._state = SchedulerState.RUNNING
        try:
            while True:
                await asyncio.sleep(0)
                self._wakeup.clear()
                self._check_deadline(started)
                if self._tick():
                    continue
                self._state = SchedulerState.IDLE
                if await self._confirm_idle():
                    break
                self._state = SchedulerState.RUNNING
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()
        self._state = SchedulerState.FINALIZING
        logger.debug(
            "scheduler.quiescent worker={} ticks={} elapsed_ms={}",
            self._session.worker_id,
            self._ticks,
            int((time.monotonic() - started) * 1000),
        )

    def _tick(self) -> bool:
        self._ticks += 1
        engine = self._session.engine
        self._in_tick = True
        try:
            self._collect_output()
            has_more = engine.step()
            self._collect_output()
            if has_more:
                return True
            queued = self._session.take_typeahead()
            if not queued:
                return False
            self._state = SchedulerState.AWAITING_INPUT
            for item in queued:
                engine.feed_input(item.text, item.interactive)
            self._state = SchedulerState.RUNNING
            return True
        finally:
            self._in_tick = False

    async def _confirm_idle(self) -> bool:
        if self._wakeup.is_set():
            return False
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=self._idle_delay)
        except TimeoutError:
            return True
        return False

    def _check_deadline(self, started: float) -> None:
        if self._run_timeout is None or self._timed_out:
            return
        if time.monotonic() - started < self._run_timeout:
            return
        self._timed_out = True
        logger.warning("scheduler.run_timeout worker={} seconds={}", self._session.worker_id, self._run_timeout)
        self._session.engine.interrupt()

    def _collect_output(self) -> None:
        text = self._session.engine.drain_output()
        if text:
            self._aggregator.append(OutputEvent.text_out(text))

    def _on_output(self, *, text: str) -> None:
        self._aggregator.append(OutputEvent.text_out(text))
        if not self._in_tick:
            self._wakeup.set()

    def _on_debug(self, *, text: str, level: int | None = None) -> None:
        self._aggregator.append(OutputEvent.debug(text, level))
        if not self._in_tick:
            self._wakeup.set()

    def _on_wake(self) -> None:
        # A wake raised during step() is already reflected in that tick's result.
        if not self._in_tick:
            self._wakeup.set()

    def _on_save_requested(self, *, enabled: bool = True) -> None:
        self._session.save_requested = enabled
