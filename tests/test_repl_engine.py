from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from lazarus.builtin.engine import STATE_SCHEMA, ReplEngine
from lazarus.engine import Engine, EngineEvent


def _run_all(engine: ReplEngine) -> str:
    while engine.step():
        pass
    return engine.drain_output()


def _record(engine: ReplEngine, event: EngineEvent) -> list[dict[str, Any]]:
    seen: list[dict[str, Any]] = []
    engine.subscribe(event, lambda **kwargs: seen.append(kwargs))
    return seen


def test_satisfies_engine_protocol() -> None:
    assert isinstance(ReplEngine(), Engine)


def test_interactive_expression_echoes_value() -> None:
    engine = ReplEngine()
    engine.feed_input("1+1", interactive=True)

    assert _run_all(engine) == "2\n"


def test_each_statement_is_one_step() -> None:
    engine = ReplEngine()
    engine.feed_input("x = 20\nx + 1\nprint('hi')", interactive=True)

    assert engine.step() is True
    assert engine.step() is True
    assert engine.step() is False
    assert engine.drain_output() == "21\nhi\n"


def test_incomplete_block_waits_for_more_input() -> None:
    engine = ReplEngine()
    engine.feed_input("for i in range(2):\n    print(i)", interactive=True)

    assert engine.awaiting_input is True
    assert engine.step() is False

    engine.feed_input("", interactive=True)
    engine.feed_input("\n", interactive=True)

    assert engine.awaiting_input is False
    assert _run_all(engine) == "0\n1\n"


def test_errors_are_reported_as_output() -> None:
    engine = ReplEngine()
    engine.feed_input("1/0", interactive=True)
    engine.feed_input("def (", interactive=True)

    output = _run_all(engine)

    assert "ZeroDivisionError: division by zero" in output
    assert "SyntaxError" in output


def test_system_exit_does_not_escape() -> None:
    engine = ReplEngine()
    engine.feed_input("raise SystemExit(3)", interactive=True)

    assert _run_all(engine) == "SystemExit ignored\n"


def test_non_interactive_source_runs_as_one_chunk() -> None:
    engine = ReplEngine()
    engine.feed_input("a = 1\nb = 2\n", interactive=False)

    assert engine.step() is False
    assert engine.namespace["a"] + engine.namespace["b"] == 3
    assert engine.drain_output() == ""


def test_startup_banner_is_queued_output() -> None:
    engine = ReplEngine()
    engine.announce_startup()

    assert engine.drain_output().startswith("Lazarus REPL (Python ")


def test_host_debug_flushes_pending_output_first() -> None:
    engine = ReplEngine()
    outputs = _record(engine, EngineEvent.OUTPUT)
    debugs = _record(engine, EngineEvent.DEBUG)
    engine.feed_input("print('a'); host.debug('note', 3); print('b')", interactive=True)

    engine.step()

    assert outputs == [{"text": "a\n"}]
    assert debugs == [{"text": "note", "level": 3}]
    assert engine.drain_output() == "b\n"


def test_host_request_save_emits_event() -> None:
    engine = ReplEngine()
    saves = _record(engine, EngineEvent.SAVE_REQUESTED)
    engine.feed_input("host.request_save()", interactive=True)
    engine.feed_input("host.request_save(False)", interactive=True)

    _run_all(engine)

    assert saves == [{"enabled": True}, {"enabled": False}]


def test_host_context_is_visible_to_code() -> None:
    engine = ReplEngine()
    engine.set_context({"connectionId": "abc"})
    engine.feed_input("host.context['connectionId']", interactive=True)

    assert _run_all(engine) == "'abc'\n"


def test_interrupt_without_loop_is_immediate() -> None:
    engine = ReplEngine()
    interrupted = _record(engine, EngineEvent.INTERRUPTED)
    engine.feed_input("print('never')", interactive=True)

    engine.interrupt()

    assert interrupted == [{}]
    assert engine.step() is False
    assert engine.drain_output() == "KeyboardInterrupt\n"


@pytest.mark.asyncio
async def test_interrupt_surfaces_asynchronously() -> None:
    engine = ReplEngine()
    interrupted = _record(engine, EngineEvent.INTERRUPTED)

    engine.interrupt()
    assert interrupted == []
    await asyncio.sleep(0)

    assert interrupted == [{}]
    assert engine.drain_output() == "KeyboardInterrupt\n"


@pytest.mark.asyncio
async def test_later_delivers_work_and_notifies() -> None:
    engine = ReplEngine()
    ready = _record(engine, EngineEvent.WORK_READY)
    engine.feed_input("host.later(0.01, \"print('tick')\")", interactive=True)
    _run_all(engine)

    await asyncio.sleep(0.05)

    assert ready == [{}]
    assert _run_all(engine) == "tick\n"


@pytest.mark.asyncio
async def test_interrupt_cancels_pending_later() -> None:
    engine = ReplEngine()
    ready = _record(engine, EngineEvent.WORK_READY)
    engine.feed_input("host.later(0.01, 'x = 1')", interactive=True)
    _run_all(engine)

    engine.interrupt()
    await asyncio.sleep(0.05)

    assert ready == []
    assert "x" not in engine.namespace


def test_state_round_trip_restores_namespace_quietly() -> None:
    source = ReplEngine()
    saves = _record(source, EngineEvent.SAVE_REQUESTED)
    source.feed_input("x = 40\nprint('side effect')\nhost.request_save()", interactive=True)
    _run_all(source)
    blob = source.export_state()

    restored = ReplEngine()
    restored_saves = _record(restored, EngineEvent.SAVE_REQUESTED)
    assert restored.import_state(blob) is True
    restored.feed_input("x + 2", interactive=True)

    assert json.loads(blob)["schema"] == STATE_SCHEMA
    assert saves == [{"enabled": True}]
    assert restored_saves == []
    assert _run_all(restored) == "42\n"


@pytest.mark.parametrize(
    "blob",
    [
        "not json",
        json.dumps({"schema": "other", "chunks": []}),
        json.dumps({"schema": STATE_SCHEMA, "chunks": "x"}),
        json.dumps({"schema": STATE_SCHEMA, "chunks": [{"source": "x", "mode": "eval"}]}),
    ],
)
def test_import_rejects_foreign_state(blob: str) -> None:
    engine = ReplEngine()
    engine.namespace["keep"] = True

    assert engine.import_state(blob) is False
    assert engine.namespace["keep"] is True


def test_bootstrap_default_clears_namespace() -> None:
    engine = ReplEngine()
    engine.feed_input("y = 1", interactive=True)
    _run_all(engine)

    engine.bootstrap_default()

    assert "y" not in engine.namespace
    assert json.loads(engine.export_state())["chunks"] == []


def test_closed_engine_does_nothing() -> None:
    engine = ReplEngine()
    engine.feed_input("1", interactive=True)
    engine.close()

    assert engine.step() is False
