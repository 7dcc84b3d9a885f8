"""Builtin CLI commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from lazarus.bus import MessageBus
from lazarus.config import get_settings
from lazarus.errors import ResponseCode
from lazarus.messages import OutputKind
from lazarus.transport import BusTransport
from lazarus.worker import InvocationResult, Worker

console = Console()
err_console = Console(stderr=True)

SAVE_COMMAND = ":save"
INTERRUPT_COMMAND = ":interrupt"
COLD_COMMAND = ":cold"
QUIT_COMMANDS = {":quit", ":q"}


def _load_worker(state_dir: Path | None) -> Worker:
    overrides: dict[str, Any] = {}
    if state_dir is not None:
        overrides["snapshot_dir"] = state_dir
    return Worker(get_settings(**overrides))


def send(
    message: str = typer.Argument(..., help="Inbound message as JSON"),
    state_dir: Path | None = typer.Option(None, "--state-dir", "-s", help="Snapshot directory"),  # noqa: B008
    connection_id: str = typer.Option("cli", "--connection-id", help="Connection id reported to the engine"),
) -> None:
    """Run one inbound message through a fresh worker and print its batch."""

    worker = _load_worker(state_dir)
    bus = MessageBus()
    result = asyncio.run(worker.handle(message, BusTransport(bus), connection_id=connection_id))
    for batch in bus.drain_batches():
        console.print_json(data=batch)
    if result.code is not ResponseCode.OK:
        err_console.print(f"[red]status {int(result.code)}[/red]")
        raise typer.Exit(1)


def session(
    worker_id: str = typer.Argument(..., help="Worker id to resume or create"),
    state_dir: Path | None = typer.Option(None, "--state-dir", "-s", help="Snapshot directory"),  # noqa: B008
    reset: bool = typer.Option(False, "--reset", help="Start from a fresh engine"),
    counter: int = typer.Option(1, "--counter", help="Counter of the first message"),
) -> None:
    """Drive an interactive session; every line is one invocation.

    Lines starting with ':' are local commands: ':save' persists after the next
    line, ':interrupt' sends an interrupt, ':cold' drops the in-memory session so
    the next line resurrects from storage, ':quit' leaves.
    """

    worker = _load_worker(state_dir)
    asyncio.run(_session_loop(worker, worker_id, counter=counter, reset=reset))


def snapshot(
    worker_id: str = typer.Argument(..., help="Worker id"),
    state_dir: Path | None = typer.Option(None, "--state-dir", "-s", help="Snapshot directory"),  # noqa: B008
) -> None:
    """Show the stored snapshot for a worker."""

    worker = _load_worker(state_dir)
    blob = asyncio.run(worker.store.get(worker.policy.key_for(worker_id)))
    envelope = worker.policy.parse(blob, worker_id)
    if envelope is None:
        err_console.print(f"no usable snapshot for {worker_id}")
        raise typer.Exit(1)
    console.print_json(envelope.model_dump_json(by_alias=True))


def list_hooks() -> None:
    """Show hook implementation mapping."""

    worker = _load_worker(None)
    report = worker.hook_report()
    if not report:
        typer.echo("(no hook implementations)")
        return
    for hook_name, adapter_names in report.items():
        typer.echo(f"{hook_name}: {', '.join(adapter_names)}")


async def _session_loop(worker: Worker, worker_id: str, *, counter: int, reset: bool) -> None:
    bus = MessageBus()
    transport = BusTransport(bus)
    first = {"workerID": worker_id, "counter": counter, "op": "spawn", "payload": {"reset": reset}}
    _render(await worker.handle(first, transport, connection_id="cli"))
    bus.drain_batches()

    save_next = False
    while True:
        try:
            line = await asyncio.to_thread(input, ">>> ")
        except EOFError:
            break
        command = line.strip()
        if command in QUIT_COMMANDS:
            break
        if command == SAVE_COMMAND:
            save_next = True
            continue
        if command == COLD_COMMAND:
            worker.registry.discard()
            console.print("[dim](in-memory session dropped)[/dim]")
            continue

        payload: dict[str, Any] = {"save": save_next}
        if command == INTERRUPT_COMMAND:
            payload["interrupt"] = True
        else:
            payload["text"] = line
        counter += 1
        save_next = False
        message = {"workerID": worker_id, "counter": counter, "op": "continue", "payload": payload}
        _render(await worker.handle(json.dumps(message), transport, connection_id="cli"))
        bus.drain_batches()


def _render(result: InvocationResult) -> None:
    if result.batch is None:
        err_console.print(f"[red]status {int(result.code)}[/red]")
        return
    for item in result.batch.items:
        if item.kind is OutputKind.TEXT:
            console.print(item.text or "", end="", markup=False, highlight=False)
        elif item.kind is OutputKind.DEBUG:
            console.print(f"[yellow]debug[{item.level}][/yellow] {item.text}", highlight=False)
        else:
            console.print(f"[dim]<{(item.data or {}).get('id')}>[/dim]")
    if result.saved:
        console.print("[dim](saved)[/dim]")
