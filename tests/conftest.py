from __future__ import annotations

import json
from collections import defaultdict, deque
from collections.abc import Callable
from typing import Any

import pytest

from lazarus.config import Settings
from lazarus.engine import EngineEvent
from lazarus.errors import TransportError
from lazarus.messages import OutboundBatch
from lazarus.store import InMemorySnapshotStore
from lazarus.worker import Worker


class FakeEngine:
    """Scripted engine: each step pops one entry (text, or a callable run against the engine)."""

    def __init__(self, script: list[Any] | None = None) -> None:
        self.script: deque[Any] = deque(script or [])
        self.fed: list[tuple[str, bool]] = []
        self.buffer: list[str] = []
        self.handlers: dict[EngineEvent, list[Callable[..., Any]]] = defaultdict(list)
        self.context: dict[str, Any] = {}
        self.imported: str | None = None
        self.import_result: bool | Exception = True
        self.interrupts = 0
        self.boots = 0
        self.banners = 0
        self.closed = False

    def step(self) -> bool:
        if not self.script:
            return False
        entry = self.script.popleft()
        if callable(entry):
            entry(self)
        elif entry:
            self.buffer.append(entry)
        return bool(self.script)

    def drain_output(self) -> str:
        text = "".join(self.buffer)
        self.buffer.clear()
        return text

    def feed_input(self, text: str, interactive: bool) -> None:
        self.fed.append((text, interactive))
        self.script.append(f"<{text}>")

    def interrupt(self) -> None:
        self.interrupts += 1

    def subscribe(self, event: EngineEvent, handler: Callable[..., Any]) -> Callable[[], None]:
        self.handlers[event].append(handler)
        return lambda: self.handlers[event].remove(handler)

    def emit(self, event: EngineEvent, **kwargs: Any) -> None:
        for handler in list(self.handlers[event]):
            handler(**kwargs)

    def export_state(self) -> str:
        return json.dumps({"fed": [text for text, _ in self.fed]})

    def import_state(self, blob: str) -> bool:
        if isinstance(self.import_result, Exception):
            raise self.import_result
        self.imported = blob
        return self.import_result

    def bootstrap_default(self) -> None:
        self.boots += 1

    def announce_startup(self) -> None:
        self.banners += 1
        self.buffer.append("banner\n")

    def set_context(self, context: dict[str, Any]) -> None:
        self.context = dict(context)

    def close(self) -> None:
        self.closed = True


class RecordingTransport:
    def __init__(self, *, fail: bool = False) -> None:
        self.batches: list[OutboundBatch] = []
        self.fail = fail

    async def send_batch(self, batch: OutboundBatch) -> None:
        if self.fail:
            raise TransportError("connection gone")
        self.batches.append(batch)


@pytest.fixture
def engines() -> list[FakeEngine]:
    return []


@pytest.fixture
def fake_engine_factory(engines: list[FakeEngine]) -> Callable[[], FakeEngine]:
    def _factory() -> FakeEngine:
        engine = FakeEngine()
        engines.append(engine)
        return engine

    return _factory


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(idle_delay_seconds=0.01, snapshot_dir=None, init_script=None, require_namespace=False)


@pytest.fixture
def worker(settings: Settings, store: InMemorySnapshotStore) -> Worker:
    return Worker(settings, store=store)


@pytest.fixture
def fake_worker(settings: Settings, store: InMemorySnapshotStore, fake_engine_factory: Callable[[], FakeEngine]) -> Worker:
    return Worker(settings, store=store, engine_factory=fake_engine_factory)


@pytest.fixture
def failing_transport() -> RecordingTransport:
    return RecordingTransport(fail=True)
