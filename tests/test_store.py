from __future__ import annotations

from pathlib import Path

import pytest

from lazarus.errors import SnapshotLoadError, SnapshotSaveError
from lazarus.store import FileSnapshotStore, InMemorySnapshotStore, SnapshotStore


@pytest.mark.asyncio
async def test_in_memory_store_round_trip() -> None:
    store = InMemorySnapshotStore()

    assert await store.get("k") is None
    await store.put("k", b"one")
    await store.put("k", b"two")

    assert await store.get("k") == b"two"
    assert store.keys() == ["k"]
    assert isinstance(store, SnapshotStore)


@pytest.mark.asyncio
async def test_file_store_replaces_value_atomically(tmp_path: Path) -> None:
    store = FileSnapshotStore(tmp_path / "snaps")

    assert await store.get("session-W1.state") is None
    await store.put("session-W1.state", b"one")
    await store.put("session-W1.state", b"two")

    assert await store.get("session-W1.state") == b"two"
    assert store.keys() == ["session-W1.state"]
    assert not list((tmp_path / "snaps").glob("*.tmp"))


@pytest.mark.asyncio
async def test_file_store_quotes_keys(tmp_path: Path) -> None:
    store = FileSnapshotStore(tmp_path)

    await store.put("a/b c", b"x")

    assert store.path_for("a/b c").parent == tmp_path.resolve()
    assert store.keys() == ["a/b c"]


def test_file_store_keys_without_root(tmp_path: Path) -> None:
    assert FileSnapshotStore(tmp_path / "missing").keys() == []


@pytest.mark.asyncio
async def test_file_store_wraps_read_errors(tmp_path: Path) -> None:
    store = FileSnapshotStore(tmp_path)
    store.path_for("k").mkdir(parents=True)

    with pytest.raises(SnapshotLoadError):
        await store.get("k")


@pytest.mark.asyncio
async def test_file_store_wraps_write_errors(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = FileSnapshotStore(blocker / "snaps")

    with pytest.raises(SnapshotSaveError):
        await store.put("k", b"x")
