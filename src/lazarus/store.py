"""Durable snapshot stores keyed by worker."""

from __future__ import annotations

import asyncio
import contextlib
import os
import threading
import uuid
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote, unquote

from lazarus.errors import SnapshotLoadError, SnapshotSaveError

SNAPSHOT_FILE_SUFFIX = ".snapshot"


@runtime_checkable
class SnapshotStore(Protocol):
    """Minimal async contract for snapshot storage providers."""

    async def get(self, key: str) -> bytes | None:
        """Return the stored blob, None when the key is absent.

        Raises:
            SnapshotLoadError: the store could not be read
        """
        ...

    async def put(self, key: str, blob: bytes) -> None:
        """Store a blob, replacing any previous value.

        Raises:
            SnapshotSaveError: the blob could not be written
        """
        ...


class InMemorySnapshotStore:
    """Process-local store; snapshots vanish with the process."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def get(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    async def put(self, key: str, blob: bytes) -> None:
        self._blobs[key] = bytes(blob)

    def keys(self) -> list[str]:
        return sorted(self._blobs)


class FileSnapshotStore:
    """One file per key under a root directory, replaced atomically on write."""

    def __init__(self, root: Path) -> None:
        self._root = root.expanduser().resolve()
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    async def get(self, key: str) -> bytes | None:
        return await asyncio.to_thread(self._read, key)

    async def put(self, key: str, blob: bytes) -> None:
        await asyncio.to_thread(self._write, key, blob)

    def keys(self) -> list[str]:
        if not self._root.exists():
            return []
        keys = [unquote(path.name.removesuffix(SNAPSHOT_FILE_SUFFIX)) for path in self._root.glob(f"*{SNAPSHOT_FILE_SUFFIX}")]
        return sorted(keys)

    def path_for(self, key: str) -> Path:
        return self._root / f"{quote(key, safe='')}{SNAPSHOT_FILE_SUFFIX}"

    def _read(self, key: str) -> bytes | None:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise SnapshotLoadError(f"cannot read snapshot {key!r}: {exc}") from exc

    def _write(self, key: str, blob: bytes) -> None:
        path = self.path_for(key)
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        with self._lock:
            try:
                self._root.mkdir(parents=True, exist_ok=True)
                tmp_path.write_bytes(blob)
                os.replace(tmp_path, path)
            except OSError as exc:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
                raise SnapshotSaveError(f"cannot write snapshot {key!r}: {exc}") from exc
