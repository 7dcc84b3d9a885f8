"""Snapshot envelope format and persistence policy."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from lazarus.config import DEFAULT_SNAPSHOT_KEY_TEMPLATE
from lazarus.types import Options

if TYPE_CHECKING:
    from lazarus.session import Session

FORMAT_VERSION = 1


class SnapshotEnvelope(BaseModel):
    """Durable, versioned serialization of one worker's session."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    worker_id: str = Field(alias="workerID", min_length=1)
    state: str
    options: Options | None = None
    format_version: StrictInt = Field(alias="formatVersion")

    def to_blob(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


class SnapshotPolicy:
    """Decide when to persist and build/parse envelopes.

    Envelopes are accepted only when their format version lies inside
    ``[min_version, FORMAT_VERSION]`` and they name the worker being restored;
    anything else is treated as absent.
    """

    def __init__(
        self,
        *,
        key_template: str = DEFAULT_SNAPSHOT_KEY_TEMPLATE,
        min_version: int = 1,
        format_version: int = FORMAT_VERSION,
    ) -> None:
        self._key_template = key_template
        self._min_version = min_version
        self._format_version = format_version

    @property
    def supported_versions(self) -> range:
        return range(self._min_version, self._format_version + 1)

    def key_for(self, worker_id: str) -> str:
        return self._key_template.format(worker_id=worker_id)

    @staticmethod
    def should_save(session: Session) -> bool:
        return session.save_requested

    def build(self, session: Session) -> SnapshotEnvelope:
        """Serialize the session; call only once the scheduler reached quiescence."""
        return SnapshotEnvelope(
            worker_id=session.worker_id,
            state=session.engine.export_state(),
            options=session.options,
            format_version=self._format_version,
        )

    def parse(self, blob: bytes | str | None, worker_id: str) -> SnapshotEnvelope | None:
        if blob is None:
            return None
        try:
            envelope = SnapshotEnvelope.model_validate_json(blob)
        except ValidationError as exc:
            logger.warning("snapshot.unparseable worker={} errors={}", worker_id, exc.error_count())
            return None
        if envelope.format_version not in self.supported_versions:
            logger.warning(
                "snapshot.version_rejected worker={} version={} supported={}-{}",
                worker_id,
                envelope.format_version,
                self._min_version,
                self._format_version,
            )
            return None
        if envelope.worker_id != worker_id:
            logger.warning("snapshot.worker_mismatch expected={} found={}", worker_id, envelope.worker_id)
            return None
        return envelope
