"""Single live session and its lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from lazarus.engine import Engine, EngineFactory
from lazarus.messages import OutputEvent
from lazarus.snapshot import SnapshotPolicy
from lazarus.types import Options


@dataclass(frozen=True)
class QueuedInput:
    """Input accepted for this invocation but not yet handed to the engine."""

    text: str
    interactive: bool


@dataclass
class Session:
    """Runtime state for the one worker this process currently serves."""

    worker_id: str
    counter: int
    engine: Engine
    options: Options | None = None
    outbox: list[OutputEvent] = field(default_factory=list)
    save_requested: bool = False
    typeahead: list[QueuedInput] = field(default_factory=list)

    def begin_invocation(self) -> None:
        """Clear everything scoped to a single invocation."""
        self.outbox = []
        self.save_requested = False
        self.typeahead = []

    def queue_input(self, text: str, *, interactive: bool) -> None:
        self.typeahead.append(QueuedInput(text, interactive))

    def take_typeahead(self) -> list[QueuedInput]:
        queued, self.typeahead = self.typeahead, []
        return queued


class SessionRegistry:
    """Own the single in-process session; replacing it closes the old engine."""

    def __init__(
        self,
        engine_factory: EngineFactory,
        policy: SnapshotPolicy,
        *,
        init_script: str | None = None,
    ) -> None:
        self._engine_factory = engine_factory
        self._policy = policy
        self._init_script = init_script
        self._session: Session | None = None

    @property
    def current(self) -> Session | None:
        return self._session

    def continue_(self, counter: int) -> Session:
        session = self._session
        if session is None:
            raise LookupError("no live session to continue")
        session.counter = counter
        session.begin_invocation()
        logger.info("session.continue worker={} counter={}", session.worker_id, counter)
        return session

    def resurrect(self, worker_id: str, counter: int, blob: bytes | None) -> Session:
        """Restore a session from a stored blob, or start fresh when that is not possible."""

        envelope = self._policy.parse(blob, worker_id)
        if envelope is None:
            logger.info("session.resurrect_cold worker={} counter={}", worker_id, counter)
            return self.reset(worker_id, counter, None)

        engine = self._engine_factory()
        try:
            restored = engine.import_state(envelope.state)
        except Exception:
            # Engine state is opaque to us; any failure counts as "no snapshot".
            logger.opt(exception=True).warning("session.import_failed worker={}", worker_id)
            restored = False
        if not restored:
            engine.close()
            return self.reset(worker_id, counter, envelope.options)

        session = Session(worker_id=worker_id, counter=counter, engine=engine, options=envelope.options)
        self._replace(session)
        logger.info("session.resurrect worker={} counter={} bytes={}", worker_id, counter, len(envelope.state))
        return session

    def reset(self, worker_id: str, counter: int, options: Options | None) -> Session:
        engine = self._engine_factory()
        engine.bootstrap_default()
        engine.announce_startup()
        session = Session(worker_id=worker_id, counter=counter, engine=engine, options=options)
        if self._init_script:
            session.queue_input(self._init_script, interactive=False)
        self._replace(session)
        logger.info("session.reset worker={} counter={}", worker_id, counter)
        return session

    def discard(self) -> None:
        self._replace(None)

    def _replace(self, session: Session | None) -> None:
        previous = self._session
        self._session = session
        if previous is not None and previous.engine is not (session.engine if session else None):
            previous.engine.close()
