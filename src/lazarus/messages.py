"""Inbound message and outbound batch models."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from lazarus.errors import InvalidIdentityError, MalformedMessageError, UnknownNamespaceError
from lazarus.types import Options, WireObject


class WorkerOp(StrEnum):
    SPAWN = "spawn"
    CONTINUE = "continue"


class OutputKind(StrEnum):
    TEXT = "text"
    DEBUG = "debug"
    CONTROL = "control"


class MessagePayload(BaseModel):
    """Operation arguments carried by one inbound message."""

    model_config = ConfigDict(frozen=True, extra="allow")

    reset: bool = False
    options: Options | None = None
    save: bool = False
    text: str | None = None
    interrupt: bool = False


class InboundMessage(BaseModel):
    """One client message, consumed exactly once by the worker."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    worker_id: str = Field(alias="workerID", min_length=1)
    counter: StrictInt
    op: WorkerOp
    payload: MessagePayload = Field(default_factory=MessagePayload)
    server_id: str | None = Field(default=None, alias="serverID")
    client_id: Any = Field(default=None, alias="clientID")

    @property
    def wants_reset(self) -> bool:
        return self.op is WorkerOp.SPAWN and self.payload.reset


def parse_inbound(
    raw: str | bytes | Mapping[str, Any],
    *,
    namespace: str,
    require_namespace: bool = False,
) -> InboundMessage:
    """Decode and validate one inbound message.

    Checks run in a fixed order so the most specific rejection wins: the body must be a
    JSON object, the namespace must match, the worker id must be a non-empty string, and
    only then are the remaining fields validated.
    """

    if isinstance(raw, Mapping):
        data: Any = dict(raw)
    else:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MalformedMessageError(f"cannot parse message body: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedMessageError("message body must be a JSON object")

    server_id = data.get("serverID")
    if server_id is None:
        if require_namespace:
            raise UnknownNamespaceError("message carries no serverID")
    elif server_id != namespace:
        raise UnknownNamespaceError(f"unknown serverID: {server_id!r}")

    worker_id = data.get("workerID")
    if not isinstance(worker_id, str) or not worker_id:
        raise InvalidIdentityError(f"invalid workerID: {worker_id!r}")

    try:
        return InboundMessage.model_validate(data)
    except ValidationError as exc:
        raise MalformedMessageError(str(exc)) from exc


@dataclass(frozen=True)
class OutputEvent:
    """One client-visible item produced during an invocation."""

    kind: OutputKind
    text: str | None = None
    data: WireObject | None = None
    level: int | None = None

    @classmethod
    def text_out(cls, text: str) -> OutputEvent:
        return cls(OutputKind.TEXT, text=text)

    @classmethod
    def debug(cls, text: str, level: int | None = None) -> OutputEvent:
        return cls(OutputKind.DEBUG, text=text, level=level)

    @classmethod
    def control(cls, name: str, **data: Any) -> OutputEvent:
        return cls(OutputKind.CONTROL, data={"id": name, **data})

    def to_wire(self) -> WireObject:
        item: WireObject = {"kind": self.kind.value}
        if self.kind is OutputKind.CONTROL:
            item["data"] = dict(self.data or {})
        else:
            item["text"] = self.text or ""
        if self.level is not None:
            item["level"] = self.level
        return item


@dataclass(frozen=True)
class OutboundBatch:
    """The single ordered response of one invocation."""

    worker_id: str
    counter: int
    items: tuple[OutputEvent, ...] = field(default_factory=tuple)
    client_id: Any = None
    server_id: str | None = None

    def to_wire(self) -> WireObject:
        wire: WireObject = {
            "workerID": self.worker_id,
            "counter": self.counter,
            "items": [item.to_wire() for item in self.items],
        }
        if self.client_id is not None:
            wire["clientID"] = self.client_id
        if self.server_id is not None:
            wire["serverID"] = self.server_id
        return wire

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), ensure_ascii=False)
