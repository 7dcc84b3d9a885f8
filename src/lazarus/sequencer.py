"""Classify inbound messages against the live session."""

from __future__ import annotations

from enum import StrEnum

from lazarus.messages import InboundMessage
from lazarus.session import Session


class Decision(StrEnum):
    CONTINUE = "continue"
    RESURRECT = "resurrect"
    RESET = "reset"


def decide(message: InboundMessage, session: Session | None) -> Decision:
    """Choose exactly one lifecycle path for ``message``.

    A spawn asking for a reset always wins. Otherwise the live session is reused
    only for the immediate successor of the last applied message; any gap, replay,
    or different worker goes back to durable storage. The resurrected session takes
    the message's counter as-is; no stored high-water mark is consulted.
    """

    if message.wants_reset:
        return Decision.RESET
    if session is not None and session.worker_id == message.worker_id and message.counter == session.counter + 1:
        return Decision.CONTINUE
    return Decision.RESURRECT
