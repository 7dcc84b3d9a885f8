"""Lazarus - resumable interactive sessions on stateless workers."""

from .engine import Engine, EngineEvent
from .errors import ResponseCode
from .messages import InboundMessage, OutboundBatch, OutputEvent, OutputKind, WorkerOp
from .sequencer import Decision, decide
from .session import Session, SessionRegistry
from .worker import InvocationResult, Worker

__version__ = "0.1.0"

__all__ = [
    "Decision",
    "Engine",
    "EngineEvent",
    "InboundMessage",
    "InvocationResult",
    "OutboundBatch",
    "OutputEvent",
    "OutputKind",
    "ResponseCode",
    "Session",
    "SessionRegistry",
    "Worker",
    "WorkerOp",
    "decide",
]
