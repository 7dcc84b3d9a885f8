"""Runtime logging helpers."""

from __future__ import annotations

import contextlib
import sys
from collections.abc import Generator
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Literal

import loguru
from loguru import logger

LogFormat = Literal["default", "json"]

_DEFAULT_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {name}:{function}:{line} | "
    "{extra[worker]}#{extra[counter]} | {message}"
)
# Engine debug channel levels: info, error, debug, warning, engine, builtin.
_ENGINE_LEVELS = ("INFO", "ERROR", "DEBUG", "WARNING", "DEBUG", "DEBUG")
_CONFIGURED: tuple[str, LogFormat] | None = None


@dataclass(frozen=True)
class InvocationScope:
    worker_id: str
    counter: int


_invocation_context: ContextVar[InvocationScope | None] = ContextVar("invocation", default=None)


def current_invocation() -> InvocationScope | None:
    """Get the invocation being handled in this context, if any."""
    return _invocation_context.get()


@contextlib.contextmanager
def invocation_scope(worker_id: str, counter: int) -> Generator[InvocationScope, None, None]:
    scope = InvocationScope(worker_id=worker_id, counter=counter)
    reset_token = _invocation_context.set(scope)
    try:
        yield scope
    finally:
        _invocation_context.reset(reset_token)


def engine_log_level(level: int | None) -> str:
    """Map an engine debug level (0-5) onto a loguru level name."""
    if level is None or not 0 <= level < len(_ENGINE_LEVELS):
        return _ENGINE_LEVELS[0]
    return _ENGINE_LEVELS[level]


def _inject_context(record: loguru.Record) -> None:
    scope = _invocation_context.get()
    record["extra"]["worker"] = scope.worker_id if scope else "-"
    record["extra"]["counter"] = scope.counter if scope else "-"


def configure_logging(*, level: str = "INFO", log_format: LogFormat = "default") -> None:
    """Configure process-level logging once."""

    global _CONFIGURED
    profile = (level.upper(), log_format)
    if profile == _CONFIGURED:
        return

    logger.remove()
    if log_format == "json":
        logger.add(sys.stderr, level=profile[0], serialize=True, backtrace=False, diagnose=False)
    else:
        logger.add(sys.stderr, level=profile[0], format=_DEFAULT_FORMAT, backtrace=False, diagnose=False)
    logger.configure(patcher=_inject_context)
    _CONFIGURED = profile
