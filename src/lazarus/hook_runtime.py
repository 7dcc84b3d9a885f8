"""Hook execution with per-adapter fault isolation."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterator
from typing import Any

import pluggy
from loguru import logger

from lazarus.types import Envelope

UNKNOWN_ADAPTER = "<unknown>"


class HookRuntime:
    """Call worker hooks so that one broken adapter never takes the worker down."""

    def __init__(self, plugin_manager: pluggy.PluginManager) -> None:
        self._plugin_manager = plugin_manager

    def provide(self, hook_name: str, **kwargs: Any) -> Any:
        """Return the first non-None value, asking the most recently registered adapter first.

        An adapter that raises is reported through ``on_error`` and skipped; provider
        hooks run during construction, so coroutine results are ignored with a warning.
        """

        for adapter, call in self._adapters(hook_name, kwargs):
            try:
                value = call()
            except Exception as error:
                self.report_error_sync(stage=f"{hook_name}:{adapter}", error=error, message=None)
                continue
            if inspect.isawaitable(value):
                _discard(value)
                logger.warning("hook.async_not_supported hook={} adapter={}", hook_name, adapter)
                continue
            if value is not None:
                logger.debug("hook.provided hook={} adapter={}", hook_name, adapter)
                return value
        return None

    async def report_error(self, *, stage: str, error: Exception, message: Envelope | None) -> None:
        """Tell every ``on_error`` observer; observer failures are logged and dropped."""

        for adapter, call in self._error_observers(stage, error, message):
            try:
                value = call()
                if inspect.isawaitable(value):
                    await value
            except Exception:
                logger.opt(exception=True).warning("hook.on_error_failed stage={} adapter={}", stage, adapter)

    def report_error_sync(self, *, stage: str, error: Exception, message: Envelope | None) -> None:
        for adapter, call in self._error_observers(stage, error, message):
            try:
                value = call()
            except Exception:
                logger.opt(exception=True).warning("hook.on_error_failed stage={} adapter={}", stage, adapter)
                continue
            if inspect.isawaitable(value):
                _discard(value)
                logger.warning("hook.async_not_supported hook=on_error adapter={}", adapter)

    def hook_report(self) -> dict[str, list[str]]:
        """Map each implemented hook to its adapters in registration order."""

        report: dict[str, list[str]] = {}
        for hook_name in sorted(vars(self._plugin_manager.hook)):
            caller = getattr(self._plugin_manager.hook, hook_name)
            if hook_name.startswith("_") or not hasattr(caller, "get_hookimpls"):
                continue
            adapters = [impl.plugin_name for impl in caller.get_hookimpls()]
            if adapters:
                report[hook_name] = adapters
        return report

    def _error_observers(
        self, stage: str, error: Exception, message: Envelope | None
    ) -> Iterator[tuple[str, Callable[[], Any]]]:
        return self._adapters("on_error", {"stage": stage, "error": error, "message": message})

    def _adapters(self, hook_name: str, kwargs: dict[str, Any]) -> Iterator[tuple[str, Callable[[], Any]]]:
        caller = getattr(self._plugin_manager.hook, hook_name, None)
        if caller is None or not hasattr(caller, "get_hookimpls"):
            return
        # pluggy lists implementations oldest first; later registrations take precedence.
        for impl in reversed(caller.get_hookimpls()):
            call_kwargs = {name: kwargs[name] for name in impl.argnames if name in kwargs}
            yield impl.plugin_name or UNKNOWN_ADAPTER, _bind(impl.function, call_kwargs)


def _bind(function: Callable[..., Any], kwargs: dict[str, Any]) -> Callable[[], Any]:
    return lambda: function(**kwargs)


def _discard(value: Any) -> None:
    close = getattr(value, "close", None)
    if callable(close):
        close()
