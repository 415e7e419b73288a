# src/mongo_queue/tasks/task_log.py

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from ..core.ports import TaskLogger

_FALLBACKS: dict[str, tuple[str, ...]] = {
    "trace": ("trace", "debug"),
    "debug": ("debug",),
    "info": ("info",),
    "warning": ("warning", "warn"),
    "error": ("error",),
}


class TaskLog:
    """
    Thin front for a pluggable logger.

    The logger is resolved on every call, so a getter may hand out a different
    instance over time. Levels the logger does not implement are skipped.
    Messages use %-style arguments like the stdlib logging module.
    """

    def __init__(self, get_logger: Callable[[], TaskLogger | Any]) -> None:
        self._get_logger = get_logger

    def _emit(self, level: str, msg: str, args: tuple[Any, ...]) -> None:
        target = self._get_logger()
        if target is None:
            return
        for name in _FALLBACKS[level]:
            fn = getattr(target, name, None)
            if callable(fn):
                fn(msg, *args)
                return

    def trace(self, msg: str, *args: Any) -> None:
        self._emit("trace", msg, args)

    def debug(self, msg: str, *args: Any) -> None:
        self._emit("debug", msg, args)

    def info(self, msg: str, *args: Any) -> None:
        self._emit("info", msg, args)

    def warning(self, msg: str, *args: Any) -> None:
        self._emit("warning", msg, args)

    def error(self, msg: str, *args: Any) -> None:
        self._emit("error", msg, args)
