# src/mongo_queue/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the task engine.

The engine depends on Protocols instead of concrete implementations.
This keeps the database driver, logger and timing swappable and makes testing easier.
"""

from typing import Any, Awaitable, Callable, Protocol

TaskAction = Callable[[], Awaitable[None]]
# Zero-arg coroutine function handed to a scheduler.


class TaskLogger(Protocol):
    """
    Pluggable logger.

    Every method is optional; the engine skips what a logger does not provide.
    A stdlib logging.Logger satisfies this directly.
    """

    def debug(self, msg: str, *args: Any) -> Any: ...
    def info(self, msg: str, *args: Any) -> Any: ...
    def warning(self, msg: str, *args: Any) -> Any: ...
    def error(self, msg: str, *args: Any) -> Any: ...


class Scheduler(Protocol):
    """Timing primitives: run an action on the next tick, or after a delay in milliseconds."""

    def schedule_now(self, action: TaskAction) -> Any: ...
    def schedule_after(self, delay_ms: float, action: TaskAction) -> Any: ...


class TaskCollection(Protocol):
    """Subset of pymongo's AsyncCollection used by the storage."""

    async def insert_one(self, document: dict[str, Any]) -> Any: ...
    async def update_one(self, filter: dict[str, Any], update: dict[str, Any]) -> Any: ...
    async def update_many(self, filter: dict[str, Any], update: dict[str, Any]) -> Any: ...
    def find(self, filter: dict[str, Any]) -> Any: ...


class TaskDatabase(Protocol):
    def get_collection(self, name: str) -> TaskCollection: ...


GetDb = Callable[[], "TaskDatabase | Awaitable[TaskDatabase]"]
