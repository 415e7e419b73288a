# src/mongo_queue/core/queue.py

"""
Queue framework seam.

A storage owns the durable side of a queue (persisting tasks, requeueing after
a restart, stopping everything). The queue itself only knows task keys and the
actions that run for them; it plugs into a storage as an execution handler.
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

TaskData = dict[str, Any]


@dataclass(frozen=True, slots=True)
class QueueTaskContext:
    """Caller-facing handle of an enqueued task."""

    id: str | None


@dataclass(frozen=True, slots=True)
class QueueTaskExecutionContext:
    """What every execution handler receives for one attempt."""

    task_key: str
    data: TaskData


ExecutionHandler = Callable[[QueueTaskExecutionContext], Awaitable[Any] | Any]
TaskActionFn = Callable[[QueueTaskExecutionContext], Awaitable[Any] | Any]


async def call_handler(handler: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async handler and await the result if needed."""
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class QueueStorageBase(ABC):
    """
    Base class for queue storages.

    Keeps the ordered list of execution handlers. Every attempt of every
    task runs all handlers in registration order.
    """

    def __init__(self) -> None:
        self._execution_handlers: list[ExecutionHandler] = []

    def register_execution_handler(self, handler: ExecutionHandler) -> None:
        if not callable(handler):
            raise TypeError("handler must be callable")
        self._execution_handlers.append(handler)

    def get_execution_handlers(self) -> list[ExecutionHandler]:
        """Snapshot of the registered handlers."""
        return list(self._execution_handlers)

    @abstractmethod
    async def enqueue_task(self, key: str, data: TaskData | None = None) -> QueueTaskContext: ...

    @abstractmethod
    async def enqueue_remaining_tasks(self) -> list[QueueTaskContext]: ...

    @abstractmethod
    async def stop_all_enqueued_tasks(self) -> int: ...

    async def close(self) -> None:
        """Release in-memory resources. Persisted tasks are not touched."""
        return


class Queue:
    """
    Routes tasks to actions by key.

    The queue registers one execution handler on its storage. A task whose key
    has no registered action fails with KeyError and is retried like any other
    failure, so registering the action later (and restarting) still picks it up.
    """

    def __init__(self, storage: QueueStorageBase) -> None:
        self._storage = storage
        self._actions: dict[str, TaskActionFn] = {}
        self._storage.register_execution_handler(self._dispatch)

    @property
    def storage(self) -> QueueStorageBase:
        return self._storage

    def register(self, key: str, action: TaskActionFn) -> None:
        if not isinstance(key, str) or not key.strip():
            raise ValueError("key must be a non-empty string")
        if not callable(action):
            raise TypeError("action must be callable")
        k = key.strip()
        if k in self._actions:
            raise ValueError(f"action for key {k!r} is already registered")
        self._actions[k] = action

    def keys(self) -> list[str]:
        return sorted(self._actions)

    async def enqueue(self, key: str, data: TaskData | None = None) -> QueueTaskContext:
        k = (key or "").strip()
        if k not in self._actions:
            raise KeyError(f"no action registered for key {k!r}")
        return await self._storage.enqueue_task(k, data)

    async def start(self) -> list[QueueTaskContext]:
        """Resume tasks interrupted by a previous run."""
        contexts = await self._storage.enqueue_remaining_tasks()
        logger.info("Queue started keys=%s requeued=%d", self.keys(), len(contexts))
        return contexts

    async def stop(self) -> int:
        modified = await self._storage.stop_all_enqueued_tasks()
        await self._storage.close()
        logger.info("Queue stopped modified=%d", modified)
        return modified

    async def _dispatch(self, ctx: QueueTaskExecutionContext) -> Any:
        action = self._actions.get(ctx.task_key)
        if action is None:
            raise KeyError(f"no action registered for key {ctx.task_key!r}")
        return await call_handler(action, ctx)
