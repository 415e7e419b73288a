# src/mongo_queue/tasks/scheduling.py

from __future__ import annotations

import asyncio
import logging

from ..core.ports import TaskAction

logger = logging.getLogger(__name__)


class AsyncioScheduler:
    """
    Default scheduler backed by the running event loop.

    - schedule_now: loop.call_soon (never runs inline)
    - schedule_after: loop.call_later

    Actions run as asyncio tasks; a strong reference is held until they finish.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._running: set[asyncio.Task[None]] = set()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def _spawn(self, action: TaskAction) -> None:
        task = self._get_loop().create_task(action())
        self._running.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduled action failed", exc_info=exc)

    def schedule_now(self, action: TaskAction) -> asyncio.Handle:
        return self._get_loop().call_soon(self._spawn, action)

    def schedule_after(self, delay_ms: float, action: TaskAction) -> asyncio.TimerHandle:
        return self._get_loop().call_later(max(0.0, float(delay_ms)) / 1000.0, self._spawn, action)