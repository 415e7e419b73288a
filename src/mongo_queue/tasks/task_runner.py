# src/mongo_queue/tasks/task_runner.py

from __future__ import annotations

"""
Task execution engine.

One TaskRunner drives one task document:
- schedules an attempt (immediately or after a delay),
- marks the task running, runs every execution handler in order,
- marks it success, or records the error, marks it failed and schedules the next attempt.

Retries are an explicit loop over scheduler callbacks; each callback finishes
before the next one is scheduled, so nothing nests. cancel() ends the loop.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from ..core.ports import Scheduler
from ..core.queue import ExecutionHandler, QueueTaskExecutionContext, call_handler
from .task_log import TaskLog
from .task_models import UNSET, TaskDocument, TaskError, TaskStatus, TaskUpdate, utcnow

PersistUpdate = Callable[[TaskDocument, TaskUpdate], Awaitable[None]]


class TaskRunner:
    def __init__(
        self,
        task: TaskDocument,
        *,
        get_handlers: Callable[[], list[ExecutionHandler]],
        persist: PersistUpdate,
        scheduler: Scheduler,
        wait_before_retry: float,
        get_system_name: Callable[[], str | None],
        log: TaskLog,
        on_finished: Callable[[TaskRunner], None] | None = None,
    ) -> None:
        self.task = task
        self._get_handlers = get_handlers
        self._persist = persist
        self._scheduler = scheduler
        self._wait_before_retry = wait_before_retry
        self._get_system_name = get_system_name
        self._log = log
        self._on_finished = on_finished

        self._scheduled = False
        self._in_flight = False
        self._cancelled = False
        self._finished = False
        self.attempts = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def busy(self) -> bool:
        """True while an attempt is scheduled or running."""
        return self._scheduled or self._in_flight

    def cancel(self) -> None:
        """Stop scheduling attempts. An attempt already running is not interrupted."""
        self._cancelled = True
        if not self._in_flight:
            self._finish()

    def start(self, delay_ms: float | None = None) -> bool:
        """
        Schedule an attempt. Returns False if the runner is cancelled, finished,
        or already has an attempt scheduled or running.
        """
        if self._cancelled or self._finished:
            return False
        if self.busy:
            self._log.debug(
                "Task %s with key %s already has an attempt in flight",
                self.task.id,
                self.task.key,
            )
            return False
        self._schedule(delay_ms)
        return True

    # ---- internals ----

    def _schedule(self, delay_ms: float | None) -> None:
        self._scheduled = True
        if delay_ms is not None:
            self._log.info(
                "Task %s with key %s will be executed in %sms",
                self.task.id,
                self.task.key,
                delay_ms,
            )
            self._scheduler.schedule_after(delay_ms, self._run_attempt)
        else:
            self._log.info(
                "Task %s with key %s will be executed immediately",
                self.task.id,
                self.task.key,
            )
            self._scheduler.schedule_now(self._run_attempt)

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        if self._on_finished is not None:
            self._on_finished(self)

    async def _run_attempt(self) -> None:
        self._scheduled = False
        if self._cancelled:
            self._log.debug("Task %s with key %s: runner cancelled, attempt skipped", self.task.id, self.task.key)
            self._finish()
            return

        self.attempts += 1
        self._in_flight = True
        self._log.trace("Task %s with key %s: attempt %d", self.task.id, self.task.key, self.attempts)
        try:
            await self._attempt()
        except asyncio.CancelledError:
            self._finish()
            raise
        except Exception as exc:
            retry = await self._handle_error(exc)
        else:
            retry = False
        finally:
            self._in_flight = False

        if retry and not self._cancelled:
            self._schedule(self._wait_before_retry)
        else:
            self._finish()

    async def _attempt(self) -> None:
        await self._update(TaskUpdate(status=TaskStatus.RUNNING))

        for handler in self._get_handlers():
            started = time.monotonic()
            await call_handler(
                handler,
                QueueTaskExecutionContext(task_key=self.task.key, data=self.task.data),
            )
            elapsed_ms = (time.monotonic() - started) * 1000.0
            self._log.info(
                "Action for task %s with key %s has been executed after %.0fms",
                self.task.id,
                self.task.key,
                elapsed_ms,
            )

        await self._update(TaskUpdate(status=TaskStatus.SUCCESS))

    async def _update(self, update: TaskUpdate) -> None:
        system_name = self._get_system_name()
        update.updated_at = utcnow()
        update.updated_by = system_name if system_name is not None else UNSET

        await self._persist(self.task, update)

        self.task.updated_at = update.updated_at
        self.task.updated_by = system_name
        if update.status is not None:
            self.task.status = update.status
        if update.errors is not None:
            self.task.errors = update.errors

        self._log.debug(
            "Task %s with key %s has been updated with status %s",
            self.task.id,
            self.task.key,
            self.task.status.value,
        )

    async def _handle_error(self, exc: Exception) -> bool:
        """Record a failed attempt. Returns True if a retry should be scheduled."""
        try:
            error = TaskError.from_exception(exc, occurred_in=self._get_system_name())
            await self._update(
                TaskUpdate(status=TaskStatus.FAILED, errors=[*self.task.errors, error])
            )
        except Exception as exc2:
            self._log.error(
                "Task %s with key %s failed and the failure could not be stored: %r (while storing: %r)",
                self.task.id,
                self.task.key,
                exc,
                exc2,
            )
            return False

        self._log.warning(
            "Task %s with key %s has failed and will be executed again in %sms",
            self.task.id,
            self.task.key,
            self._wait_before_retry,
        )
        return True
