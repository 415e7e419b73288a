# src/mongo_queue/tasks/mongo_storage.py

from __future__ import annotations

import inspect
import logging
import os
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ..core.ports import GetDb, Scheduler, TaskCollection, TaskDatabase, TaskLogger
from ..core.queue import QueueStorageBase, QueueTaskContext, TaskData
from .scheduling import AsyncioScheduler
from .task_log import TaskLog
from .task_models import TaskDocument, TaskStatus, TaskUpdate
from .task_runner import TaskRunner

logger = logging.getLogger(__name__)

DEFAULT_TASK_COLLECTION_NAME = "queueTasks"
DEFAULT_WAIT_BEFORE_RETRY_MS = 10000

T = TypeVar("T")


def _default_system_name() -> str | None:
    return (os.getenv("POD_NAME") or "").strip() or None


class MongoQueueStorage(QueueStorageBase):
    """
    Queue storage with MongoDB as backend.

    Each task is one document in `task_collection_name`. Status transitions are
    single-document updates; nothing locks a task across processes, so two
    processes that requeue the same stored task will both run it.

    Options (all validated here, before the database is ever touched):
    - get_db: returns the database (or an awaitable of it); required
    - get_logger: returns the logger to use; default: this module's logger
    - get_system_name: returns a value naming this process/pod; default: $POD_NAME
    - scheduler: schedule_now / schedule_after primitives; default: AsyncioScheduler
    - task_collection_name: default "queueTasks"
    - wait_before_retry: milliseconds between a failed attempt and the next one; default 10000
    """

    def __init__(
        self,
        get_db: GetDb,
        *,
        get_logger: Callable[[], TaskLogger | Any] | None = None,
        get_system_name: Callable[[], Any] | None = None,
        scheduler: Scheduler | None = None,
        task_collection_name: str | None = None,
        wait_before_retry: float | None = None,
    ) -> None:
        super().__init__()

        if not callable(get_db):
            raise TypeError("get_db must be callable")

        if get_system_name is None:
            self._get_system_name: Callable[[], str | None] = _default_system_name
        else:
            if not callable(get_system_name):
                raise TypeError("get_system_name must be callable")

            def _custom_system_name() -> str | None:
                raw = get_system_name()
                return str(raw if raw is not None else "").strip() or None

            self._get_system_name = _custom_system_name

        if scheduler is None:
            scheduler = AsyncioScheduler()
        elif not (
            callable(getattr(scheduler, "schedule_now", None))
            and callable(getattr(scheduler, "schedule_after", None))
        ):
            raise TypeError("scheduler must provide schedule_now() and schedule_after()")

        if get_logger is None:
            get_logger = lambda: logger  # noqa: E731
        elif not callable(get_logger):
            raise TypeError("get_logger must be callable")

        if task_collection_name is None:
            task_collection_name = DEFAULT_TASK_COLLECTION_NAME
        elif not isinstance(task_collection_name, str):
            raise TypeError("task_collection_name must be a string")

        if wait_before_retry is None:
            wait_before_retry = DEFAULT_WAIT_BEFORE_RETRY_MS
        elif isinstance(wait_before_retry, bool) or not isinstance(wait_before_retry, (int, float)):
            raise TypeError("wait_before_retry must be a number")
        elif wait_before_retry < 0:
            raise ValueError("wait_before_retry must be >= 0")

        self._get_db = get_db
        self._get_logger = get_logger
        self._log = TaskLog(get_logger)
        self._scheduler = scheduler
        self._task_collection_name = task_collection_name
        self._wait_before_retry = wait_before_retry
        self._runners: dict[Any, TaskRunner] = {}

    # ---- accessors ----

    @property
    def task_collection_name(self) -> str:
        return self._task_collection_name

    @property
    def wait_before_retry(self) -> float:
        return self._wait_before_retry

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    def get_logger(self) -> TaskLogger | Any:
        return self._get_logger()

    def get_system_name(self) -> str | None:
        """Normalized name of this process, or None."""
        return self._get_system_name()

    async def get_db(self) -> TaskDatabase:
        db = self._get_db()
        if inspect.isawaitable(db):
            db = await db
        return db

    async def with_task_collection(self, action: Callable[[TaskCollection], Awaitable[T]]) -> T:
        """Run `action` with the task collection of the current database."""
        db = await self.get_db()
        return await action(db.get_collection(self._task_collection_name))

    def active_runners(self) -> list[TaskRunner]:
        return list(self._runners.values())

    # ---- queue storage API ----

    async def enqueue_task(self, key: str, data: TaskData | None = None) -> QueueTaskContext:
        if not isinstance(key, str):
            raise TypeError("key must be a string")
        if not key.strip():
            raise ValueError("key must not be empty")
        if data is not None and not isinstance(data, dict):
            raise TypeError("data must be a dict")

        task = TaskDocument.new(key, data, created_by=self.get_system_name())

        async def _insert(collection: TaskCollection) -> None:
            result = await collection.insert_one(task.to_document())
            task.id = result.inserted_id

        await self.with_task_collection(_insert)

        self.execute(task)

        self._log.info("Task has been enqueued with ID %s", task.id)
        return self.create_context(task)

    async def enqueue_remaining_tasks(self) -> list[QueueTaskContext]:
        async def _find(collection: TaskCollection) -> list[dict[str, Any]]:
            cursor = collection.find(
                {
                    "status": {
                        "$nin": [
                            TaskStatus.SUCCESS.value,
                            TaskStatus.CANCELLED.value,
                            TaskStatus.RUNNING.value,
                        ]
                    }
                }
            ).sort("_id", 1)
            return await cursor.to_list(None)

        docs = await self.with_task_collection(_find)

        contexts: list[QueueTaskContext] = []
        for doc in docs:
            task = TaskDocument.from_document(doc)
            self.execute(task)
            contexts.append(self.create_context(task))

        self._log.info("Requeued %d tasks", len(docs))
        return contexts

    async def stop_all_enqueued_tasks(self) -> int:
        async def _stop(collection: TaskCollection) -> int:
            result = await collection.update_many(
                {"status": {"$nin": [TaskStatus.SUCCESS.value, TaskStatus.CANCELLED.value]}},
                {"$set": {"status": TaskStatus.STOPPED.value}},
            )
            return int(result.modified_count)

        modified = await self.with_task_collection(_stop)
        self._log.debug("Number of documents, which have been modified: %d", modified)
        return modified

    async def close(self) -> None:
        """Cancel every in-memory runner. Stored statuses are left as they are."""
        runners = list(self._runners.values())
        for runner in runners:
            runner.cancel()
        self._runners.clear()
        if runners:
            self._log.info("Cancelled %d in-memory task runners", len(runners))

    # ---- engine ----

    def execute(self, task: TaskDocument, delay_ms: float | None = None) -> TaskRunner:
        """
        Hand a task to the engine. The attempt always runs later, never inline.

        A task that already has a live runner in this process is not started twice.
        """
        runner = self._runners.get(task.id)
        if runner is not None and not runner.finished:
            runner.start(delay_ms)
            return runner

        runner = TaskRunner(
            task,
            get_handlers=self.get_execution_handlers,
            persist=self._persist_update,
            scheduler=self._scheduler,
            wait_before_retry=self._wait_before_retry,
            get_system_name=self.get_system_name,
            log=self._log,
            on_finished=self._forget_runner,
        )
        self._runners[task.id] = runner
        runner.start(delay_ms)
        return runner

    def _forget_runner(self, runner: TaskRunner) -> None:
        if self._runners.get(runner.task.id) is runner:
            del self._runners[runner.task.id]

    async def _persist_update(self, task: TaskDocument, update: TaskUpdate) -> None:
        async def _update(collection: TaskCollection) -> None:
            await collection.update_one({"_id": task.id}, update.to_mongo(task.data))

        await self.with_task_collection(_update)

    @staticmethod
    def create_context(task: TaskDocument) -> QueueTaskContext:
        return QueueTaskContext(id=str(task.uuid).lower().strip() or None)
