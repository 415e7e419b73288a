"""MongoDB backed storage for asynchronous queue tasks."""

from .core.queue import Queue, QueueStorageBase, QueueTaskContext, QueueTaskExecutionContext
from .tasks.mongo_storage import (
    DEFAULT_TASK_COLLECTION_NAME,
    DEFAULT_WAIT_BEFORE_RETRY_MS,
    MongoQueueStorage,
)
from .tasks.scheduling import AsyncioScheduler
from .tasks.task_models import TaskDocument, TaskError, TaskStatus

__all__ = [
    "AsyncioScheduler",
    "DEFAULT_TASK_COLLECTION_NAME",
    "DEFAULT_WAIT_BEFORE_RETRY_MS",
    "MongoQueueStorage",
    "Queue",
    "QueueStorageBase",
    "QueueTaskContext",
    "QueueTaskExecutionContext",
    "TaskDocument",
    "TaskError",
    "TaskStatus",
]
