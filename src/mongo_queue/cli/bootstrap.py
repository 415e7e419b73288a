# src/mongo_queue/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- builds the MongoDB client,
- wires it into a MongoQueueStorage and a Queue with the built-in actions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pymongo import AsyncMongoClient

from ..config import Settings, get_settings
from ..core.queue import Queue, QueueTaskExecutionContext
from ..tasks.mongo_storage import MongoQueueStorage

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    settings: Settings
    client: AsyncMongoClient
    storage: MongoQueueStorage
    queue: Queue


def log_task(ctx: QueueTaskExecutionContext) -> None:
    """Built-in action for the "log" key: writes the task to the log."""
    logger.info("Task key=%s data=%s", ctx.task_key, ctx.data)


def create_storage(client: AsyncMongoClient, settings: Settings) -> MongoQueueStorage:
    db = client.get_database(settings.db_name)
    return MongoQueueStorage(
        lambda: db,
        get_system_name=lambda: settings.system_name,
        task_collection_name=settings.task_collection,
        wait_before_retry=settings.wait_before_retry_ms,
    )


def create_app_state(*, settings: Settings | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    Must be called with a running event loop (the default scheduler needs one when tasks start).
    """
    if settings is None:
        settings = get_settings()

    client: AsyncMongoClient = AsyncMongoClient(settings.mongo_uri)
    storage = create_storage(client, settings)
    queue = Queue(storage)
    queue.register("log", log_task)

    logger.info(
        "Storage ready db=%s collection=%s retry=%sms",
        settings.db_name,
        settings.task_collection,
        settings.wait_before_retry_ms,
    )
    return AppState(settings=settings, client=client, storage=storage, queue=queue)


async def close_app_state(state: AppState) -> None:
    """Best-effort shutdown of in-memory runners and the client."""
    try:
        await state.storage.close()
    finally:
        await state.client.close()
