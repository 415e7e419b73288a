# tests/conftest.py

from __future__ import annotations

import pytest

from mongo_queue.tasks.mongo_storage import MongoQueueStorage

from .fakes import FakeCollection, FakeDatabase, ManualScheduler, RecordingLogger


@pytest.fixture()
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture()
def collection(db: FakeDatabase) -> FakeCollection:
    return db.get_collection("queueTasks")


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def log() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture()
def storage(db: FakeDatabase, scheduler: ManualScheduler, log: RecordingLogger) -> MongoQueueStorage:
    """
    Storage wired with deterministic fakes.

    Nothing executes until the test drives `scheduler`.
    """
    return MongoQueueStorage(
        lambda: db,
        get_logger=lambda: log,
        get_system_name=lambda: "pod-1",
        scheduler=scheduler,
    )
