# tests/test_mongo_storage.py

from __future__ import annotations

import pytest

from mongo_queue.tasks.mongo_storage import MongoQueueStorage
from mongo_queue.tasks.scheduling import AsyncioScheduler

from .fakes import FakeCollection, FakeDatabase, ManualScheduler, RecordingLogger


def _seed(collection: FakeCollection, *statuses: str) -> list[int]:
    ids: list[int] = []
    for i, status in enumerate(statuses, start=1):
        collection.docs[i] = {
            "_id": i,
            "key": f"k{i}",
            "uuid": f"0000000{i}-AAAA-4000-8000-00000000000{i}",
            "status": status,
            "data": {"i": i},
            "errors": [{"message": "old"}] if status == "failed" else [],
        }
        ids.append(i)
    return ids


# ---- enqueue ----


@pytest.mark.asyncio
async def test_enqueue_returns_normalized_uuid(storage: MongoQueueStorage, collection: FakeCollection) -> None:
    ctx = await storage.enqueue_task("send-email", {"to": "a@b.c"})

    doc = next(iter(collection.docs.values()))
    assert ctx.id == doc["uuid"].lower().strip()
    assert len(ctx.id) == 36
    assert doc["key"] == "send-email"
    assert doc["data"] == {"to": "a@b.c"}
    assert doc["createdBy"] == "pod-1"
    assert doc["errors"] == []


@pytest.mark.asyncio
async def test_enqueue_without_data_stores_empty_mapping(
    storage: MongoQueueStorage, collection: FakeCollection
) -> None:
    await storage.enqueue_task("k")
    assert next(iter(collection.docs.values()))["data"] == {}


@pytest.mark.asyncio
async def test_enqueue_rejects_bad_input(storage: MongoQueueStorage, collection: FakeCollection) -> None:
    with pytest.raises(ValueError):
        await storage.enqueue_task("  ")
    with pytest.raises(TypeError):
        await storage.enqueue_task(123)  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        await storage.enqueue_task("k", ["not", "a", "dict"])  # type: ignore[arg-type]
    assert collection.docs == {}


def test_context_for_empty_uuid_is_none(storage: MongoQueueStorage) -> None:
    from mongo_queue.tasks.task_models import TaskDocument

    task = TaskDocument.new("k")
    task.uuid = "  "
    assert storage.create_context(task).id is None


# ---- recovery sweep ----


@pytest.mark.asyncio
async def test_sweep_resubmits_created_and_failed_in_creation_order(
    storage: MongoQueueStorage, scheduler: ManualScheduler, collection: FakeCollection
) -> None:
    _seed(collection, "created", "running", "failed")

    contexts = await storage.enqueue_remaining_tasks()

    assert [c.id for c in contexts] == [
        "00000001-aaaa-4000-8000-000000000001",
        "00000003-aaaa-4000-8000-000000000003",
    ]
    assert [c.delay_ms for c in scheduler.pending] == [None, None]
    assert sorted(r.task.id for r in storage.active_runners()) == [1, 3]


@pytest.mark.asyncio
async def test_sweep_orders_by_id_not_by_storage_order(
    storage: MongoQueueStorage, collection: FakeCollection
) -> None:
    for doc_id, status in ((3, "failed"), (1, "created"), (2, "stopped")):
        collection.docs[doc_id] = {
            "_id": doc_id,
            "key": "k",
            "uuid": f"u-{doc_id}",
            "status": status,
            "data": {},
            "errors": [],
        }

    contexts = await storage.enqueue_remaining_tasks()

    assert [c.id for c in contexts] == ["u-1", "u-2", "u-3"]


@pytest.mark.asyncio
async def test_sweep_skips_terminal_and_running_but_includes_stopped(
    storage: MongoQueueStorage, collection: FakeCollection, log: RecordingLogger
) -> None:
    _seed(collection, "success", "cancelled", "running", "stopped", "created")

    contexts = await storage.enqueue_remaining_tasks()

    assert [c.id[:8] for c in contexts] == ["00000004", "00000005"]
    assert "Requeued 2 tasks" in log.messages("info")


@pytest.mark.asyncio
async def test_sweep_keeps_previous_errors(
    storage: MongoQueueStorage, scheduler: ManualScheduler, collection: FakeCollection
) -> None:
    _seed(collection, "failed")

    def boom(ctx) -> None:
        raise RuntimeError("again")

    storage.register_execution_handler(boom)
    await storage.enqueue_remaining_tasks()
    await scheduler.run_next()

    assert [e["message"] for e in collection.docs[1]["errors"]] == ["old", "again"]
    assert collection.docs[1]["data"] == {"i": 1}


# ---- bulk stop ----


@pytest.mark.asyncio
async def test_stop_all_marks_unfinished_tasks_stopped(
    storage: MongoQueueStorage, collection: FakeCollection
) -> None:
    _seed(collection, "created", "running", "failed", "success", "cancelled")

    modified = await storage.stop_all_enqueued_tasks()

    assert modified == 3
    assert [collection.docs[i]["status"] for i in range(1, 6)] == [
        "stopped",
        "stopped",
        "stopped",
        "success",
        "cancelled",
    ]
    assert collection.docs[3]["errors"] == [{"message": "old"}]
    assert collection.docs[2]["data"] == {"i": 2}


@pytest.mark.asyncio
async def test_stop_all_is_idempotent(storage: MongoQueueStorage, collection: FakeCollection) -> None:
    _seed(collection, "created", "failed", "success")

    assert await storage.stop_all_enqueued_tasks() == 2
    snapshot = {i: dict(d) for i, d in collection.docs.items()}

    assert await storage.stop_all_enqueued_tasks() == 0
    assert collection.docs == snapshot


@pytest.mark.asyncio
async def test_stop_does_not_cancel_in_flight_runners(
    storage: MongoQueueStorage, scheduler: ManualScheduler, collection: FakeCollection
) -> None:
    storage.register_execution_handler(lambda ctx: None)
    await storage.enqueue_task("k")

    await storage.stop_all_enqueued_tasks()
    doc_id = next(iter(collection.docs))
    assert collection.docs[doc_id]["status"] == "stopped"

    # the already scheduled attempt still runs and overwrites the status
    await scheduler.run_until_idle()
    assert collection.docs[doc_id]["status"] == "success"


# ---- options ----


@pytest.mark.asyncio
async def test_async_db_accessor_and_custom_collection(scheduler: ManualScheduler) -> None:
    db = FakeDatabase()

    async def get_db() -> FakeDatabase:
        return db

    storage = MongoQueueStorage(get_db, scheduler=scheduler, task_collection_name="jobs")
    await storage.enqueue_task("k")

    assert len(db.get_collection("jobs").docs) == 1
    assert "queueTasks" not in db.collections


def test_defaults() -> None:
    storage = MongoQueueStorage(lambda: None)

    assert storage.task_collection_name == "queueTasks"
    assert storage.wait_before_retry == 10000
    assert isinstance(storage.scheduler, AsyncioScheduler)


def test_default_system_name_reads_pod_name(monkeypatch) -> None:
    monkeypatch.setenv("POD_NAME", "  worker-7 ")
    assert MongoQueueStorage(lambda: None).get_system_name() == "worker-7"

    monkeypatch.delenv("POD_NAME")
    assert MongoQueueStorage(lambda: None).get_system_name() is None


def test_custom_system_name_is_stringified_and_trimmed() -> None:
    assert MongoQueueStorage(lambda: None, get_system_name=lambda: 42).get_system_name() == "42"
    assert MongoQueueStorage(lambda: None, get_system_name=lambda: "  ").get_system_name() is None
    assert MongoQueueStorage(lambda: None, get_system_name=lambda: None).get_system_name() is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"get_logger": "nope"},
        {"get_system_name": 1},
        {"scheduler": object()},
        {"task_collection_name": 5},
        {"wait_before_retry": "10"},
        {"wait_before_retry": True},
    ],
)
def test_invalid_options_raise_type_error(kwargs) -> None:
    with pytest.raises(TypeError):
        MongoQueueStorage(lambda: None, **kwargs)


def test_get_db_must_be_callable() -> None:
    with pytest.raises(TypeError):
        MongoQueueStorage("mongodb://localhost")  # type: ignore[arg-type]


def test_negative_retry_delay_is_rejected() -> None:
    with pytest.raises(ValueError):
        MongoQueueStorage(lambda: None, wait_before_retry=-1)
