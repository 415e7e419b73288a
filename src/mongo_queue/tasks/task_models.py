# src/mongo_queue/tasks/task_models.py

from __future__ import annotations

import traceback
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

UNSET: Any = object()
"""Marker for a field that should be removed from the stored document."""


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - "success" and "cancelled" are terminal.
    - "cancelled" is reserved; nothing in this package sets it.
    - "stopped" is set out-of-band by a bulk stop and does not interrupt attempts in flight.
    """

    CREATED = "created"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    STOPPED = "stopped"
    CANCELLED = "cancelled"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.CREATED
        try:
            return cls(raw)
        except ValueError:
            return cls.CREATED


def new_uuid() -> str:
    """Random (version 4) UUID, lowercase hex with hyphens."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


@dataclass(slots=True)
class TaskError:
    time: datetime
    name: str | None
    message: str | None
    details: str | None
    stack: str | None
    occurred_in: str | None = None

    @classmethod
    def from_exception(cls, exc: BaseException, *, occurred_in: str | None = None) -> TaskError:
        try:
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        except Exception:
            stack = None

        return cls(
            time=utcnow(),
            name=_clean_str(type(exc).__name__),
            message=_clean_str(exc),
            details=_clean_str(repr(exc)),
            stack=_clean_str(stack),
            occurred_in=occurred_in,
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "time": self.time,
            "name": self.name,
            "message": self.message,
            "details": self.details,
            "stack": self.stack,
        }
        if self.occurred_in is not None:
            doc["occurredIn"] = self.occurred_in
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> TaskError:
        return cls(
            time=doc.get("time") or utcnow(),
            name=doc.get("name"),
            message=doc.get("message"),
            details=doc.get("details"),
            stack=doc.get("stack"),
            occurred_in=doc.get("occurredIn"),
        )


@dataclass(slots=True)
class TaskDocument:
    """
    In-memory view of one document in the task collection.

    `id` is the store-assigned primary key (`_id`) and stays None until
    the document has been inserted.
    """

    key: str
    uuid: str
    status: TaskStatus
    created_at: datetime
    data: dict[str, Any] = field(default_factory=dict)
    errors: list[TaskError] = field(default_factory=list)
    id: Any = None
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None

    @classmethod
    def new(cls, key: str, data: dict[str, Any] | None = None, *, created_by: str | None = None) -> TaskDocument:
        return cls(
            key=key,
            uuid=new_uuid(),
            status=TaskStatus.CREATED,
            created_at=utcnow(),
            data=dict(data or {}),
            created_by=created_by,
        )

    def to_document(self) -> dict[str, Any]:
        """Document for insertion; optional fields without a value are left out."""
        doc: dict[str, Any] = {
            "key": self.key,
            "uuid": self.uuid,
            "data": dict(self.data),
            "createdAt": self.created_at,
            "status": self.status.value,
            "errors": [e.to_document() for e in self.errors],
        }
        if self.id is not None:
            doc["_id"] = self.id
        if self.created_by is not None:
            doc["createdBy"] = self.created_by
        if self.updated_at is not None:
            doc["updatedAt"] = self.updated_at
        if self.updated_by is not None:
            doc["updatedBy"] = self.updated_by
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> TaskDocument:
        data = doc.get("data")
        return cls(
            id=doc.get("_id"),
            key=str(doc.get("key") or ""),
            uuid=str(doc.get("uuid") or ""),
            status=TaskStatus.from_db(doc.get("status")),
            created_at=doc.get("createdAt") or utcnow(),
            created_by=doc.get("createdBy"),
            updated_at=doc.get("updatedAt"),
            updated_by=doc.get("updatedBy"),
            data=dict(data) if isinstance(data, dict) else {},
            errors=[TaskError.from_document(e) for e in (doc.get("errors") or []) if isinstance(e, dict)],
        )


@dataclass(slots=True)
class TaskUpdate:
    """
    Field-level update for one task document.

    A field left at None is not touched. A field set to UNSET is removed
    from the stored document ($unset). Any other value is written ($set).
    """

    status: TaskStatus | None = None
    errors: list[TaskError] | None = None
    updated_at: datetime | None = None
    updated_by: str | None | Any = None

    def to_mongo(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Build the update operators. `data` is always written in full.
        """
        set_: dict[str, Any] = {"data": dict(data)}
        unset: dict[str, int] = {}

        fields = {
            "status": self.status.value if isinstance(self.status, TaskStatus) else self.status,
            "errors": [e.to_document() for e in self.errors] if isinstance(self.errors, list) else self.errors,
            "updatedAt": self.updated_at,
            "updatedBy": self.updated_by,
        }
        for name, value in fields.items():
            if value is None:
                continue
            if value is UNSET:
                unset[name] = 1
            else:
                set_[name] = value

        update: dict[str, Any] = {"$set": set_}
        if unset:
            update["$unset"] = unset
        return update
