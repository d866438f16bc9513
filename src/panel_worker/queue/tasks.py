"""
Контракт задачи очереди.

Правила:
- в списке очереди лежат только ключи "<queue>:<id>", payload хранится по ключу с TTL
- запись задачи - JSON-объект {"id", "type", "data", "time", "attempts"}
- attempts считает неудачные попытки обработки (для лимита ретраев и DLQ)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from panel_worker.common.errors import MalformedTaskError, TaskDecodeError
from panel_worker.common.ids import new_task_id
from panel_worker.common.time import unix_now


def task_key(queue: str, task_id: str) -> str:
    return f"{queue}:{task_id}"


def dlq_name(queue: str) -> str:
    return f"{queue}:dlq"


@dataclass
class Task:
    id: str
    type: str
    data: Any
    time: int
    attempts: int = 0

    @classmethod
    def new(cls, *, task_type: str, data: Any) -> Task:
        return cls(id=new_task_id(), type=task_type, data=data, time=unix_now())

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Task:
        """
        Собрать задачу из декодированной записи.
        type и data обязательны; остальное восстанавливается мягко.
        """
        if record.get("type") is None or record.get("data") is None:
            raise MalformedTaskError(details={"fields": sorted(record.keys())})
        try:
            attempts = int(record.get("attempts") or 0)
        except (TypeError, ValueError):
            attempts = 0
        try:
            created = int(record.get("time") or 0)
        except (TypeError, ValueError):
            created = 0
        return cls(
            id=str(record.get("id") or ""),
            type=str(record["type"]),
            data=record["data"],
            time=created,
            attempts=attempts,
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "time": self.time,
            "attempts": self.attempts,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_record(), ensure_ascii=False)


def decode_record(raw: str, *, queue: str, key: str) -> dict[str, Any]:
    try:
        record = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise TaskDecodeError(queue=queue, key=key, message=f"JSON decode error: {e}") from e
    if not isinstance(record, dict):
        raise TaskDecodeError(queue=queue, key=key, message="task record is not an object")
    return record


@dataclass
class Delivery:
    """
    Задача, выданная потребителю: из какой очереди, по какому ключу, что в payload.
    """

    queue: str
    key: str
    record: dict[str, Any] = field(default_factory=dict)

    @property
    def task(self) -> Task:
        return Task.from_record(self.record)

    @property
    def task_type(self) -> str | None:
        value = self.record.get("type")
        return str(value) if value is not None else None
