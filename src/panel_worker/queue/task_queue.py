"""
Очередь задач поверх брокера.

Назначение:
- producer: add() - ключ в хвост списка + payload по ключу с TTL
- consumer: pop / blocking_pop / blocking_pop_multiple
- администрирование: count, delete (purge), работа с DLQ

Модель хранения:
- список <queue> содержит только ключи "<queue>:<id>"
- payload лежит по ключу с TTL (QUEUE_TASK_TTL_SEC), неразобранная задача просто истекает
- DLQ: список <queue>:dlq с теми же ключами, payload перезаписывается с QUEUE_DLQ_TTL_SEC

Важно:
- add() не атомарен: ключ в списке без payload - штатная ситуация, потребитель
  пропускает такой ключ (no-op), а не падает
- pop ключа и чтение payload - два шага; падение между ними теряет задачу (до TTL)
- порядок FIFO только внутри одной очереди (RPUSH + LPOP)
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from panel_worker.common.config import Settings, get_settings
from panel_worker.common.errors import MalformedTaskError, TaskDecodeError
from panel_worker.common.logging import get_project_logger
from panel_worker.common.metrics import QUEUE_ENQUEUED_TOTAL, QUEUE_TASKS_TOTAL
from panel_worker.common.time import unix_now
from panel_worker.common.utils import truncate

from .broker import Broker, broker
from .tasks import Delivery, Task, decode_record, dlq_name, task_key

log = get_project_logger()


class TaskQueue:
    def __init__(
        self,
        name: str,
        *,
        broker_: Broker | None = None,
        settings: Settings | None = None,
    ) -> None:
        s = settings or get_settings()
        self.name = name
        self.broker = broker_ or broker()
        self.ttl_sec = s.queue_task_ttl_sec
        self.dlq_ttl_sec = s.queue_dlq_ttl_sec
        self.block_timeout_sec = s.queue_block_timeout_sec
        self.service = s.service_name

    @property
    def dlq(self) -> str:
        return dlq_name(self.name)

    # =========================================================================
    # PRODUCER
    # =========================================================================
    def add(self, data: Any, task_type: str) -> Task:
        """
        Поставить задачу. Ошибки брокера пробрасываются (BrokerError).
        """
        task = Task.new(task_type=task_type, data=data)
        key = task_key(self.name, task.id)
        self.broker.push_tail(self.name, key)
        self.broker.set_with_ttl(key, task.to_json(), self.ttl_sec)
        QUEUE_ENQUEUED_TOTAL.labels(queue=self.name, type=task_type).inc()
        log.info(
            "task_enqueued",
            extra={"payload": {"queue": self.name, "key": key, "type": task_type}},
        )
        return task

    # =========================================================================
    # CONSUMER
    # =========================================================================
    def _take(self, queue: str, key: str, *, auto_ack: bool) -> Delivery | None:
        raw = self.broker.get(key)
        if auto_ack:
            self.broker.delete(key)
        if raw is None:
            QUEUE_TASKS_TOTAL.labels(
                service=self.service, queue=queue, result="missing_payload"
            ).inc()
            log.warning("task_payload_missing", extra={"payload": {"queue": queue, "key": key}})
            return None
        log.info(
            "task_fetched",
            extra={"payload": {"queue": queue, "key": key, "preview": truncate(raw)}},
        )
        return Delivery(queue=queue, key=key, record=decode_record(raw, queue=queue, key=key))

    def pop(self) -> Task | None:
        """
        Неблокирующий pop. Битый JSON - TaskDecodeError (payload уже удалён).
        """
        key = self.broker.pop_head(self.name)
        if key is None:
            return None
        delivery = self._take(self.name, key, auto_ack=True)
        return delivery.task if delivery else None

    def blocking_pop(self, timeout: int | None = None) -> Task | None:
        delivery = self.blocking_pop_multiple([self.name], timeout)
        return delivery.task if delivery else None

    def blocking_pop_multiple(
        self,
        queues: Sequence[str],
        timeout: int | None = None,
        *,
        auto_ack: bool = True,
    ) -> Delivery | None:
        """
        BLPOP по нескольким очередям.

        - None: таймаут (не ошибка) или ключ без payload
        - auto_ack=True: payload удаляется сразу при выдаче
        - auto_ack=False: payload остаётся до ack/requeue/dead_letter (режим воркера)
        """
        wait = self.block_timeout_sec if timeout is None else timeout
        item = self.broker.blocking_pop_head(queues, wait)
        if item is None:
            return None
        queue, key = item
        return self._take(queue, key, auto_ack=auto_ack)

    # =========================================================================
    # SETTLE (для выданных с auto_ack=False)
    # =========================================================================
    def ack(self, key: str) -> None:
        self.broker.delete(key)

    def requeue(self, delivery: Delivery, *, attempts: int) -> None:
        """
        Вернуть тот же ключ в хвост исходной очереди.
        Payload перезаписывается с новым attempts и свежим TTL.
        """
        record = dict(delivery.record, attempts=attempts)
        self.broker.set_with_ttl(delivery.key, Task.from_record(record).to_json(), self.ttl_sec)
        self.broker.push_tail(delivery.queue, delivery.key)

    def dead_letter(self, delivery: Delivery, *, attempts: int, reason: str) -> None:
        record = dict(
            delivery.record,
            attempts=attempts,
            error=reason[:500],
            failed_at=unix_now(),
        )
        self.broker.set_with_ttl(
            delivery.key, json.dumps(record, ensure_ascii=False), self.dlq_ttl_sec
        )
        self.broker.push_tail(dlq_name(delivery.queue), delivery.key)

    # =========================================================================
    # ADMIN
    # =========================================================================
    def count(self) -> int:
        return self.broker.list_length(self.name)

    def delete(self) -> None:
        """
        Очистить очередь: payload всех ключей из списка, затем сам список.
        """
        keys = self.broker.list_range(self.name)
        if keys:
            self.broker.delete(*keys)
        self.broker.delete(self.name)
        log.warning("queue_purged", extra={"payload": {"queue": self.name, "keys": len(keys)}})

    def dead_letter_count(self) -> int:
        return self.broker.list_length(self.dlq)

    def list_dead_letters(self, limit: int = 100) -> list[Delivery]:
        out: list[Delivery] = []
        for key in self.broker.list_range(self.dlq, 0, max(1, limit) - 1):
            raw = self.broker.get(key)
            if raw is None:
                continue
            try:
                record = decode_record(raw, queue=self.dlq, key=key)
            except TaskDecodeError:
                record = {"error": "unreadable payload", "raw": truncate(raw)}
            out.append(Delivery(queue=self.name, key=key, record=record))
        return out

    def redrive_dead_letters(self, limit: int = 100) -> int:
        """
        Вернуть задачи из DLQ в очередь с attempts=0. Возвращает число вернувшихся.
        Нечитаемые записи остаются в DLQ и не прерывают пакет.
        """
        moved = 0
        broken: list[str] = []
        for _ in range(max(0, limit)):
            key = self.broker.pop_head(self.dlq)
            if key is None:
                break
            raw = self.broker.get(key)
            if raw is None:
                continue
            try:
                task = Task.from_record(decode_record(raw, queue=self.dlq, key=key))
            except (TaskDecodeError, MalformedTaskError) as e:
                log.warning(
                    "dlq_entry_unreadable",
                    extra={"payload": {"queue": self.name, "key": key, "err": e.message[:200]}},
                )
                broken.append(key)
                continue
            task.attempts = 0
            self.broker.set_with_ttl(key, task.to_json(), self.ttl_sec)
            self.broker.push_tail(self.name, key)
            moved += 1
        for key in broken:
            self.broker.push_tail(self.dlq, key)
        log.info(
            "dlq_redriven",
            extra={"payload": {"queue": self.name, "moved": moved, "kept": len(broken)}},
        )
        return moved

    def purge_dead_letters(self) -> None:
        keys = self.broker.list_range(self.dlq)
        if keys:
            self.broker.delete(*keys)
        self.broker.delete(self.dlq)
