"""
Воркер очередей.

Алгоритм одной итерации (run_once):
- BLPOP по всем очередям (таймаут = тик живости, не ошибка)
- payload читается, но не удаляется до решения по задаче
- битый JSON / нет type|data / неизвестный type -> удалить ключ, алерт, без повторов
- обработчик вернул ok|drop -> удалить ключ
- обработчик вернул retry или бросил исключение -> тот же ключ в хвост очереди
  (attempts + 1, backoff), по исчерпании лимита -> DLQ
- BrokerError на любом шаге -> алерт, пауза, переподключение; процесс не падает

Важно:
- одна задача в работе на процесс; масштабирование - несколькими процессами,
  эксклюзивность выдачи обеспечивает атомарный BLPOP
- обработчик не прерывается: дедлайнов и отмены нет
"""

from __future__ import annotations

import time
from collections.abc import Sequence

from panel_worker.common.alerts import AlertSink
from panel_worker.common.config import Settings, get_settings
from panel_worker.common.errors import BrokerError, MalformedTaskError, TaskDecodeError
from panel_worker.common.logging import get_project_logger
from panel_worker.common.metrics import (
    BROKER_RECONNECTS_TOTAL,
    QUEUE_TASKS_TOTAL,
    refresh_queue_metrics,
    track_handler_latency,
)
from panel_worker.domain.enums import JobStatus
from panel_worker.jobs.registry import JobRegistry

from .retry import RetryPolicy, requeue_with_backoff
from .task_queue import TaskQueue
from .tasks import Delivery, Task

log = get_project_logger()


class QueueWorker:
    def __init__(
        self,
        *,
        task_queue: TaskQueue,
        registry: JobRegistry,
        alerts: AlertSink,
        queues: Sequence[str] | None = None,
        settings: Settings | None = None,
    ) -> None:
        s = settings or get_settings()
        self.task_queue = task_queue
        self.registry = registry
        self.alerts = alerts
        self.queues = list(queues or s.queue_list())
        self.block_timeout_sec = s.queue_block_timeout_sec
        self.broker_backoff_sec = s.queue_broker_backoff_sec
        self.policy = RetryPolicy.from_settings(s)
        self.service = s.service_name
        self._running = False
        self._monitored = [TaskQueue(q, broker_=task_queue.broker, settings=s) for q in self.queues]

    # =========================================================================
    # LOOP
    # =========================================================================
    def stop(self) -> None:
        self._running = False

    def run_forever(self) -> None:
        self._running = True
        log.info(
            "worker_queue_started",
            extra={"payload": {"queues": self.queues, "handlers": self.registry.types()}},
        )
        while self._running:
            self.run_once()
        log.info("worker_queue_stopped")

    def run_once(self) -> bool:
        """
        Одна итерация. True - задача была выдана (любой исход), False - таймаут,
        пустой ключ или сбой брокера.
        """
        try:
            return self._iterate()
        except BrokerError as e:
            self._on_broker_failure(e)
            return False

    def _iterate(self) -> bool:
        try:
            delivery = self.task_queue.blocking_pop_multiple(
                self.queues, self.block_timeout_sec, auto_ack=False
            )
        except TaskDecodeError as e:
            self._drop_malformed(e.queue, e.key, e.message)
            return True

        if delivery is None:
            log.debug("worker_queue_idle", extra={"payload": {"queues": self.queues}})
            refresh_queue_metrics(self._monitored)
            return False

        log.info("task_received", extra={"payload": {"queue": delivery.queue, "key": delivery.key}})
        try:
            task = delivery.task
        except MalformedTaskError:
            self._drop_malformed(delivery.queue, delivery.key, "missing type/data")
            return True

        handler = self.registry.get(task.type)
        if handler is None:
            self.task_queue.ack(delivery.key)
            self._count(delivery.queue, "unknown_type")
            log.error(
                "task_unknown_type",
                extra={"payload": {"queue": delivery.queue, "key": delivery.key, "type": task.type}},
            )
            self.alerts.capture_message(
                f"Unknown task type: key={delivery.key}, type={task.type}, queue={delivery.queue}",
                queue=delivery.queue,
                key=delivery.key,
                task_type=task.type,
            )
            return True

        self._dispatch(delivery, task, handler)
        return True

    # =========================================================================
    # DISPATCH
    # =========================================================================
    def _dispatch(self, delivery: Delivery, task: Task, handler) -> None:
        try:
            with track_handler_latency(self.service, task.type):
                result = handler.handle(task)
        except BrokerError:
            raise
        except Exception as e:
            log.exception(
                "task_failed",
                extra={
                    "payload": {
                        "queue": delivery.queue,
                        "key": delivery.key,
                        "attempts": task.attempts,
                        "err": str(e)[:200],
                    }
                },
            )
            self.alerts.capture_exception(
                e, queue=delivery.queue, key=delivery.key, task_type=task.type
            )
            self._retry(delivery, f"{type(e).__name__}: {e}")
            return

        if result.status == JobStatus.retry:
            log.warning(
                "task_retry_requested",
                extra={
                    "payload": {
                        "queue": delivery.queue,
                        "key": delivery.key,
                        "attempts": task.attempts,
                        "reason": result.reason,
                    }
                },
            )
            self.alerts.capture_message(
                f"Task retry requested: key={delivery.key}, reason={result.reason}",
                queue=delivery.queue,
                key=delivery.key,
                task_type=task.type,
                reason=result.reason,
            )
            self._retry(delivery, result.reason or "retry")
            return

        self.task_queue.ack(delivery.key)
        if result.status == JobStatus.drop:
            self._count(delivery.queue, "dropped")
            log.warning(
                "task_dropped",
                extra={"payload": {"queue": delivery.queue, "key": delivery.key, "reason": result.reason}},
            )
            return

        self._count(delivery.queue, "acked")
        log.info(
            "task_acked",
            extra={
                "payload": {
                    "queue": delivery.queue,
                    "key": delivery.key,
                    "type": task.type,
                    "reason": result.reason,
                }
            },
        )

    def _retry(self, delivery: Delivery, reason: str) -> None:
        requeue_with_backoff(
            task_queue=self.task_queue,
            delivery=delivery,
            policy=self.policy,
            reason=reason,
            alerts=self.alerts,
        )

    def _drop_malformed(self, queue: str, key: str, reason: str) -> None:
        self.task_queue.ack(key)
        self._count(queue, "malformed")
        log.error("task_malformed", extra={"payload": {"queue": queue, "key": key, "reason": reason}})
        self.alerts.capture_message(
            f"Malformed task dropped: key={key}, queue={queue}, reason={reason}",
            queue=queue,
            key=key,
        )

    # =========================================================================
    # BROKER FAILURE
    # =========================================================================
    def _on_broker_failure(self, error: BrokerError) -> None:
        log.error(
            "broker_unavailable",
            extra={"payload": {"err": error.message[:200], "backoff_sec": self.broker_backoff_sec}},
        )
        self.alerts.capture_exception(error)
        if self.broker_backoff_sec > 0:
            time.sleep(self.broker_backoff_sec)
        ok = self.task_queue.broker.reconnect()
        BROKER_RECONNECTS_TOTAL.labels(service=self.service, result="ok" if ok else "failed").inc()

    def _count(self, queue: str, result: str) -> None:
        QUEUE_TASKS_TOTAL.labels(service=self.service, queue=queue, result=result).inc()
