"""
Retry/DLQ утилиты для очередей.

Назначение:
- возвращать задачу в очередь тем же ключом, увеличивая attempts
- делать простой backoff (sleep) после повторной постановки
- по исчерпании лимита - в DLQ <queue>:dlq с алертом

Важно:
- это синхронная реализация (подходит для нашего воркера)
- max_attempts <= 0 - ретраи без ограничения (старое поведение)
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from panel_worker.common.alerts import AlertSink
from panel_worker.common.config import Settings, get_settings
from panel_worker.common.logging import get_project_logger
from panel_worker.common.metrics import QUEUE_TASKS_TOTAL

from .task_queue import TaskQueue
from .tasks import Delivery, dlq_name

log = get_project_logger()


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 10
    backoff_sec: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RetryPolicy:
        s = settings or get_settings()
        return cls(max_attempts=s.queue_max_attempts, backoff_sec=s.queue_retry_backoff_sec)

    def exhausted(self, attempts: int) -> bool:
        return self.max_attempts > 0 and attempts >= self.max_attempts


def requeue_with_backoff(
    *,
    task_queue: TaskQueue,
    delivery: Delivery,
    policy: RetryPolicy,
    reason: str,
    alerts: AlertSink | None = None,
) -> bool:
    """
    Повторно поставить задачу в очередь, увеличивая attempts.

    Возвращает:
    - True: задача поставлена обратно в очередь
    - False: задача отправлена в DLQ
    """
    attempts = delivery.task.attempts + 1

    if policy.exhausted(attempts):
        # В DLQ - чтобы не зациклиться
        task_queue.dead_letter(delivery, attempts=attempts, reason=reason)
        QUEUE_TASKS_TOTAL.labels(
            service=task_queue.service, queue=delivery.queue, result="dead_lettered"
        ).inc()
        log.error(
            "task_moved_to_dlq",
            extra={
                "payload": {
                    "queue": delivery.queue,
                    "dlq": dlq_name(delivery.queue),
                    "key": delivery.key,
                    "attempts": attempts,
                    "max_attempts": policy.max_attempts,
                    "reason": reason[:200],
                }
            },
        )
        if alerts is not None:
            alerts.capture_message(
                f"Task dead-lettered after {attempts} attempts: {delivery.key}",
                queue=delivery.queue,
                key=delivery.key,
                task_type=delivery.task_type,
                reason=reason[:200],
            )
        return False

    task_queue.requeue(delivery, attempts=attempts)
    QUEUE_TASKS_TOTAL.labels(
        service=task_queue.service, queue=delivery.queue, result="requeued"
    ).inc()
    log.warning(
        "task_requeued",
        extra={
            "payload": {
                "queue": delivery.queue,
                "key": delivery.key,
                "attempts": attempts,
                "max_attempts": policy.max_attempts,
                "backoff_sec": policy.backoff_sec,
                "reason": reason[:200],
            }
        },
    )

    # Backoff
    if policy.backoff_sec and policy.backoff_sec > 0:
        time.sleep(policy.backoff_sec)
    return True
