"""
Диспетчер очередей (producer API).

Назначение:
- единые имена очередей
- функции enqueue_* с тем payload, который ждут обработчики
- вызывается веб-частью (регистрация, уведомления, платёжные callback'и) и cron
"""

from __future__ import annotations

from typing import Any

from panel_worker.domain.enums import TaskType

from .task_queue import TaskQueue
from .tasks import Task

# =============================================================================
# ИМЕНА ОЧЕРЕДЕЙ (Redis lists)
# =============================================================================
Q_EMAIL = "email_queue"
Q_ORDER = "order_queue"


def enqueue_email(
    *,
    to_email: str,
    subject: str,
    template: str,
    context: dict[str, Any] | None = None,
    task_queue: TaskQueue | None = None,
) -> Task:
    """
    Поставить письмо на отправку.
    template - имя шаблона (например "verify_code" или legacy "verify_code.tpl").
    """
    q = task_queue or TaskQueue(Q_EMAIL)
    data = {
        "to_email": to_email,
        "subject": subject,
        "template": template,
        "context": context or {},
    }
    return q.add(data, TaskType.email.value)


def enqueue_order(*, order_id: int, task_queue: TaskQueue | None = None) -> Task:
    """
    Поставить активацию оплаченного заказа.
    """
    q = task_queue or TaskQueue(Q_ORDER)
    return q.add({"order_id": order_id}, TaskType.order.value)
